"""Generator boundary.

    GM_MODE=stub  → StubGenerator (loud fake data, default in development)
    GM_MODE=live  → LLMGenerator over HttpLLM, configured from GM_* settings
"""

from __future__ import annotations

import logging

from station.config import Settings
from station.llm import HttpLLM

from .base import DialogHistory, Generator, as_station_node, tag_node, tag_options  # noqa: F401
from .live import LLMGenerator, parse_json_output  # noqa: F401
from .stub import StubGenerator  # noqa: F401

logger = logging.getLogger(__name__)


def get_generator(settings: Settings) -> Generator:
    if settings.gm_mode == "live":
        if not settings.gm_provider_url:
            raise ValueError("GM_MODE=live requires GM_PROVIDER_URL")
        return LLMGenerator(HttpLLM.from_settings(settings))
    logger.warning("GM_MODE=%s — using the stub generator", settings.gm_mode)
    return StubGenerator(delay=settings.stub_delay)
