"""Process configuration from environment variables.

``.env`` at the repository root is loaded first (python-dotenv); real
environment variables win over it.

    SAVES_DIR           save files directory        (default: ./saves)
    CONTENT_DIR         authored room documents     (default: ./content)
    START_ROOM          starting room for new saves (default: arrival_bay)
    GM_MODE             stub | live                 (default: stub)
    GM_PROVIDER_URL     LLM backend base URL
    GM_API_KEY          bearer token for the backend
    GM_PROVIDER_FORMAT  koboldcpp | openai          (default: koboldcpp)
    GM_MODEL            model name (openai format only)
    GM_TIMEOUT          seconds                     (default: 120)
    GM_STUB_DELAY       "low,high" seconds of fake latency for the stub
    REPLACEMENT_POLICY  reject | allow              (default: reject)
    HOST, PORT          save server bind address    (default: 0.0.0.0:3001)
    LOG_LEVEL           root log level              (default: INFO)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel

from station.models import START_ROOM_ID

ROOT = Path(__file__).parent.parent


class Settings(BaseModel):
    saves_dir: Path = ROOT / "saves"
    content_dir: Path = ROOT / "content"
    start_room: str = START_ROOM_ID
    gm_mode: Literal["stub", "live"] = "stub"
    gm_provider_url: str = ""
    gm_api_key: str = ""
    gm_provider_format: Literal["koboldcpp", "openai"] = "koboldcpp"
    gm_model: str = ""
    gm_timeout: float = 120.0
    stub_delay: tuple[float, float] = (0.15, 0.4)
    replacement_policy: Literal["reject", "allow"] = "reject"
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> Settings:
        load_dotenv(env_file or ROOT / ".env")
        values: dict[str, object] = {}
        mapping = {
            "SAVES_DIR": "saves_dir",
            "CONTENT_DIR": "content_dir",
            "START_ROOM": "start_room",
            "GM_MODE": "gm_mode",
            "GM_PROVIDER_URL": "gm_provider_url",
            "GM_API_KEY": "gm_api_key",
            "GM_PROVIDER_FORMAT": "gm_provider_format",
            "GM_MODEL": "gm_model",
            "GM_TIMEOUT": "gm_timeout",
            "REPLACEMENT_POLICY": "replacement_policy",
            "HOST": "host",
            "PORT": "port",
            "LOG_LEVEL": "log_level",
        }
        for env_name, field_name in mapping.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value
        delay = os.getenv("GM_STUB_DELAY")
        if delay:
            low, _, high = delay.partition(",")
            values["stub_delay"] = (float(low), float(high or low))
        return cls.model_validate(values)
