import shutil
from pathlib import Path

import pytest

from station.storage import SaveStore

TEST_SAVES_DIR = Path("saves-tests")


@pytest.fixture
def saves_dir():
    """Wipe and re-create saves-tests/ for every test that asks for it."""
    if TEST_SAVES_DIR.exists():
        shutil.rmtree(TEST_SAVES_DIR)
    TEST_SAVES_DIR.mkdir()
    yield TEST_SAVES_DIR
    # leave saves-tests around after tests for inspection; CI can ignore it


@pytest.fixture
def store(saves_dir):
    return SaveStore(saves_dir)
