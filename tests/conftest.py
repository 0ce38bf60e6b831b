import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.append(str(SRC))

import pytest

os.environ.pop("CHAT_TIMEOUT_SECONDS", None)
os.environ.pop("CHAT_STREAM_DELIMITER", None)
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("CHAT_BASE_URL", "http://localhost:8080")

from chat_client import settings as settings_module

settings_module.get_settings.cache_clear()

from .utils import ScriptedTransport


@pytest.fixture()
def settings():
    return settings_module.get_settings()


@pytest.fixture()
def transport():
    return ScriptedTransport()
