import io
import json
import logging
import sys

import pytest

from fieldtrain.config import PlatformSettings, load_settings
from fieldtrain.core.enums import ActivityStoreType
from fieldtrain.core.exceptions import ConfigurationError
from fieldtrain.logging_config import JSONFormatter, setup_logging


def test_defaults():
    settings = PlatformSettings()
    assert settings.activity_store_type == ActivityStoreType.DATABASE
    assert settings.lock_timeout_seconds == 5.0
    assert settings.port == 8000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FIELDTRAIN_PORT", "9100")
    monkeypatch.setenv("FIELDTRAIN_ACTIVITY_STORE_TYPE", "file")
    settings = load_settings()
    assert settings.port == 9100
    assert settings.activity_store_type == ActivityStoreType.FILE


def test_file_then_overrides(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({'port': 9000, 'log_level': "debug", 'database_path': "x.db"}))

    settings = load_settings(str(config_path), port=9001, host=None)

    assert settings.port == 9001
    assert settings.log_level == "DEBUG"
    assert settings.database_path == "x.db"
    assert settings.host == "0.0.0.0"


@pytest.mark.parametrize("overrides", [
    {'lock_timeout_seconds': 0},
    {'log_format': "xml"},
    {'log_level': "chatty"},
    {'port': 70000},
])
def test_invalid_settings(overrides):
    with pytest.raises(ConfigurationError):
        load_settings(**overrides)


def test_unreadable_config_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_settings(str(tmp_path / "missing.json"))


def test_json_logging():
    stream = io.StringIO()
    setup_logging("INFO", "json", stream=stream)
    logging.getLogger("fieldtrain.services.test").info("registered", extra={'group_id': "g1"})

    record = json.loads(stream.getvalue().strip())
    assert record['level'] == "INFO"
    assert record['logger'] == "fieldtrain.services.test"
    assert record['message'] == "registered"
    assert record['group_id'] == "g1"


def test_json_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.getLogger("x").makeRecord("x", logging.ERROR, __file__, 1, "failed", (), None)
        record.exc_info = sys.exc_info()
    data = json.loads(JSONFormatter().format(record))
    assert data['exception']['type'] == "ValueError"


def test_plain_logging_respects_level():
    stream = io.StringIO()
    setup_logging("WARNING", "plain", stream=stream)
    logger = logging.getLogger("fieldtrain.services.catalog_service")
    logger.info("hidden")
    logger.warning("shown")
    assert "hidden" not in stream.getvalue()
    assert "shown" in stream.getvalue()
