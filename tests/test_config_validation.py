import logging

import pytest

from config.base import _coerce_bool, _coerce_int
from config.validation import validate_environment
from forum_bridge.utils.logging_config import JsonFormatter, setup_logging


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("true", True), ("YES", True), ("0", False), ("off", False), ("maybe", True), (None, True)],
)
def test_coerce_bool(raw, expected):
    assert _coerce_bool(raw, default=True) is expected


def test_coerce_int_clamps_and_falls_back():
    assert _coerce_int("250", 1000, minimum=1) == 250
    assert _coerce_int("0", 1000, minimum=1) == 1
    assert _coerce_int("lots", 1000, minimum=1) == 1000
    assert _coerce_int(None, 1000) == 1000


def test_production_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    is_valid, errors = validate_environment("production")

    assert is_valid is False
    assert any("DATABASE_URL" in error for error in errors)


def test_development_does_not_require_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("IMPORTER_BATCH_SIZE", raising=False)
    monkeypatch.delenv("LOG_FORMAT", raising=False)

    assert validate_environment("development") == (True, [])


def test_invalid_batch_size_is_reported(monkeypatch):
    monkeypatch.setenv("IMPORTER_BATCH_SIZE", "0")

    is_valid, errors = validate_environment("testing")

    assert is_valid is False
    assert "IMPORTER_BATCH_SIZE" in errors[0]


def test_testing_config_disables_avatar_fetching(app):
    assert app.config["TESTING"] is True
    assert app.config["IMPORTER_FETCH_AVATARS"] is False
    assert app.config["IMPORTER_BATCH_SIZE"] == 1000


def test_json_formatter_carries_extra_fields():
    record = logging.LogRecord("forum_bridge", logging.INFO, __file__, 1, "Imported %s", ("user",), None)
    record.importer_run_id = 7

    payload = JsonFormatter().format(record)

    assert '"message": "Imported user"' in payload
    assert '"importer_run_id": 7' in payload


def test_setup_logging_does_not_stack_handlers(app, tmp_path):
    app.config.update({"ENABLE_CONSOLE_LOGGING": True, "ENABLE_FILE_LOGGING": True, "LOG_DIR": str(tmp_path)})

    setup_logging(app)
    setup_logging(app)

    ours = [handler for handler in app.logger.handlers if getattr(handler, "_forum_bridge_handler", False)]
    assert len(ours) == 2
    assert (tmp_path / "forum_bridge.log").exists()
    for handler in ours:
        app.logger.removeHandler(handler)
        handler.close()
