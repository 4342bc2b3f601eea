import logging

from tracker.core.config import Settings
from tracker.core.logging_config import PIPELINE_LOGGER, configure_logging


def test_settings_defaults():
    config = Settings()
    assert config.batch_size == 500
    assert config.template_partial_threshold == 0.5
    assert config.field_min_confidence == 0.3
    assert config.id_max_attempts == 5


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "25")
    monkeypatch.setenv("DATE_DEFAULT_DAYFIRST", "true")
    config = Settings()
    assert config.batch_size == 25
    assert config.date_default_dayfirst is True


def test_configure_logging_sets_levels():
    configure_logging("DEBUG", force=True, quiet_loggers=("multipart",))
    try:
        assert logging.getLogger(PIPELINE_LOGGER).level == logging.DEBUG
        assert logging.getLogger("multipart").level == logging.WARNING
    finally:
        configure_logging("INFO", force=True)
    assert logging.getLogger(PIPELINE_LOGGER).level == logging.INFO


def test_settings_only_declare_pipeline_options():
    assert "debug" not in Settings.model_fields
