"""Tests for logging configuration."""

import logging
from collections.abc import Iterator

import pytest
import structlog

from transit_rt.config import get_settings
from transit_rt.logging import (
    SERVICE_LOGGERS,
    _renderer,
    bind_request_context,
    bound_ingest_context,
    clear_request_context,
    service_log_level,
    setup_logging,
)


@pytest.fixture
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    levels = {name: logging.getLogger(name).level for name in SERVICE_LOGGERS}
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, saved in levels.items():
        logging.getLogger(name).setLevel(saved)
    structlog.reset_defaults()


class TestServiceLogLevels:
    def test_levels_follow_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "warning")
        get_settings.cache_clear()
        settings = get_settings()
        assert {service_log_level(settings, name) for name in SERVICE_LOGGERS} == {"WARNING"}

    def test_own_level_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MERGE_LOG_LEVEL", "debug")
        get_settings.cache_clear()
        settings = get_settings()
        assert service_log_level(settings, "transit_rt.services.merge") == "DEBUG"
        assert service_log_level(settings, "transit_rt.services.gtfs_rt") == "INFO"

    def test_debug_opens_up_validation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DEBUG", "true")
        get_settings.cache_clear()
        settings = get_settings()
        assert service_log_level(settings, "transit_rt.services.validation") == "DEBUG"
        assert service_log_level(settings, "transit_rt.services.merge") == "INFO"

    def test_setup_applies_levels(
        self, monkeypatch: pytest.MonkeyPatch, restore_logging: None
    ) -> None:
        monkeypatch.setenv("MERGE_LOG_LEVEL", "ERROR")
        get_settings.cache_clear()
        setup_logging()
        assert logging.getLogger("transit_rt.services.merge").level == logging.ERROR
        assert logging.getLogger("transit_rt.services.gtfs_rt").level == logging.INFO


class TestRenderer:
    def test_console_in_development(self) -> None:
        assert isinstance(_renderer(get_settings()), structlog.dev.ConsoleRenderer)

    def test_json_outside_development(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        get_settings.cache_clear()
        assert isinstance(_renderer(get_settings()), structlog.processors.JSONRenderer)

    def test_explicit_format(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_FORMAT", "json")
        get_settings.cache_clear()
        assert isinstance(_renderer(get_settings()), structlog.processors.JSONRenderer)


class TestIngestContext:
    def test_binds_for_the_block_only(self) -> None:
        bind_request_context(request_id="req-1")
        try:
            with bound_ingest_context(source_id="agency", ingest_id="abc"):
                assert structlog.contextvars.get_contextvars() == {
                    "request_id": "req-1",
                    "source_id": "agency",
                    "ingest_id": "abc",
                }
            assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}
        finally:
            clear_request_context()
