"""Logging follows the settings the application was built with."""

import logging

import pytest
import structlog

from apps.api.app.core.logging import configure_logging
from apps.api.app.main import create_app
from conftest import make_settings


def renderers() -> list:
    for handler in logging.getLogger().handlers:
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            return list(handler.formatter.processors)
    return []


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    configure_logging(make_settings())


def test_create_app_applies_its_own_log_settings():
    create_app(make_settings(log_level="WARNING", log_json=True))

    assert logging.getLogger().level == logging.WARNING
    assert any(isinstance(p, structlog.processors.JSONRenderer) for p in renderers())


def test_explicit_settings_reconfigure_an_already_configured_process():
    configure_logging(make_settings(log_level="ERROR", log_json=False))
    assert logging.getLogger().level == logging.ERROR

    configure_logging(make_settings(log_level="DEBUG", log_json=True))
    assert logging.getLogger().level == logging.DEBUG
    assert any(isinstance(p, structlog.processors.JSONRenderer) for p in renderers())

    # without settings the first configuration stays in place
    configure_logging()
    assert logging.getLogger().level == logging.DEBUG
