"""Tests for tiler.utils.logging module."""

from __future__ import annotations

import logging

import pytest

from tiler.utils.logging import (
    _add_correlation_ids,
    clear_correlation_context,
    configure_logging,
    get_logger,
    set_correlation_context,
)


def test_configure_logging_default_settings_do_not_error() -> None:
    configure_logging()


@pytest.mark.parametrize("log_format", ["console", "json"])
def test_configure_logging_formats_do_not_error(log_format: str) -> None:
    configure_logging(level="INFO", log_format=log_format)


def test_get_logger_returns_logger_proxy() -> None:
    configure_logging(level="DEBUG", log_format="console")
    logger = get_logger("test.module")
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")


def test_correlation_ids_added_to_event() -> None:
    expected_level = 3
    set_correlation_context(image_id="img-123", operation="create", level=expected_level)

    event = _add_correlation_ids(logging.getLogger("test"), "info", {"event": "hello"})

    assert event["event"] == "hello"
    assert event["image_id"] == "img-123"
    assert event["operation"] == "create"
    assert event["pyramid_level"] == expected_level


def test_level_zero_is_recorded() -> None:
    set_correlation_context(level=0)

    event = _add_correlation_ids(logging.getLogger("test"), "info", {"event": "e"})

    assert event["pyramid_level"] == 0


def test_correlation_ids_omitted_when_unset() -> None:
    clear_correlation_context()

    event = _add_correlation_ids(logging.getLogger("test"), "info", {"event": "hello"})

    assert "image_id" not in event
    assert "operation" not in event
    assert "pyramid_level" not in event


def test_set_correlation_context_keeps_unspecified_values() -> None:
    set_correlation_context(image_id="img-1", operation="update")
    set_correlation_context(level=2)

    event = _add_correlation_ids(logging.getLogger("test"), "info", {"event": "e"})

    assert event["image_id"] == "img-1"
    assert event["operation"] == "update"
    assert event["pyramid_level"] == 2
