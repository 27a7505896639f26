"""
Unit tests for env-filter logging setup.
"""

import logging

import pytest

from webserver.log import FALLBACK_LEVEL, parse_filter, setup_logging


@pytest.fixture
def restore_levels():
    names = ["", "webserver", "webserver.access", "webserver.server"]
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestParseFilter:
    """Tests for parse_filter()."""

    def test_bare_level(self):
        assert parse_filter("info") == (logging.INFO, {})

    def test_case_insensitive(self):
        assert parse_filter("DEBUG")[0] == logging.DEBUG

    def test_trace_maps_to_debug(self):
        assert parse_filter("trace")[0] == logging.DEBUG

    def test_targets(self):
        level, targets = parse_filter("warn,webserver.server=debug")

        assert level == logging.WARNING
        assert targets == {"webserver.server": logging.DEBUG}

    def test_tower_http_alias(self):
        _, targets = parse_filter("error,tower_http=info")

        assert targets == {"webserver.access": logging.INFO}

    def test_empty(self):
        assert parse_filter("") == (FALLBACK_LEVEL, {})
        assert parse_filter(None) == (FALLBACK_LEVEL, {})

    @pytest.mark.parametrize("filter_string", ["loud", "webserver=loud", "=info"])
    def test_invalid(self, filter_string: str):
        with pytest.raises(ValueError):
            parse_filter(filter_string)


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_applies_levels(self, restore_levels):
        level = setup_logging("info,webserver.access=debug")

        assert level == logging.INFO
        assert logging.getLogger("webserver").level == logging.INFO
        assert logging.getLogger("webserver.access").level == logging.DEBUG

    def test_invalid_filter_falls_back_to_warn(self, restore_levels):
        level = setup_logging("very-verbose")

        assert level == logging.WARNING
        assert logging.getLogger("webserver").level == logging.WARNING
