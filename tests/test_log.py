import logging

import pytest

from kubewebhook.log import (
    NOOP,
    Logger,
    NoopLogger,
    StdLogger,
    ctx_with_values,
    values_from_ctx,
)

LOGGER_NAME = "tests.kubewebhook.log"


def test_values_from_empty_ctx():
    assert values_from_ctx({}) == {}
    assert values_from_ctx(None) == {}


def test_ctx_with_values_merges_and_keeps_parent():
    parent = ctx_with_values({}, {"a": 1, "b": 2})
    child = ctx_with_values(parent, {"b": 3, "c": 4})
    assert values_from_ctx(child) == {"a": 1, "b": 3, "c": 4}
    assert values_from_ctx(parent) == {"a": 1, "b": 2}


def test_ctx_with_values_keeps_other_context_entries():
    ctx = ctx_with_values({"other": "thing"}, {"a": 1})
    assert ctx["other"] == "thing"


def test_logger_is_abstract():
    with pytest.raises(TypeError):
        Logger()


def test_noop_logger():
    parent = {"x": 1}
    assert NOOP.with_values({"a": 1}) is NOOP
    assert NOOP.with_ctx_values(parent) is NOOP
    assert NOOP.set_values_on_ctx(parent, {"a": 1}) is parent
    assert isinstance(NOOP, NoopLogger)


def test_std_logger_formats_message(caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    StdLogger(logging.getLogger(LOGGER_NAME)).info("hello %s", "world")
    assert [r.getMessage() for r in caplog.records] == ["hello world"]


def test_std_logger_with_values_adds_fields(caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    base = StdLogger(logging.getLogger(LOGGER_NAME))
    logger = base.with_values({"a": 1})
    logger.warning("msg")
    record = caplog.records[0]
    assert record.getMessage() == "msg a=1"
    assert record.fields == {"a": 1}
    assert base.fields == {}


@pytest.mark.parametrize(
    "method,level",
    [
        ("info", logging.INFO),
        ("warning", logging.WARNING),
        ("error", logging.ERROR),
        ("debug", logging.DEBUG),
    ],
)
def test_std_logger_levels(caplog, method, level):
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    getattr(StdLogger(logging.getLogger(LOGGER_NAME)), method)("entry")
    assert [r.levelno for r in caplog.records] == [level]


def test_std_logger_ctx_round_trip(caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    logger = StdLogger(logging.getLogger(LOGGER_NAME))
    ctx = logger.set_values_on_ctx({}, {"request-id": "id-1"})
    assert values_from_ctx(ctx) == {"request-id": "id-1"}
    ctx_logger = logger.with_ctx_values(ctx)
    assert ctx_logger.fields == {"request-id": "id-1"}
    ctx_logger.error("failed")
    assert caplog.records[0].fields == {"request-id": "id-1"}


def test_std_logger_respects_level(caplog):
    caplog.set_level(logging.ERROR, logger=LOGGER_NAME)
    StdLogger(logging.getLogger(LOGGER_NAME)).debug("hidden")
    assert caplog.records == []