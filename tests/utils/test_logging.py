import logging

from emberorm.utils.logging import (
    CorrelationIdFilter,
    get_correlation_id,
    get_logger,
    redact_params,
    set_correlation_id,
    time_call,
)


def test_correlation_id_round_trip():
    token = set_correlation_id("test-token")
    assert token == "test-token"
    assert get_correlation_id() == "test-token"


def test_time_call_logs_duration(caplog):
    logger = get_logger("tests.logging")
    # ensure handler exists and capturing
    caplog.set_level(logging.DEBUG, logger=logger.name)
    with time_call("unit-test", logger, threshold_ms=0):
        pass
    messages = [record.message for record in caplog.records if record.name == logger.name]
    assert any("unit-test took" in message for message in messages)


def test_redact_params_masks_credentials():
    assert redact_params(["alice", "my-password-1", 3, None]) == ["alice", "***", 3, None]
    assert redact_params(None) == []


def test_time_call_warns_above_threshold(caplog):
    logger = get_logger("tests.logging")
    caplog.set_level(logging.DEBUG, logger=logger.name)
    with time_call("slow-call", logger, sql="SELECT 1", threshold_ms=-1) as timer:
        pass
    record = next(r for r in caplog.records if "slow-call took" in r.message)
    assert record.levelno == logging.WARNING
    assert record.sql == "SELECT 1"
    assert timer.elapsed_ms >= 0


def test_logger_names_are_namespaced():
    assert get_logger("persistence.session").name == "emberorm.persistence.session"


def test_correlation_filter_sets_attribute():
    set_correlation_id("cid-1")
    record = logging.LogRecord("emberorm", logging.INFO, __file__, 1, "msg", None, None)
    assert CorrelationIdFilter().filter(record) is True
    assert record.correlation_id == "cid-1"
