import logging

from partnerpay.logging_config import NOISY_LOGGERS, _add_service, configure_logging


def test_third_party_loggers_stay_quiet_in_debug():
    configure_logging("DEBUG")

    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_unknown_level_falls_back_to_info():
    configure_logging("chatty")

    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_events_are_tagged_with_service_and_env():
    event = _add_service(None, "info", {"event": "payout_created"})

    assert event["service"] == "partnerpay"
    assert event["env"] == "test"


def test_explicit_fields_are_not_overwritten():
    event = _add_service(None, "info", {"event": "x", "service": "worker"})

    assert event["service"] == "worker"
