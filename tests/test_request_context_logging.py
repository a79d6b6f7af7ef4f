import json
import logging
from io import StringIO

import pytest

from ibancheck.utils.logging_setup import JsonLineFormatter, RequestContextFilter, log_event
from ibancheck.utils.request_context import get_request_fields, request_scope


def test_json_formatter_includes_request_context():
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonLineFormatter())
    handler.addFilter(RequestContextFilter())
    logger = logging.getLogger("ibancheck.test_request_context")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.handlers = [handler]

    with request_scope(correlation_id="corr-1", command="validate_iban"):
        log_event(logger, "test.event", "Test message", size=3)

    handler.flush()
    payload = json.loads(stream.getvalue().strip())
    assert payload["request"]["correlation_id"] == "corr-1"
    assert payload["request"]["command"] == "validate_iban"
    assert payload["event_name"] == "test.event"
    assert payload["extra"]["size"] == 3
    assert payload["message"] == "Test message | size=3"


def test_request_scope_restores_previous_values():
    assert get_request_fields()["correlation_id"] is None
    with request_scope(correlation_id="outer", batch_size=2):
        with request_scope(correlation_id="inner"):
            assert get_request_fields()["correlation_id"] == "inner"
            assert get_request_fields()["batch_size"] == 2
        assert get_request_fields()["correlation_id"] == "outer"
    assert get_request_fields() == {"correlation_id": None, "command": None, "batch_size": None}


def test_request_scope_rejects_unknown_fields():
    with pytest.raises(KeyError):
        with request_scope(document_id="x"):
            pass
