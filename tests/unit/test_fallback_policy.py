"""
Unit tests for error classification and the soft-failure policy.

Test Coverage:
- classify_error for Azure, requests and decode errors
- guarded() fallbacks per operation
- Unlisted errors propagate
- Log level and sanitization of soft failures
"""

import json
import logging
from unittest.mock import Mock

import pytest
import requests
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)

from azcollect.errors import ErrorKind, classify_error
from azcollect.fallback_policy import (
    FALLBACK_POLICY,
    POWER_STATE_OFF,
    Operation,
    guarded,
    soft_failure_for,
)


def http_error(status_code):
    error = HttpResponseError(message=f"Status {status_code}")
    error.status_code = status_code
    return error


class TestClassifyError:
    """Mapping exceptions to error kinds."""

    @pytest.mark.parametrize(
        "error,kind",
        [
            (ResourceNotFoundError("gone"), ErrorKind.NOT_FOUND),
            (ResourceExistsError("conflict"), ErrorKind.CONFLICT),
            (http_error(404), ErrorKind.NOT_FOUND),
            (http_error(409), ErrorKind.CONFLICT),
            (requests.ConnectionError("refused"), ErrorKind.TRANSPORT),
            (requests.HTTPError("500 Server Error"), ErrorKind.TRANSPORT),
            (json.JSONDecodeError("Expecting value", "", 0), ErrorKind.MALFORMED),
        ],
    )
    def test_known_errors(self, error, kind):
        assert classify_error(error) is kind

    @pytest.mark.parametrize(
        "error",
        [
            http_error(429),
            http_error(500),
            ClientAuthenticationError("expired token"),
            KeyError("programming error"),
        ],
    )
    def test_unknown_errors(self, error):
        assert classify_error(error) is None


class TestGuarded:
    """Applying the policy table."""

    def test_every_operation_has_a_rule(self):
        assert set(FALLBACK_POLICY) == set(Operation)

    def test_success_passes_result_through(self):
        assert guarded(Operation.STACK_OPERATIONS, lambda: ["op"]) == ["op"]

    def test_template_conflict_means_absent(self):
        func = Mock(side_effect=ResourceExistsError("not stored"))

        assert guarded(Operation.STACK_TEMPLATE, func, "rg", "legacy") is None
        func.assert_called_once_with("rg", "legacy")

    def test_stack_operations_not_found_is_empty(self):
        result = guarded(Operation.STACK_OPERATIONS, Mock(side_effect=http_error(404)))

        assert result == []

    def test_instance_view_not_found_is_off(self):
        result = guarded(Operation.INSTANCE_VIEW, Mock(side_effect=ResourceNotFoundError("vm")))

        assert result == POWER_STATE_OFF == "off"

    def test_error_kind_must_match_operation(self):
        # NOT_FOUND is not a soft failure for template retrieval
        with pytest.raises(ResourceNotFoundError):
            guarded(Operation.STACK_TEMPLATE, Mock(side_effect=ResourceNotFoundError("gone")))

        assert soft_failure_for(Operation.STACK_TEMPLATE, ResourceNotFoundError("gone")) is None

    def test_systemic_failure_propagates(self):
        with pytest.raises(ClientAuthenticationError):
            guarded(
                Operation.STACK_OPERATIONS,
                Mock(side_effect=ClientAuthenticationError("no credential")),
            )

    def test_download_failure_logged_at_error_and_sanitized(self, caplog):
        uri = "https://t.blob.core.windows.net/c/t.json?sv=1&sig=topsecret"
        func = Mock(side_effect=requests.ConnectionError("refused"))

        with caplog.at_level(logging.DEBUG):
            assert guarded(Operation.TEMPLATE_DOWNLOAD, func, uri) is None

        assert caplog.records[-1].levelno == logging.ERROR
        assert "topsecret" not in caplog.text
        assert "[REDACTED]" in caplog.text

    def test_soft_failures_logged_at_debug(self, caplog):
        with caplog.at_level(logging.DEBUG):
            guarded(Operation.STACK_GET, Mock(side_effect=ResourceNotFoundError("gone")))

        assert caplog.records[-1].levelno == logging.DEBUG
        assert "stack_get" in caplog.text
