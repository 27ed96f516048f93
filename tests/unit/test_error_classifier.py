"""Tests for failure classification."""

import socket

import pytest
from github import GithubException

from overviewer_agent.errors import (
    CredentialError,
    ErrorKind,
    ProviderFatalError,
    ProviderRetryExhausted,
    RepositoryError,
    classify_error,
    is_retryable_status,
    status_of,
)


class TestStatusCodes:
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable(self, status):
        assert is_retryable_status(status)

    @pytest.mark.parametrize("status", [None, 400, 401, 403, 404, 422])
    def test_not_retryable(self, status):
        assert not is_retryable_status(status)

    def test_github_exception_status(self):
        error = GithubException(503, {"message": "unavailable"}, None)
        assert status_of(error) == 503
        assert classify_error(error) == ErrorKind.TRANSIENT

    def test_github_auth_failure_is_fatal(self):
        assert classify_error(GithubException(401, {"message": "Bad credentials"}, None)) == ErrorKind.FATAL


class TestExplicitKinds:
    def test_own_exceptions_carry_their_kind(self):
        assert classify_error(ProviderRetryExhausted("x failed after 5 attempts")) == ErrorKind.TRANSIENT
        assert classify_error(ProviderFatalError("bad key", status=429)) == ErrorKind.FATAL
        assert classify_error(CredentialError("boom", kind=ErrorKind.TRANSIENT)) == ErrorKind.TRANSIENT
        assert classify_error(RepositoryError("push rejected")) == ErrorKind.FATAL


class TestNetworkAndMessages:
    @pytest.mark.parametrize("error", [ConnectionResetError("reset"), TimeoutError(), socket.timeout()])
    def test_network_errors_are_transient(self, error):
        assert classify_error(error) == ErrorKind.TRANSIENT

    @pytest.mark.parametrize(
        "message",
        [
            "fatal: unable to access: The requested URL returned error: 503",
            "Rate limit exceeded",
            "remote: Service Unavailable",
            "Operation timed out",
            "Connection reset by peer",
        ],
    )
    def test_transient_messages(self, message):
        assert classify_error(RuntimeError(message)) == ErrorKind.TRANSIENT

    def test_unknown_message_is_fatal(self):
        assert classify_error(RuntimeError("fatal: repository 'x' not found")) == ErrorKind.FATAL
