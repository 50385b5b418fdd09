"""
Tests for the placeops error hierarchy.
"""

from __future__ import annotations

from placeops.core.errors import (
    ChannelClosedError,
    ChannelProcessExited,
    ChannelTimeout,
    ErrorCategory,
    MirrorError,
    ParseFailure,
    PlaceOpsError,
    RemoteCommandFailed,
    UnresolvedParent,
    is_retryable,
    requires_connection,
)


class TestPlaceOpsError:
    def test_defaults(self):
        err = PlaceOpsError("boom")
        assert err.category is ErrorCategory.INTERNAL
        assert err.retryable is False
        assert str(err) == "boom"

    def test_with_context_routes_unknown_keys_to_metadata(self):
        err = PlaceOpsError("boom").with_context(stage="fetch:Floor", index=3)
        assert err.context.stage == "fetch:Floor"
        assert err.context.metadata == {"index": 3}

    def test_to_dict(self):
        cause = ValueError("inner")
        err = MirrorError("write failed", cause=cause).with_context(place_type="Floor")
        data = err.to_dict()
        assert data["error_type"] == "MirrorError"
        assert data["category"] == "STORAGE"
        assert data["context"] == {"place_type": "Floor"}
        assert data["cause"] == "inner"
        assert err.__cause__ is cause


class TestChannelErrors:
    def test_timeout(self):
        err = ChannelTimeout("Get-PlaceV3", 2.5)
        assert err.category is ErrorCategory.CHANNEL
        assert err.retryable is True
        assert err.context.command == "Get-PlaceV3"
        assert "2.5s" in err.message
        assert requires_connection(err) is False

    def test_process_exited_requires_connection(self):
        err = ChannelProcessExited(returncode=1, command="Get-Date")
        assert err.returncode == 1
        assert requires_connection(err) is True
        assert is_retryable(err) is True

    def test_closed_is_not_retryable(self):
        assert ChannelClosedError("closed").retryable is False


class TestRemoteCommandFailed:
    def test_message_uses_first_error_line(self):
        err = RemoteCommandFailed("Get-PlaceV3", "Access Denied\nat line 1", rule="hard_failure")
        assert err.message == "Remote command failed: Access Denied"
        assert err.context.metadata["rule"] == "hard_failure"
        assert err.to_dict()["error_text"].startswith("Access Denied")

    def test_requires_connection(self):
        assert RemoteCommandFailed("x", "Access Denied").requires_connection
        assert RemoteCommandFailed("x", "You must call the Connect-ExchangeOnline cmdlet first").requires_connection
        assert not RemoteCommandFailed("x", "Cannot bind parameter").requires_connection


class TestDataErrors:
    def test_unresolved_parent(self):
        err = UnresolvedParent("Floor", "f-1", "b-9")
        assert err.category is ErrorCategory.RECONCILE
        assert err.context.external_id == "f-1"
        assert err.context.metadata["parent_external_id"] == "b-9"

    def test_parse_failure_shape(self):
        assert ParseFailure("bad", shape="table").shape == "table"

    def test_plain_exceptions(self):
        assert is_retryable(ConnectionError()) is True
        assert is_retryable(ValueError()) is False
        assert requires_connection(ValueError()) is False
