"""Tests for the error taxonomy and classification."""

import asyncio

import httpx
import pytest

from tracklinker.domain.errors import (
    AuthError,
    ErrorKind,
    MappingError,
    ProviderWriteError,
    RateLimitError,
    TrackLinkerError,
    TransientError,
    UnknownError,
    as_tracklinker_error,
    classify_error,
)


class TestClassifyError:
    """Test cases for mapping exceptions onto error kinds."""

    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (AuthError("expired"), ErrorKind.AUTH),
            (TransientError("reset"), ErrorKind.NETWORK),
            (RateLimitError("slow down", retry_after=3), ErrorKind.RATE_LIMIT),
            (MappingError("no match"), ErrorKind.MAPPING),
            (ProviderWriteError("insert failed"), ErrorKind.PROVIDER_WRITE),
            (UnknownError("???"), ErrorKind.UNKNOWN),
        ],
    )
    def test_taxonomy_errors_keep_their_kind(self, error, kind):
        """Test that taxonomy errors classify as their own kind."""
        info = classify_error(error)
        assert info.kind == kind
        assert info.message == str(error)

    def test_mapping_error_carries_track_id(self):
        """Test that the failing track id is surfaced."""
        info = classify_error(MappingError("bad url", track_id="sp1"))
        assert info.track_id == "sp1"

    @pytest.mark.parametrize(
        "error",
        [
            TimeoutError("timed out"),
            asyncio.TimeoutError(),
            ConnectionError("refused"),
            httpx.ConnectError("dns failure"),
            httpx.ReadTimeout("slow"),
        ],
    )
    def test_network_errors(self, error):
        """Test that timeouts and transport failures are network errors."""
        assert classify_error(error).kind == ErrorKind.NETWORK

    def test_unknown_errors(self):
        """Test that anything else is unknown."""
        assert classify_error(ValueError("boom")).kind == ErrorKind.UNKNOWN

    def test_empty_message_uses_type_name(self):
        """Test that message-less exceptions still get a readable message."""
        assert classify_error(KeyError()).message == "KeyError"


class TestAsTrackLinkerError:
    """Test cases for wrapping foreign exceptions."""

    def test_taxonomy_error_returned_unchanged(self):
        """Test that taxonomy errors are not re-wrapped."""
        error = AuthError("expired")
        assert as_tracklinker_error(error) is error

    def test_network_error_wrapped_as_transient(self):
        """Test that connection failures become TransientError with a cause."""
        original = ConnectionError("refused")
        wrapped = as_tracklinker_error(original)

        assert isinstance(wrapped, TransientError)
        assert wrapped.__cause__ is original

    def test_unknown_error_wrapped(self):
        """Test that unclassified failures become UnknownError."""
        wrapped = as_tracklinker_error(RuntimeError("odd"))
        assert isinstance(wrapped, UnknownError)
        assert isinstance(wrapped, TrackLinkerError)
        assert str(wrapped) == "odd"

    def test_rate_limit_is_transient(self):
        """Test that rate limits are retried like other transient failures."""
        assert issubclass(RateLimitError, TransientError)
