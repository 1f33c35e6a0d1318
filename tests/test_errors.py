"""Tests for the error taxonomy."""

from __future__ import annotations

import pytest

from protopilot.errors import (
    DescriptorFormatError,
    EndpointNotConfiguredError,
    ErrorCode,
    GenerationTransportError,
    MalformedResponseError,
    PersistenceError,
    ProtoPilotError,
    UnsupportedMethodError,
)


def test_error_carries_message_and_details() -> None:
    error = PersistenceError("save failed", details={"document_id": "d1"})

    assert str(error) == "save failed"
    assert error.args == ("save failed",)
    assert error.to_dict() == {
        "error": ErrorCode.PERSISTENCE_FAILURE,
        "message": "save failed",
        "details": {"document_id": "d1"},
    }


def test_to_dict_omits_empty_details() -> None:
    assert MalformedResponseError("bad").to_dict() == {"error": ErrorCode.MALFORMED_RESPONSE, "message": "bad"}


@pytest.mark.parametrize(
    ("error_type", "visible"),
    [
        (EndpointNotConfiguredError, True),
        (GenerationTransportError, True),
        (MalformedResponseError, False),
        (DescriptorFormatError, False),
        (PersistenceError, False),
        (UnsupportedMethodError, False),
    ],
)
def test_only_configuration_and_transport_errors_reach_the_user(error_type: type[ProtoPilotError], visible: bool) -> None:
    error = error_type("x")

    assert isinstance(error, ProtoPilotError)
    assert error.user_visible is visible


def test_errors_can_be_raised_and_caught() -> None:
    with pytest.raises(ProtoPilotError) as excinfo:
        raise DescriptorFormatError("missing id")

    assert excinfo.value.error_code == ErrorCode.INVALID_DESCRIPTOR
