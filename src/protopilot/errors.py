"""Error taxonomy shared by the generator and document subsystems.

Every failure is contained at the boundary of the subsystem that raised it;
these classes exist so that boundary code can classify a failure, log it and
decide whether the user should hear about it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


class ErrorCode:
    """Constants for machine-readable error codes."""

    ENDPOINT_NOT_CONFIGURED = "endpoint_not_configured"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT_FAILURE = "transport_failure"
    INVALID_DESCRIPTOR = "invalid_descriptor"
    PERSISTENCE_FAILURE = "persistence_failure"
    UNSUPPORTED_METHOD = "unsupported_method"
    INTERNAL_ERROR = "internal_error"


@dataclass(eq=False)
class ProtoPilotError(Exception):
    """Base exception carrying a message and structured details.

    Attributes:
        message: Human-readable error description.
        details: Additional structured context for logs.
    """

    message: str
    details: dict[str, Any] = field(default_factory=dict)

    error_code: ClassVar[str] = ErrorCode.INTERNAL_ERROR
    user_visible: ClassVar[bool] = False

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class EndpointNotConfiguredError(ProtoPilotError):
    """The fallback generation endpoint has no configured URL."""

    error_code = ErrorCode.ENDPOINT_NOT_CONFIGURED
    user_visible = True


class MalformedResponseError(ProtoPilotError):
    """A generator response lacked the expected result field."""

    error_code = ErrorCode.MALFORMED_RESPONSE


class GenerationTransportError(ProtoPilotError):
    """Network failure or non-2xx status while calling a generator."""

    error_code = ErrorCode.TRANSPORT_FAILURE
    user_visible = True


class DescriptorFormatError(ProtoPilotError):
    """A stored or asset-derived generator descriptor could not be decoded."""

    error_code = ErrorCode.INVALID_DESCRIPTOR


class PersistenceError(ProtoPilotError):
    """Writing a document to the remote store failed."""

    error_code = ErrorCode.PERSISTENCE_FAILURE


class UnsupportedMethodError(ProtoPilotError):
    """A generator declared an HTTP method other than GET or POST."""

    error_code = ErrorCode.UNSUPPORTED_METHOD


__all__ = [
    "ErrorCode",
    "ProtoPilotError",
    "EndpointNotConfiguredError",
    "MalformedResponseError",
    "GenerationTransportError",
    "DescriptorFormatError",
    "PersistenceError",
    "UnsupportedMethodError",
]
