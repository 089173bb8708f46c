"""Error taxonomy for provider selection and transaction dispatch"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Kinds of errors surfaced through status fields and dispatch results"""

    INJECTED_UNAVAILABLE = "injected_unavailable"  # soft, degrades to fallback
    FALLBACK_CONNECT_FAILED = "fallback_connect_failed"  # hard, no connection
    NO_ACCOUNT = "no_account"
    NO_NETWORK = "no_network"
    SUBMISSION_FAILED = "submission_failed"
    INVARIANT_VIOLATION = "invariant_violation"


class ProviderHubError(Exception):
    """Base exception for all provider hub errors"""

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InjectedUnavailableError(ProviderHubError):
    """Raised when the injected provider cannot be loaded"""

    kind = ErrorKind.INJECTED_UNAVAILABLE


class FallbackConnectError(ProviderHubError):
    """Raised when the bridging fallback endpoint cannot be reached"""

    kind = ErrorKind.FALLBACK_CONNECT_FAILED

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint


class NoAccountError(ProviderHubError):
    """Attempting to do blockchain transaction with no account"""

    kind = ErrorKind.NO_ACCOUNT


class NoNetworkError(ProviderHubError):
    """Attempting to do blockchain transaction with no network id"""

    kind = ErrorKind.NO_NETWORK


class SubmissionFailedError(ProviderHubError):
    """Raised when the invoked contract call rejects"""

    kind = ErrorKind.SUBMISSION_FAILED

    def __init__(self, message: str, cause: BaseException, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.cause = cause


class InvariantViolationError(ProviderHubError):
    """No error or response received from blockchain action"""

    kind = ErrorKind.INVARIANT_VIOLATION


class AdapterClosedError(ProviderHubError):
    """Raised when an operation is attempted on a closed adapter"""


class UnknownContractTypeError(ProviderHubError):
    """Raised when no ABI is registered for a contract type"""
