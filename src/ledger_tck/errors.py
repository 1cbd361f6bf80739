"""TCK error categories, JSON-RPC codes and exceptions."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .types import Failure
    from .verify import Mismatch


class ErrorCategory(Enum):
    # The SUT evaluated the request and refused it with a named status.
    BUSINESS_REJECTION = "business_rejection"
    # The request never reached business validation (JSON-RPC error class).
    REQUEST_SHAPE = "request_shape"
    # The exchange itself failed: connection, HTTP status, framing.
    TRANSPORT = "transport"
    # The SUT does not implement the method.
    NOT_IMPLEMENTED = "not_implemented"


class JsonRpcErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    # Implementation defined: SDK-level failures carrying a ledger status
    LEDGER_ERROR = -32001


NOT_IMPLEMENTED = "NOT_IMPLEMENTED"


class TckError(Exception):
    """Base class for every error raised by the TCK itself."""


class ConfigError(TckError):
    pass


class OperationFailed(TckError):
    """An operation that had to succeed returned a failure outcome."""

    def __init__(self, what: str, failure: "Failure"):
        self.what = what
        self.failure = failure
        super().__init__(f"{what} failed: {failure.describe()}")


class FixtureSetupError(OperationFailed):
    """A precondition could not be built; fatal to the test."""


class SourceReadError(TckError):
    """A read against the consensus or mirror source failed."""

    def __init__(self, source: str, detail: str, status: Optional[int] = None):
        self.source = source
        self.detail = detail
        self.status = status
        super().__init__(f"[{source}] {detail}")


class ConvergenceTimeout(TckError, AssertionError):
    """The sources never agreed with the expectation within the retry budget."""

    def __init__(self, mismatch: "Mismatch", attempts: int):
        self.mismatch = mismatch
        self.attempts = attempts
        super().__init__(
            f"no convergence after {attempts} attempts: {mismatch.describe()}"
        )


class ScenarioTimeout(TckError):
    def __init__(self, name: str, seconds: float):
        self.name = name
        self.seconds = seconds
        super().__init__(f"scenario '{name}' exceeded {seconds:g}s")


class ScenarioFormatError(TckError):
    pass
