"""
Outcome comparison logic for scenario runs.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from .errors import ErrorCategory
from .types import Failure, OperationOutcome
from .verify import Mismatch

SUCCESS = "SUCCESS"


@dataclass
class Divergence:
    """Represents a divergence between what a scenario expects and what happened."""
    field: str
    expected: Any
    actual: Any
    scenario: str
    source: Optional[str] = None
    details: Optional[str] = None


@dataclass(frozen=True)
class ExpectedOutcome:
    """What the operation under test must return.

    Exactly one of ``success``, ``status`` and ``internal_error`` is set.
    """
    success: bool = False
    status: Optional[str] = None
    internal_error: bool = False
    # Optional exact JSON-RPC code for request-shape rejections.
    code: Optional[int] = None

    def __post_init__(self) -> None:
        chosen = sum([self.success, self.status is not None, self.internal_error])
        if chosen != 1:
            raise ValueError(
                "expected outcome needs exactly one of success, status, internal_error"
            )

    def describe(self) -> str:
        if self.success:
            return SUCCESS
        if self.status is not None:
            return self.status
        return "internal error" + (f" ({self.code})" if self.code is not None else "")


def _actual(outcome: OperationOutcome) -> str:
    if outcome.ok:
        return SUCCESS
    return outcome.describe()


class OutcomeComparator:
    """Compares observed outcomes and read-side state with expectations."""

    def compare_outcome(
        self,
        expected: ExpectedOutcome,
        outcome: OperationOutcome,
        scenario: str,
    ) -> List[Divergence]:
        """
        Compare the outcome of the operation under test.

        Args:
            expected: The declared outcome
            outcome: The normalized outcome the client returned
            scenario: Name of the scenario

        Returns:
            List of divergences, empty when the outcome is as declared
        """
        if expected.success:
            if outcome.ok:
                return []
            return [Divergence(
                field="outcome",
                expected=SUCCESS,
                actual=_actual(outcome),
                scenario=scenario,
                details=f"Operation failed: {outcome.describe()}",
            )]

        if outcome.ok:
            return [Divergence(
                field="outcome",
                expected=expected.describe(),
                actual=SUCCESS,
                scenario=scenario,
                details="Operation should have failed",
            )]

        assert isinstance(outcome, Failure)
        if expected.status is not None:
            return self._compare_rejection(expected.status, outcome, scenario)
        return self._compare_internal(expected, outcome, scenario)

    def _compare_rejection(self, status: str, failure: Failure, scenario: str) -> List[Divergence]:
        if failure.category is not ErrorCategory.BUSINESS_REJECTION:
            return [Divergence(
                field="category",
                expected=ErrorCategory.BUSINESS_REJECTION.value,
                actual=failure.category.value,
                scenario=scenario,
                details=f"Expected status {status}, got {failure.describe()}",
            )]
        if failure.status != status:
            return [Divergence(
                field="status",
                expected=status,
                actual=failure.status,
                scenario=scenario,
            )]
        return []

    def _compare_internal(self, expected: ExpectedOutcome, failure: Failure, scenario: str) -> List[Divergence]:
        # Shape errors must be caught before business validation runs.
        if failure.category is not ErrorCategory.REQUEST_SHAPE:
            return [Divergence(
                field="category",
                expected=ErrorCategory.REQUEST_SHAPE.value,
                actual=failure.category.value,
                scenario=scenario,
                details=f"Expected an internal error, got {failure.describe()}",
            )]
        if expected.code is not None and failure.code != expected.code:
            return [Divergence(
                field="code",
                expected=expected.code,
                actual=failure.code,
                scenario=scenario,
            )]
        return []

    def compare_state(self, mismatch: Optional[Mismatch], scenario: str) -> List[Divergence]:
        """One divergence per source that never agreed with the expectation."""
        if mismatch is None:
            return []
        return [
            Divergence(
                field=mismatch.subject,
                expected=o.expected,
                actual=o.actual,
                scenario=scenario,
                source=o.source,
                details=f"No convergence within the retry budget ({mismatch.describe()})",
            )
            for o in mismatch.observations
            if not o.matched
        ]
