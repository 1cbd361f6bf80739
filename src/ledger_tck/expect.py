"""Assertions on the operation under test, for pytest-driven scenarios."""

from __future__ import annotations

from typing import Any, Dict, Optional

import pytest

from .comparator import ExpectedOutcome, OutcomeComparator
from .errors import ErrorCategory, JsonRpcErrorCode
from .types import OperationOutcome

_comparator = OutcomeComparator()


def _check(expected: ExpectedOutcome, outcome: OperationOutcome) -> None:
    if not outcome.ok and outcome.category is ErrorCategory.NOT_IMPLEMENTED:
        pytest.skip(f"SUT does not implement this operation: {outcome.describe()}")

    divergences = _comparator.compare_outcome(expected, outcome, "operation under test")
    if divergences:
        d = divergences[0]
        raise AssertionError(
            f"{d.field}: expected {d.expected!r}, got {d.actual!r}"
            + (f" ({d.details})" if d.details else "")
        )


def expect_success(outcome: OperationOutcome) -> Dict[str, Any]:
    _check(ExpectedOutcome(success=True), outcome)
    return outcome.result


def expect_status(outcome: OperationOutcome, status: str) -> None:
    _check(ExpectedOutcome(status=status), outcome)


def expect_internal_error(
    outcome: OperationOutcome,
    code: Optional[int] = JsonRpcErrorCode.INTERNAL_ERROR,
) -> None:
    _check(ExpectedOutcome(internal_error=True, code=code), outcome)
