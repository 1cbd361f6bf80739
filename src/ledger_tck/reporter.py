"""
Report generation for TCK runs.

Every scenario ends in exactly one status (see ``ScenarioResult.status``);
suite and run totals are counts per status rather than separate tallies.
"""

import json
import os
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .comparator import Divergence

PASS = "PASS"
FAIL = "FAIL"
TIMEOUT = "TIMEOUT"
SKIP = "SKIP"
STATUSES = (PASS, FAIL, TIMEOUT, SKIP)

RULE = "=" * 60


@dataclass
class ScenarioResult:
    """Result of a single scenario."""
    scenario_name: str
    suite_name: str
    passed: bool
    execution_time_ms: float
    divergences: List[Divergence] = field(default_factory=list)
    skipped: bool = False
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def status(self) -> str:
        if self.skipped:
            return SKIP
        if self.timed_out:
            return TIMEOUT
        return PASS if self.passed else FAIL

    @property
    def failed(self) -> bool:
        return self.status in (FAIL, TIMEOUT)


def _pass_rate(counts: Counter) -> float:
    executed = counts[PASS] + counts[FAIL] + counts[TIMEOUT]
    return counts[PASS] / executed * 100 if executed else 0.0


@dataclass
class SuiteResult:
    """Result of a scenario suite (one catalogue file)."""
    suite_name: str
    scenario_count: int
    execution_time_ms: float
    test_results: List[ScenarioResult]

    @property
    def counts(self) -> Counter:
        """Scenarios per status; scenarios left unrun count as skipped."""
        counts = Counter(r.status for r in self.test_results)
        counts[SKIP] += self.scenario_count - len(self.test_results)
        return counts

    @property
    def failed(self) -> bool:
        return any(r.failed for r in self.test_results)

    @property
    def pass_rate(self) -> float:
        return _pass_rate(self.counts)


@dataclass
class TckReport:
    """Complete TCK run report."""
    timestamp: str
    endpoints: Dict[str, str]
    execution_time_ms: float
    suite_results: List[SuiteResult]

    @property
    def counts(self) -> Counter:
        return sum((s.counts for s in self.suite_results), Counter())

    @property
    def failed(self) -> bool:
        return any(s.failed for s in self.suite_results)

    @property
    def pass_rate(self) -> float:
        return _pass_rate(self.counts)


class ReportGenerator:
    """Generates TCK reports."""

    def __init__(self, result_dir: str):
        """
        Initialize report generator.

        Args:
            result_dir: Directory to write reports to
        """
        self.result_dir = result_dir
        os.makedirs(result_dir, exist_ok=True)

    def generate_report(
        self,
        suite_results: List[SuiteResult],
        endpoints: Dict[str, str],
        execution_time_ms: float,
    ) -> TckReport:
        """
        Stamp the results of a run.

        Args:
            suite_results: Results from all suites
            endpoints: The endpoints the run talked to, by role
            execution_time_ms: Total execution time
        """
        return TckReport(
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            endpoints=endpoints,
            execution_time_ms=execution_time_ms,
            suite_results=suite_results,
        )

    def write_json_report(self, report: TckReport, filename: str = "tck-report.json") -> str:
        """Write the report as JSON, grouped by suite; returns the path."""
        path = os.path.join(self.result_dir, filename)
        document = {
            "timestamp": report.timestamp,
            "endpoints": report.endpoints,
            "execution_time_ms": report.execution_time_ms,
            "totals": {status: report.counts[status] for status in STATUSES},
            "suites": [
                {
                    "name": suite.suite_name,
                    "totals": {status: suite.counts[status] for status in STATUSES},
                    "pass_rate": suite.pass_rate,
                    "execution_time_ms": suite.execution_time_ms,
                    "scenarios": [
                        {
                            "name": r.scenario_name,
                            "status": r.status,
                            "execution_time_ms": r.execution_time_ms,
                            "error": r.error,
                            "divergences": [asdict(d) for d in r.divergences],
                        }
                        for r in suite.test_results
                    ],
                }
                for suite in report.suite_results
            ],
        }

        with open(path, "w") as f:
            # Observed values may be read failures rather than plain JSON.
            json.dump(document, f, indent=2, default=str)

        return path

    def write_summary(self, report: TckReport, filename: str = "tck-summary.txt") -> str:
        """Write the human-readable summary; returns the path."""
        path = os.path.join(self.result_dir, filename)

        with open(path, "w") as f:
            f.write("\n".join(self.summary_lines(report)))

        return path

    def summary_lines(self, report: TckReport) -> List[str]:
        counts = report.counts
        lines = [RULE, "Ledger Transfer TCK Report", RULE, f"Timestamp: {report.timestamp}"]
        lines.extend(f"{role}: {url}" for role, url in report.endpoints.items())

        lines.extend(["", "Results:"])
        lines.extend(f"  {status:<9} {counts[status]}" for status in STATUSES)
        lines.append(f"  Pass Rate: {report.pass_rate:.1f}%")
        lines.append(f"  Duration:  {report.execution_time_ms:.2f}ms")

        lines.extend(["", "Suite Results:"])
        for suite in report.suite_results:
            suite_counts = suite.counts
            executed = suite_counts[PASS] + suite_counts[FAIL] + suite_counts[TIMEOUT]
            lines.append(
                f"  [{FAIL if suite.failed else PASS}] {suite.suite_name}: "
                f"{suite_counts[PASS]}/{executed} ({suite.pass_rate:.1f}%)"
            )
            for result in suite.test_results:
                if result.status == PASS:
                    continue
                line = f"      [{result.status}] {result.scenario_name}"
                lines.append(f"{line}: {result.error}" if result.error else line)
                for div in result.divergences:
                    lines.append(f"        - {div.field} [{div.source}]: expected {div.expected}, got {div.actual}")
                    if div.details:
                        lines.append(f"          {div.details}")

        lines.extend(["", RULE])
        return lines

    def print_summary(self, report: TckReport) -> None:
        """Print summary to console."""
        counts = report.counts
        print("\n" + RULE)
        print("Ledger Transfer TCK Results")
        print(RULE)
        print(f"SUT: {report.endpoints.get('json_rpc', '')}")
        print("  ".join(f"{status}: {counts[status]}" for status in STATUSES))
        print(f"Pass Rate: {report.pass_rate:.1f}%")

        failures = [r for s in report.suite_results for r in s.test_results if r.failed]
        if failures:
            print()
            for result in failures[:10]:
                print(f"  [{result.status}] {result.suite_name}/{result.scenario_name}")
            if len(failures) > 10:
                print(f"  ... and {len(failures) - 10} more")

        print()
        print(f"Overall: {'FAILED' if report.failed else 'PASSED'}")
        print(RULE)
