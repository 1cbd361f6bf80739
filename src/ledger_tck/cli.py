#!/usr/bin/env python3
"""
Ledger transfer TCK runner.

Runs the YAML scenario catalogue against a SUT and its two read sources.
"""

import asyncio
import logging
import os
import sys
from typing import List, Optional

import click

from .config import TckConfig
from .errors import ScenarioFormatError, TckError
from .context import SuiteContext
from .reporter import ReportGenerator
from .scenario import ScenarioRunner, ScenarioSuite, find_scenario_files, load_suite

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def _load_suites(path: str) -> List[ScenarioSuite]:
    if os.path.isfile(path):
        files = [path]
    else:
        files = find_scenario_files(path)

    if not files:
        logger.error(f"No scenario files found in {path}")
        sys.exit(1)

    try:
        return [load_suite(f) for f in files]
    except ScenarioFormatError as e:
        logger.error(f"Invalid scenario catalogue: {e}")
        sys.exit(1)


@click.group()
def main() -> None:
    """Ledger transfer TCK."""


@main.command()
@click.option(
    "--scenarios",
    default=None,
    help="Path to scenario directory or specific YAML file",
)
@click.option(
    "--rpc-url",
    default=None,
    help="JSON-RPC endpoint of the SUT",
)
@click.option(
    "--consensus-url",
    default=None,
    help="Reference SDK server answering consensus queries",
)
@click.option(
    "--mirror-url",
    default=None,
    help="Mirror node REST base URL",
)
@click.option(
    "--result-dir",
    default=None,
    help="Directory to write results",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--stop-on-failure",
    is_flag=True,
    help="Stop on first scenario failure",
)
def run(
    scenarios: Optional[str],
    rpc_url: Optional[str],
    consensus_url: Optional[str],
    mirror_url: Optional[str],
    result_dir: Optional[str],
    verbose: bool,
    stop_on_failure: bool,
) -> None:
    """Run the scenario catalogue."""

    # Load config from environment, then override with CLI args
    config = TckConfig.from_env()

    if rpc_url:
        config.json_rpc.endpoint = rpc_url
    if consensus_url:
        config.consensus.endpoint = consensus_url
    if mirror_url:
        config.mirror.endpoint = mirror_url
    if result_dir:
        config.result_dir = result_dir
    if verbose:
        config.verbose = True
    if stop_on_failure:
        config.stop_on_first_failure = True

    _configure_logging(config.verbose)

    suites = _load_suites(scenarios or config.scenario_dir)
    logger.info(f"Loaded {len(suites)} suites, {sum(len(s.scenarios) for s in suites)} scenarios")

    async def execute() -> int:
        reporter = ReportGenerator(config.result_dir)

        async with SuiteContext(config) as ctx:
            report = await ScenarioRunner(ctx).run_all(suites, reporter)

        reporter.write_json_report(report)
        reporter.write_summary(report)
        reporter.print_summary(report)

        return 1 if report.failed else 0

    try:
        exit_code = asyncio.run(execute())
    except TckError as e:
        logger.error(str(e))
        exit_code = 2
    sys.exit(exit_code)


@main.command(name="list")
@click.option(
    "--scenarios",
    default=None,
    help="Path to scenario directory or specific YAML file",
)
def list_scenarios(scenarios: Optional[str]) -> None:
    """List the suites and scenarios of a catalogue."""
    _configure_logging(False)
    config = TckConfig.from_env()

    for suite in _load_suites(scenarios or config.scenario_dir):
        click.echo(f"{suite.name} ({suite.path})")
        for scenario in suite.scenarios:
            line = f"  - {scenario.name} [{scenario.method.value}]"
            if scenario.description:
                line += f": {scenario.description}"
            click.echo(line)


if __name__ == "__main__":
    main()
