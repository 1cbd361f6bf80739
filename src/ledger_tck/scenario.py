"""
Scenario catalogue: YAML model, setup steps and the runner.

A catalogue file looks like::

    suite: hbar-transfers
    setup:
      - account: {name: sender, initial_balance: 10}
      - account: {name: receiver}
    scenarios:
      - name: transfer-whole-balance
        request:
          method: transferCrypto
          params:
            transfers:
              - hbar: {accountId: $sender, amount: "-10"}
              - hbar: {accountId: $receiver, amount: "10"}
            commonTransactionParams: {signers: [$sender_key]}
        expect:
          success: true
          hbar_balances:
            - {account: $sender, balance: 0}
            - {account: $receiver, balance: 10}

Suite setup runs again for every scenario, inside the scenario's own
fixture scope, followed by the scenario's own ``setup`` steps.
"""

import asyncio
import glob
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import yaml

from .comparator import Divergence, ExpectedOutcome, OutcomeComparator
from .context import SuiteContext
from .errors import ErrorCategory, FixtureSetupError, ScenarioFormatError, ScenarioTimeout
from .fixtures import Fixtures
from .reporter import ReportGenerator, ScenarioResult, SuiteResult, TckReport
from .types import KeyType, Method, RawRequest, TokenType, serial_numbers
from .verify import Check, StateVerifier, retry_until_ok

logger = logging.getLogger(__name__)

Bindings = Dict[str, Any]

OPERATOR = "operator"
OPERATOR_KEY = "operator_key"

# State checks stop retrying once this share of the scenario ceiling is spent,
# so a non-converging scenario still ends with its last observations.
CHECK_DEADLINE_SHARE = 0.9


# --- Placeholders ---


def resolve(value: Any, bindings: Bindings) -> Any:
    """Replace ``$name`` strings, recursively, with their bound values."""
    if isinstance(value, str) and value.startswith("$"):
        name = value[1:]
        if name not in bindings:
            raise ScenarioFormatError(f"unbound placeholder '{value}'")
        return bindings[name]
    if isinstance(value, dict):
        return {k: resolve(v, bindings) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve(v, bindings) for v in value]
    return value


# --- Model ---


@dataclass
class SetupStep:
    kind: str
    args: Dict[str, Any]


@dataclass
class Expectation:
    outcome: ExpectedOutcome
    hbar_balances: List[Dict[str, Any]] = field(default_factory=list)
    token_balances: List[Dict[str, Any]] = field(default_factory=list)
    nft_possession: List[Dict[str, Any]] = field(default_factory=list)
    pending_airdrops: List[Dict[str, Any]] = field(default_factory=list)

    def checks(self, verifier: StateVerifier, bindings: Bindings) -> List[Check]:
        """Read-side checks for the state a successful operation leaves behind."""
        checks = []
        for entry in resolve(self.hbar_balances, bindings):
            checks.append(verifier.hbar_balance(entry["account"], int(entry["balance"])))
        for entry in resolve(self.token_balances, bindings):
            checks.append(
                verifier.token_balance(entry["account"], entry["token"], int(entry["balance"]))
            )
        for entry in resolve(self.nft_possession, bindings):
            checks.append(
                verifier.nft_possession(
                    entry["account"],
                    entry["token"],
                    entry["serial"],
                    bool(entry.get("possess", True)),
                )
            )
        for entry in resolve(self.pending_airdrops, bindings):
            checks.append(
                verifier.pending_airdrop(
                    entry["sender"], entry["receiver"], entry["token"], int(entry["amount"])
                )
            )
        return checks


@dataclass
class Scenario:
    name: str
    method: Method
    params: Dict[str, Any]
    expect: Expectation
    setup: List[SetupStep] = field(default_factory=list)
    description: str = ""


@dataclass
class ScenarioSuite:
    name: str
    path: str
    setup: List[SetupStep]
    scenarios: List[Scenario]


def _parse_setup(raw: Any, where: str) -> List[SetupStep]:
    steps = []
    for entry in raw or []:
        if not isinstance(entry, dict) or len(entry) != 1:
            raise ScenarioFormatError(f"{where}: setup steps are single-key mappings, got {entry!r}")
        kind, args = next(iter(entry.items()))
        if kind not in SETUP_STEPS:
            raise ScenarioFormatError(f"{where}: unknown setup step '{kind}'")
        if not isinstance(args, dict):
            raise ScenarioFormatError(f"{where}: arguments of '{kind}' must be a mapping")
        steps.append(SetupStep(kind, args))
    return steps


def _parse_expect(raw: Any, where: str) -> Expectation:
    if not isinstance(raw, dict):
        raise ScenarioFormatError(f"{where}: missing expect block")
    try:
        outcome = ExpectedOutcome(
            success=bool(raw.get("success", False)),
            status=raw.get("status"),
            internal_error=bool(raw.get("internal_error", False)),
            code=raw.get("code"),
        )
    except ValueError as e:
        raise ScenarioFormatError(f"{where}: {e}") from e

    expectation = Expectation(
        outcome,
        hbar_balances=raw.get("hbar_balances", []),
        token_balances=raw.get("token_balances", []),
        nft_possession=raw.get("nft_possession", []),
        pending_airdrops=raw.get("pending_airdrops", []),
    )
    has_state = any([
        expectation.hbar_balances,
        expectation.token_balances,
        expectation.nft_possession,
        expectation.pending_airdrops,
    ])
    if has_state and not outcome.success:
        raise ScenarioFormatError(f"{where}: state expectations need success: true")
    return expectation


def _parse_scenario(raw: Dict[str, Any], suite_name: str) -> Scenario:
    name = raw.get("name")
    if not name:
        raise ScenarioFormatError(f"{suite_name}: scenario without a name")
    where = f"{suite_name}/{name}"

    request = raw.get("request") or {}
    try:
        method = Method(request.get("method"))
    except ValueError:
        raise ScenarioFormatError(f"{where}: unknown method {request.get('method')!r}")

    return Scenario(
        name=name,
        method=method,
        params=request.get("params") or {},
        expect=_parse_expect(raw.get("expect"), where),
        setup=_parse_setup(raw.get("setup"), where),
        description=raw.get("description", ""),
    )


def load_suite(path: str) -> ScenarioSuite:
    """Load and validate one catalogue file."""
    with open(path) as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ScenarioFormatError(f"{path}: not a mapping")

    name = data.get("suite") or Path(path).stem
    return ScenarioSuite(
        name=name,
        path=path,
        setup=_parse_setup(data.get("setup"), name),
        scenarios=[_parse_scenario(s, name) for s in data.get("scenarios", [])],
    )


def find_scenario_files(scenario_dir: str) -> List[str]:
    """Find all scenario YAML files in directory."""
    patterns = [
        os.path.join(scenario_dir, "**", "*.yaml"),
        os.path.join(scenario_dir, "**", "*.yml"),
    ]

    files = []
    for pattern in patterns:
        files.extend(glob.glob(pattern, recursive=True))

    return sorted(files)


# --- Setup steps ---


async def _bind_key(fx: Fixtures, bindings: Bindings, name: str, args: Dict[str, Any]) -> str:
    """Use the given key, or generate one and bind it as ``<name>_key``."""
    if args.get("key") is not None:
        return args["key"]
    key = await fx.generate_key(KeyType(args.get("key_type", KeyType.ED25519_PRIVATE.value)))
    bindings[f"{name}_key"] = key.key
    return key.key


async def _step_key(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    key = await fx.generate_key(
        KeyType(args.get("type", KeyType.ED25519_PRIVATE.value)),
        from_key=args.get("from"),
    )
    bindings[args["name"]] = key.key


async def _step_account(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    name = args["name"]
    key = await _bind_key(fx, bindings, name, args)
    account_id = await fx.create_account(
        key,
        initial_balance=args.get("initial_balance"),
        max_auto_token_associations=args.get("max_auto_token_associations"),
        receiver_signature_required=args.get("receiver_signature_required"),
        signers=[key] if args.get("receiver_signature_required") else (),
    )
    bindings[name] = account_id
    if args.get("reclaim"):
        fx.reclaim_account(account_id, key)


async def _step_token(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    name = args["name"]
    key = await _bind_key(fx, bindings, name, args)
    token_type = TokenType(args.get("type", TokenType.FUNGIBLE.value))
    if token_type is TokenType.FUNGIBLE:
        token_id = await fx.create_ft_token(
            key,
            initial_supply=int(args.get("initial_supply", 1_000_000)),
            decimals=args.get("decimals"),
            treasury_account_id=args.get("treasury"),
            freeze_default=args.get("freeze_default"),
            max_supply=args.get("max_supply"),
            signers=args.get("signers", ()),
        )
    else:
        token_id = await fx.create_nft_token(
            key,
            supply_key=args.get("supply_key"),
            treasury_account_id=args.get("treasury"),
            signers=args.get("signers", ()),
        )
    bindings[name] = token_id


async def _step_mint(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    serials = await fx.mint_token(
        args["token"],
        args["supply_key"],
        metadata=args.get("metadata", ["1234"]),
        amount=args.get("amount"),
    )
    names = args.get("names") or ([args["name"]] if "name" in args else [])
    for bound, serial in zip(names, serials):
        bindings[bound] = serial


async def _step_associate(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    await fx.associate_token(args["account"], args["key"], *args["tokens"])


async def _step_fund(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    account_id = args["account"]
    if "hbar" in args:
        await fx.fund_hbar(account_id, int(args["hbar"]))
    elif "nft" in args:
        await fx.fund_nft(account_id, args["nft"], str(args["serial"]))
    else:
        await fx.fund_token(account_id, args["token"], int(args["amount"]), args.get("decimals"))


async def _step_approve(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    owner, owner_key, spender = args["owner"], args["owner_key"], args["spender"]
    if "hbar" in args:
        await fx.approve_hbar_allowance(owner, owner_key, spender, int(args["hbar"]))
    elif "serials" in args or "approved_for_all" in args:
        await fx.approve_nft_allowance(
            owner,
            owner_key,
            spender,
            args["token"],
            serial_numbers=args.get("serials", ()),
            approved_for_all=args.get("approved_for_all"),
        )
    else:
        await fx.approve_token_allowance(owner, owner_key, spender, args["token"], int(args["amount"]))


async def _step_freeze(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    await fx.freeze_token(args["token"], args["account"], args["key"])


async def _step_pause(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    await fx.pause_token(args["token"], args["key"])


async def _step_delete_token(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    await fx.delete_token(args["token"], args["key"])


async def _step_delete_account(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    await fx.delete_account(args["account"], args["key"], args.get("beneficiary"))


async def _step_update_account(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    await fx.update_account(
        args["account"],
        args["key"],
        max_auto_token_associations=args.get("max_auto_token_associations"),
        receiver_signature_required=args.get("receiver_signature_required"),
    )


async def _step_request(fx: Fixtures, bindings: Bindings, args: Dict[str, Any]) -> None:
    """Any protocol call as a precondition; ``bind`` maps names to result fields."""
    try:
        method = Method(args["method"])
    except ValueError:
        raise ScenarioFormatError(f"unknown method {args['method']!r}")
    result = await fx.require(RawRequest(method, args.get("params", {})), f"{method.value} precondition")
    for name, result_field in (args.get("bind") or {}).items():
        if result_field == "serialNumbers":
            bindings[name] = serial_numbers(result)[0]
        else:
            bindings[name] = result[result_field]


SETUP_STEPS: Dict[str, Callable[[Fixtures, Bindings, Dict[str, Any]], Awaitable[None]]] = {
    "key": _step_key,
    "account": _step_account,
    "token": _step_token,
    "mint": _step_mint,
    "associate": _step_associate,
    "fund": _step_fund,
    "approve": _step_approve,
    "freeze": _step_freeze,
    "pause": _step_pause,
    "delete_token": _step_delete_token,
    "delete_account": _step_delete_account,
    "update_account": _step_update_account,
    "request": _step_request,
}


async def apply_setup(fx: Fixtures, steps: List[SetupStep], bindings: Bindings) -> None:
    for step in steps:
        # Later steps see names bound by earlier ones.
        args = dict(step.args)
        for name, value in args.items():
            if name not in ("name", "names", "bind"):
                args[name] = resolve(value, bindings)
        try:
            await SETUP_STEPS[step.kind](fx, bindings, args)
        except KeyError as e:
            raise ScenarioFormatError(f"setup step '{step.kind}' is missing {e}") from e


# --- Runner ---


class _NotImplementedBySut(Exception):
    pass


class ScenarioRunner:
    """Runs catalogue scenarios against a started ``SuiteContext``."""

    def __init__(
        self,
        ctx: SuiteContext,
        comparator: Optional[OutcomeComparator] = None,
        timeout: Optional[float] = None,
    ):
        self.ctx = ctx
        self.comparator = comparator or OutcomeComparator()
        self.timeout = timeout if timeout is not None else ctx.config.test_timeout

    async def _execute(self, suite: ScenarioSuite, scenario: Scenario, deadline: float) -> List[Divergence]:
        async with Fixtures(self.ctx) as fx:
            bindings: Bindings = {OPERATOR: fx.operator_id, OPERATOR_KEY: fx.operator_key}
            await apply_setup(fx, suite.setup + scenario.setup, bindings)

            request = RawRequest(scenario.method, resolve(scenario.params, bindings))
            outcome = await self.ctx.rpc.submit(request)
            if not outcome.ok and outcome.category is ErrorCategory.NOT_IMPLEMENTED:
                raise _NotImplementedBySut(outcome.describe())

            divergences = self.comparator.compare_outcome(scenario.expect.outcome, outcome, scenario.name)
            if divergences or not outcome.ok:
                return divergences

            # All checks of a scenario share one deadline inside its ceiling.
            verifier = self.ctx.verifier
            for check in scenario.expect.checks(verifier, bindings):
                mismatch = await retry_until_ok(check, verifier.attempts, verifier.delay, deadline)
                divergences.extend(self.comparator.compare_state(mismatch, scenario.name))
            return divergences

    async def run_scenario(self, suite: ScenarioSuite, scenario: Scenario) -> ScenarioResult:
        """Run a single scenario."""
        start_time = time.time()
        deadline = asyncio.get_running_loop().time() + self.timeout * CHECK_DEADLINE_SHARE

        def result(**kwargs: Any) -> ScenarioResult:
            return ScenarioResult(
                scenario_name=scenario.name,
                suite_name=suite.name,
                execution_time_ms=(time.time() - start_time) * 1000,
                **kwargs,
            )

        try:
            divergences = await asyncio.wait_for(self._execute(suite, scenario, deadline), self.timeout)
        except asyncio.TimeoutError:
            return result(passed=False, timed_out=True, error=str(ScenarioTimeout(scenario.name, self.timeout)))
        except _NotImplementedBySut as e:
            return result(passed=False, skipped=True, error=f"not implemented: {e}")
        except FixtureSetupError as e:
            if e.failure.category is ErrorCategory.NOT_IMPLEMENTED:
                return result(passed=False, skipped=True, error=f"not implemented: {e}")
            return result(passed=False, error=f"setup failed: {e}")
        except ScenarioFormatError as e:
            return result(passed=False, error=f"malformed scenario: {e}")
        except Exception as e:
            logger.exception(f"Error running scenario {scenario.name}")
            return result(passed=False, error=str(e))

        return result(passed=not divergences, divergences=divergences)

    async def run_suite(self, suite: ScenarioSuite, stop_on_first_failure: bool = False) -> SuiteResult:
        """Run every scenario of a suite, in order."""
        logger.info(f"Running suite: {suite.name}")

        start_time = time.time()
        results = []

        for scenario in suite.scenarios:
            result = await self.run_scenario(suite, scenario)
            results.append(result)

            logger.info(f"  [{result.status}] {result.scenario_name}")
            if result.error:
                logger.info(f"      {result.error}")

            if result.failed and stop_on_first_failure:
                break

        return SuiteResult(
            suite_name=suite.name,
            scenario_count=len(suite.scenarios),
            execution_time_ms=(time.time() - start_time) * 1000,
            test_results=results,
        )

    async def run_all(self, suites: List[ScenarioSuite], reporter: ReportGenerator) -> TckReport:
        """Run all suites and aggregate a report."""
        start_time = time.time()

        suite_results = []
        for suite in suites:
            suite_result = await self.run_suite(suite, self.ctx.config.stop_on_first_failure)
            suite_results.append(suite_result)
            if suite_result.failed and self.ctx.config.stop_on_first_failure:
                break

        return reporter.generate_report(
            suite_results=suite_results,
            endpoints={
                "json_rpc": self.ctx.config.json_rpc.endpoint,
                "consensus": self.ctx.config.consensus.endpoint,
                "mirror": self.ctx.config.mirror.endpoint,
            },
            execution_time_ms=(time.time() - start_time) * 1000,
        )
