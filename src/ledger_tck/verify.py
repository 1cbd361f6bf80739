"""
Dual-source state verification with bounded retry.

After a mutation settles on the consensus node it still has to be indexed by
the mirror, so a single read right after the submit is flaky. A *check* reads
both sources once and returns ``None`` when every source agrees with the
expectation, or a ``Mismatch`` holding what each source reported.
``retry_until_ok`` re-runs a check with a fixed delay until it converges or
the attempt budget is spent; ``verify_with_retry`` turns the last mismatch
into a ``ConvergenceTimeout`` at the test boundary.

Only reads are ever repeated here. The operation under test is submitted
exactly once by the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from .config import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_DELAY
from .consensus import ConsensusClient
from .errors import ConvergenceTimeout, SourceReadError
from .mirror import MirrorNodeClient
from .types import Identity

logger = logging.getLogger(__name__)

CONSENSUS = "consensus"
MIRROR = "mirror"


@dataclass(frozen=True)
class ReadFailed:
    """Stands in for a value a source could not produce."""
    detail: str

    def __repr__(self) -> str:
        return f"<read failed: {self.detail}>"


@dataclass(frozen=True)
class Observation:
    source: str
    expected: Any
    actual: Any

    @property
    def matched(self) -> bool:
        return not isinstance(self.actual, ReadFailed) and self.actual == self.expected


@dataclass(frozen=True)
class Mismatch:
    """What each source last reported for a check that did not converge."""
    subject: str
    observations: Tuple[Observation, ...]

    def describe(self) -> str:
        parts = [
            f"{o.source}: expected {o.expected!r}, got {o.actual!r}"
            for o in self.observations
        ]
        return f"{self.subject}: " + "; ".join(parts)


CheckResult = Optional[Mismatch]
Check = Callable[[], Awaitable[CheckResult]]


def judge(subject: str, observations: List[Observation]) -> CheckResult:
    if all(o.matched for o in observations):
        return None
    return Mismatch(subject, tuple(observations))


async def observe(source: str, expected: Any, read: Callable[[], Awaitable[Any]]) -> Observation:
    """Run one read; a read error is recorded as the observed value."""
    try:
        actual = await read()
    except SourceReadError as e:
        actual = ReadFailed(e.detail)
    return Observation(source, expected, actual)


async def retry_until_ok(
    check: Check,
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
    delay: float = DEFAULT_RETRY_DELAY,
    deadline: Optional[float] = None,
) -> CheckResult:
    """Run ``check`` until it returns ``None``; return the last mismatch otherwise.

    ``deadline`` is an event loop time (``loop.time()``) after which no new
    attempt is started. The first attempt always runs, so a check whose
    deadline has already passed still reports what the sources hold.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    loop = asyncio.get_running_loop()
    mismatch: CheckResult = None
    for attempt in range(1, attempts + 1):
        mismatch = await check()
        if mismatch is None:
            if attempt > 1:
                logger.debug(f"converged after {attempt} attempts")
            return None
        logger.debug(f"attempt {attempt}/{attempts}: {mismatch.describe()}")
        if attempt == attempts:
            break
        if deadline is not None and loop.time() + delay >= deadline:
            logger.debug(f"deadline reached after {attempt} attempts")
            break
        await asyncio.sleep(delay)
    return mismatch


async def verify_with_retry(
    check: Check,
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
    delay: float = DEFAULT_RETRY_DELAY,
) -> None:
    mismatch = await retry_until_ok(check, attempts, delay)
    if mismatch is not None:
        raise ConvergenceTimeout(mismatch, attempts)


class StateVerifier:
    """Builds checks against both read sources and asserts them with retry."""

    def __init__(
        self,
        consensus: ConsensusClient,
        mirror: MirrorNodeClient,
        attempts: int = DEFAULT_RETRY_ATTEMPTS,
        delay: float = DEFAULT_RETRY_DELAY,
    ):
        self.consensus = consensus
        self.mirror = mirror
        self.attempts = attempts
        self.delay = delay

    async def eventually(self, check: Check) -> None:
        await verify_with_retry(check, self.attempts, self.delay)

    # --- Checks ---

    def hbar_balance(self, account_id: Identity, expected: int) -> Check:
        async def check() -> CheckResult:
            return judge(
                f"hbar balance of {account_id}",
                [
                    await observe(CONSENSUS, expected, lambda: self.consensus.hbar_balance(account_id)),
                    await observe(MIRROR, expected, lambda: self.mirror.hbar_balance(account_id)),
                ],
            )

        return check

    def token_balance(self, account_id: Identity, token_id: Identity, expected: int) -> Check:
        # Zero-balance relationships may or may not be echoed by a source, so a
        # token missing from a listing reads as 0 rather than as an error.
        async def consensus_read() -> int:
            return (await self.consensus.token_balances(account_id)).get(token_id, 0)

        async def mirror_read() -> int:
            return (await self.mirror.token_balances(account_id)).get(token_id, 0)

        async def check() -> CheckResult:
            return judge(
                f"balance of token {token_id} held by {account_id}",
                [
                    await observe(CONSENSUS, expected, consensus_read),
                    await observe(MIRROR, expected, mirror_read),
                ],
            )

        return check

    def nft_possession(
        self,
        account_id: Identity,
        token_id: Identity,
        serial_number: Union[int, str],
        possess: bool,
    ) -> Check:
        serial = str(serial_number)

        async def consensus_read() -> bool:
            holders = await self.consensus.nft_holders(token_id, serial)
            return any(r.matches(account_id, token_id, serial) for r in holders)

        async def mirror_read() -> bool:
            nfts = await self.mirror.account_nfts(account_id, token_id)
            return any(r.matches(account_id, token_id, serial) for r in nfts)

        async def check() -> CheckResult:
            return judge(
                f"possession of NFT {token_id}/{serial} by {account_id}",
                [
                    await observe(CONSENSUS, possess, consensus_read),
                    await observe(MIRROR, possess, mirror_read),
                ],
            )

        return check

    def token_deleted(self, token_id: Identity) -> Check:
        async def consensus_read() -> bool:
            return bool((await self.consensus.get_token_info(token_id)).get("isDeleted"))

        async def mirror_read() -> bool:
            return bool((await self.mirror.get_token(token_id)).get("deleted"))

        async def check() -> CheckResult:
            return judge(
                f"deletion of token {token_id}",
                [
                    await observe(CONSENSUS, True, consensus_read),
                    await observe(MIRROR, True, mirror_read),
                ],
            )

        return check

    # Allowances and airdrops are only listed by the mirror.

    def hbar_allowance(self, owner_id: Identity, spender_id: Identity, amount: int) -> Check:
        async def read() -> bool:
            return any(
                a.get("owner") == owner_id
                and a.get("spender") == spender_id
                and str(a.get("amount")) == str(amount)
                for a in await self.mirror.hbar_allowances(owner_id)
            )

        async def check() -> CheckResult:
            return judge(
                f"hbar allowance {owner_id} -> {spender_id} of {amount}",
                [await observe(MIRROR, True, read)],
            )

        return check

    def token_allowance(self, owner_id: Identity, spender_id: Identity, token_id: Identity, amount: int) -> Check:
        async def read() -> bool:
            return any(
                a.get("owner") == owner_id
                and a.get("spender") == spender_id
                and a.get("token_id") == token_id
                and str(a.get("amount")) == str(amount)
                for a in await self.mirror.token_allowances(owner_id)
            )

        async def check() -> CheckResult:
            return judge(
                f"allowance of token {token_id} {owner_id} -> {spender_id} of {amount}",
                [await observe(MIRROR, True, read)],
            )

        return check

    def nft_allowance(
        self,
        owner_id: Identity,
        spender_id: Identity,
        token_id: Identity,
        serial_number: Union[int, str],
        exists: bool,
        delegating_spender_id: Optional[Identity] = None,
    ) -> Check:
        serial = str(serial_number)

        async def read() -> bool:
            return any(
                nft.matches(owner_id, token_id, serial)
                and nft.spender == spender_id
                and (delegating_spender_id is None or nft.delegating_spender == delegating_spender_id)
                for nft in await self.mirror.account_nfts(owner_id, token_id)
            )

        async def check() -> CheckResult:
            return judge(
                f"allowance of NFT {token_id}/{serial} {owner_id} -> {spender_id}",
                [await observe(MIRROR, exists, read)],
            )

        return check

    def pending_airdrop(self, sender_id: Identity, receiver_id: Identity, token_id: Identity, amount: int) -> Check:
        def listed(airdrops: List[dict]) -> bool:
            return any(
                a.get("sender_id") == sender_id
                and a.get("receiver_id") == receiver_id
                and a.get("token_id") == token_id
                and str(a.get("amount")) == str(amount)
                for a in airdrops
            )

        async def outgoing() -> bool:
            return listed(await self.mirror.outstanding_airdrops(sender_id))

        async def incoming() -> bool:
            return listed(await self.mirror.pending_airdrops(receiver_id))

        async def check() -> CheckResult:
            return judge(
                f"pending airdrop of {amount} {token_id} {sender_id} -> {receiver_id}",
                [
                    await observe(f"{MIRROR} (outstanding)", True, outgoing),
                    await observe(f"{MIRROR} (pending)", True, incoming),
                ],
            )

        return check

    # --- Assertions ---

    async def assert_hbar_balance(self, account_id: Identity, expected: int) -> None:
        await self.eventually(self.hbar_balance(account_id, expected))

    async def assert_token_balance(self, account_id: Identity, token_id: Identity, expected: int) -> None:
        await self.eventually(self.token_balance(account_id, token_id, expected))

    async def assert_nft_possession(
        self,
        account_id: Identity,
        token_id: Identity,
        serial_number: Union[int, str],
        possess: bool,
    ) -> None:
        await self.eventually(self.nft_possession(account_id, token_id, serial_number, possess))
