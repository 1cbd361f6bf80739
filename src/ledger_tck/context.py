"""Suite-wide session: configuration, connected clients and the operator."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .config import TckConfig
from .consensus import ConsensusClient
from .errors import FixtureSetupError
from .mirror import MirrorNodeClient
from .protocol import ProtocolClient
from .types import Identity, OperationOutcome, Reset, Setup
from .verify import StateVerifier

logger = logging.getLogger(__name__)


class SuiteContext:
    """Explicit replacement for process-wide operator and session state.

    Create one per suite, ``await start()`` (or use ``async with``) before the
    first test and ``await stop()`` after the last. ``reset()`` returns the
    SUT's session to a clean state between tests.
    """

    def __init__(self, config: TckConfig):
        self.config = config
        self.rpc = ProtocolClient(config.json_rpc)
        # Reference SDK server for StrongSource reads, never the SUT itself.
        self.consensus_rpc = ProtocolClient(config.consensus)
        self.consensus = ConsensusClient(self.consensus_rpc)
        self.mirror = MirrorNodeClient(config.mirror)
        self.verifier = StateVerifier(
            self.consensus,
            self.mirror,
            attempts=config.retry_attempts,
            delay=config.retry_delay,
        )

    @property
    def operator_id(self) -> Identity:
        return self.config.operator.account_id or ""

    @property
    def operator_key(self) -> str:
        return self.config.operator.private_key or ""

    def _setup_request(self) -> Setup:
        config = self.config
        if config.network == "local":
            return Setup(
                operator_account_id=self.operator_id,
                operator_private_key=self.operator_key,
                node_ip=config.node_ip,
                node_account_id=config.node_account_id,
                mirror_network_ip=config.mirror_network,
            )
        # Testnet nodes come from the SUT's own address book.
        return Setup(self.operator_id, self.operator_key)

    async def connect(self) -> None:
        await self.rpc.connect()
        await self.consensus_rpc.connect()
        await self.mirror.connect()

    async def close(self) -> None:
        await self.rpc.close()
        await self.consensus_rpc.close()
        await self.mirror.close()

    async def set_operator(self) -> None:
        """Register the operator with the SUT and with the consensus reader."""
        request = self._setup_request()
        for client in (self.rpc, self.consensus_rpc):
            outcome = await client.submit(request)
            if not outcome.ok:
                raise FixtureSetupError(f"setup on {client.config.endpoint}", outcome)
        logger.info(f"Operator {self.operator_id} set on {self.config.json_rpc.endpoint}")

    async def start(self) -> None:
        self.config.validate()
        await self.connect()
        try:
            await self.set_operator()
        except BaseException:
            await self.close()
            raise

    async def reset(self) -> OperationOutcome:
        """Reset the SUT's session; the operator has to be set again after it."""
        return await self.rpc.submit(Reset())

    async def stop(self) -> None:
        try:
            outcome = await self.reset()
            if not outcome.ok:
                logger.warning(f"Session reset failed: {outcome.describe()}")
        finally:
            await self.close()

    async def __aenter__(self) -> "SuiteContext":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> Optional[bool]:
        await self.stop()
        return None
