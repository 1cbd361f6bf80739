"""Strongly consistent read path: queries answered by the consensus node.

Queries go to a reference SDK server of their own (`CONSENSUS_QUERY_URL`),
never to the SUT. That server asks the consensus node directly, so its
answers pass through neither the implementation under test nor an index.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from .errors import ErrorCategory, SourceReadError
from .protocol import ProtocolClient
from .types import (
    GetAccountInfo,
    GetTokenInfo,
    GetTokenNftInfo,
    Identity,
    NftRecord,
    OperationRequest,
    nft_id,
)

logger = logging.getLogger(__name__)

SOURCE = "consensus"

# Raised while parsing a malformed answer.
PARSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


def _as_int(value: Any) -> int:
    # Balances arrive as decimal strings or plain numbers.
    return int(str(value))


class ConsensusClient:
    """StrongSource read API."""

    def __init__(self, client: ProtocolClient):
        self.client = client

    async def _query(self, request: OperationRequest) -> Dict[str, Any]:
        outcome = await self.client.submit(request)
        if not outcome.ok:
            raise SourceReadError(SOURCE, f"{request.to_params()} failed: {outcome.describe()}")
        return outcome.result

    async def get_account_info(self, account_id: Identity) -> Dict[str, Any]:
        return await self._query(GetAccountInfo(account_id))

    async def hbar_balance(self, account_id: Identity) -> int:
        info = await self.get_account_info(account_id)
        if "balance" not in info:
            raise SourceReadError(SOURCE, f"account {account_id} info has no balance")
        try:
            return _as_int(info["balance"])
        except ValueError as e:
            raise SourceReadError(SOURCE, f"account {account_id} balance {info['balance']!r}: {e}") from e

    async def token_balances(self, account_id: Identity) -> Dict[Identity, int]:
        """Balances of every token related to the account."""
        info = await self.get_account_info(account_id)
        relationships = info.get("tokenRelationships") or {}

        balances: Dict[Identity, int] = {}
        try:
            if isinstance(relationships, Mapping):
                for token_id, rel in relationships.items():
                    balances[str(token_id)] = _as_int(rel.get("balance", 0))
            else:
                for rel in relationships:
                    balances[str(rel["tokenId"])] = _as_int(rel.get("balance", 0))
        except PARSE_ERRORS as e:
            raise SourceReadError(
                SOURCE, f"account {account_id} token relationships: {type(e).__name__}: {e}"
            ) from e
        return balances

    async def nft_holders(self, token_id: Identity, serial_number: str) -> List[NftRecord]:
        """Current owner record(s) of one NFT; empty when it does not exist."""
        outcome = await self.client.submit(GetTokenNftInfo(nft_id(token_id, serial_number)))
        if not outcome.ok:
            if outcome.category is ErrorCategory.BUSINESS_REJECTION and outcome.status == "INVALID_NFT_ID":
                logger.debug(f"NFT {token_id}/{serial_number} not found on consensus")
                return []
            raise SourceReadError(SOURCE, f"NFT {token_id}/{serial_number}: {outcome.describe()}")

        result = outcome.result
        records = []
        try:
            for entry in result.get("nfts", [result]):
                token, _, serial = str(entry.get("nftId", "")).partition("/")
                records.append(
                    NftRecord(
                        owner=str(entry.get("accountId", "")),
                        token_id=token,
                        serial_number=serial,
                        spender=entry.get("spenderId"),
                    )
                )
        except PARSE_ERRORS as e:
            raise SourceReadError(SOURCE, f"NFT {token_id}/{serial_number}: {type(e).__name__}: {e}") from e
        return records

    async def get_token_info(self, token_id: Identity) -> Dict[str, Any]:
        return await self._query(GetTokenInfo(token_id))
