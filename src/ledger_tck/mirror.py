"""Eventually consistent read path: the mirror node REST API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import aiohttp

from .config import EndpointConfig
from .errors import SourceReadError
from .types import Identity, NftRecord

logger = logging.getLogger(__name__)

SOURCE = "mirror"
API_PREFIX = "/api/v1"
# Upper bound on followed `links.next` pages for one listing.
MAX_PAGES = 50
# Raised while parsing a malformed document.
PARSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


class MirrorNodeClient:
    """EventualSource read API."""

    def __init__(self, config: EndpointConfig):
        self.config = config
        self.session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    def _url(self, path: str) -> str:
        base = self.config.endpoint.rstrip("/")
        if path.startswith(API_PREFIX):
            return urljoin(base + "/", path.lstrip("/"))
        return f"{base}{API_PREFIX}{path}"

    async def fetch(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """GET one document; any non-200 or empty answer is a read error."""
        if self.session is None:
            raise RuntimeError(f"[{self.config.name}] client is not connected")

        url = self._url(path)
        try:
            async with self.session.get(url, params=params) as resp:
                if resp.status != 200:
                    raise SourceReadError(SOURCE, f"GET {url} -> HTTP {resp.status}", resp.status)
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceReadError(SOURCE, f"GET {url} failed: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise SourceReadError(SOURCE, f"GET {url} returned invalid JSON: {e}") from e

        if not data:
            raise SourceReadError(SOURCE, f"GET {url}: no data received")
        return data

    async def fetch_all(self, path: str, key: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """GET a listing and follow `links.next` until exhausted."""
        items: List[Dict[str, Any]] = []
        page = await self.fetch(path, params)
        for _ in range(MAX_PAGES):
            items.extend(page.get(key) or [])
            next_link = (page.get("links") or {}).get("next")
            if not next_link:
                return items
            page = await self.fetch(next_link)
        logger.warning(f"[{SOURCE}] {path}: stopped after {MAX_PAGES} pages")
        return items

    # --- Accounts ---

    async def get_account(self, account_id: Identity) -> Dict[str, Any]:
        return await self.fetch(f"/accounts/{account_id}")

    async def hbar_balance(self, account_id: Identity) -> int:
        data = await self.get_account(account_id)
        balance = (data.get("balance") or {}).get("balance")
        if balance is None:
            raise SourceReadError(SOURCE, f"account {account_id} has no balance yet")
        try:
            return int(balance)
        except (TypeError, ValueError) as e:
            raise SourceReadError(SOURCE, f"account {account_id} balance {balance!r}: {e}") from e

    async def token_balances(self, account_id: Identity) -> Dict[Identity, int]:
        """Token balances echoed in the account's balance snapshot."""
        data = await self.get_account(account_id)
        tokens = (data.get("balance") or {}).get("tokens") or []
        try:
            return {str(t["token_id"]): int(t["balance"]) for t in tokens}
        except PARSE_ERRORS as e:
            raise SourceReadError(SOURCE, f"account {account_id} token balances: {type(e).__name__}: {e}") from e

    async def account_nfts(self, account_id: Identity, token_id: Optional[Identity] = None) -> List[NftRecord]:
        params = {"token.id": token_id} if token_id else None
        nfts = await self.fetch_all(f"/accounts/{account_id}/nfts", "nfts", params)
        try:
            return [
                NftRecord(
                    owner=str(n.get("account_id", "")),
                    token_id=str(n.get("token_id", "")),
                    serial_number=str(n.get("serial_number", "")),
                    spender=n.get("spender"),
                    delegating_spender=n.get("delegating_spender"),
                )
                for n in nfts
            ]
        except PARSE_ERRORS as e:
            raise SourceReadError(SOURCE, f"account {account_id} NFTs: {type(e).__name__}: {e}") from e

    # --- Allowances ---

    async def hbar_allowances(self, owner_id: Identity) -> List[Dict[str, Any]]:
        return await self.fetch_all(f"/accounts/{owner_id}/allowances/crypto", "allowances")

    async def token_allowances(self, owner_id: Identity) -> List[Dict[str, Any]]:
        return await self.fetch_all(f"/accounts/{owner_id}/allowances/tokens", "allowances")

    async def nft_allowances(self, owner_id: Identity) -> List[Dict[str, Any]]:
        return await self.fetch_all(f"/accounts/{owner_id}/allowances/nfts", "allowances")

    # --- Tokens and airdrops ---

    async def get_token(self, token_id: Identity) -> Dict[str, Any]:
        return await self.fetch(f"/tokens/{token_id}")

    async def outstanding_airdrops(self, sender_id: Identity) -> List[Dict[str, Any]]:
        return await self.fetch_all(f"/accounts/{sender_id}/airdrops/outstanding", "airdrops")

    async def pending_airdrops(self, receiver_id: Identity) -> List[Dict[str, Any]]:
        return await self.fetch_all(f"/accounts/{receiver_id}/airdrops/pending", "airdrops")
