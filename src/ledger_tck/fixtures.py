"""Test fixtures: keys, accounts, tokens and allowances as preconditions.

Every helper here must succeed. A failure is a broken precondition, not a
test result, so it raises ``FixtureSetupError`` instead of handing back an
outcome to assert on.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .context import SuiteContext
from .errors import FixtureSetupError
from .types import (
    AssociateToken,
    ApproveAllowance,
    CommonTransactionParams,
    CreateAccount,
    CreateToken,
    CustomFee,
    DeleteAccount,
    DeleteToken,
    DissociateToken,
    FreezeToken,
    GenerateKey,
    HbarAllowance,
    HbarTransfer,
    Identity,
    KeyLike,
    KeyMaterial,
    KeyType,
    MintToken,
    NftAllowance,
    NftTransfer,
    OperationRequest,
    PauseToken,
    TokenAllowance,
    TokenTransfer,
    TokenType,
    TransferCrypto,
    UnfreezeToken,
    UnpauseToken,
    UpdateAccount,
    UpdateToken,
    UpdateTokenFeeSchedule,
    serial_numbers,
    signed_by,
)

logger = logging.getLogger(__name__)

Cleanup = Callable[[], Awaitable[Any]]


def _describe(request: OperationRequest) -> str:
    return f"{type(request).__name__} precondition"


class Fixtures:
    """Per-test fixture scope bound to a ``SuiteContext``.

    Use as ``async with Fixtures(ctx) as fx:``. Cleanups registered with
    ``defer`` run in reverse order when the scope exits, whether the test
    passed or not; a failing cleanup is logged and never masks the test's
    own outcome.
    """

    def __init__(self, ctx: SuiteContext, reset_on_exit: bool = True):
        self.ctx = ctx
        self.reset_on_exit = reset_on_exit
        self._cleanups: List[Tuple[str, Cleanup]] = []

    async def __aenter__(self) -> "Fixtures":
        await self.ctx.set_operator()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.run_cleanups()
        if self.reset_on_exit:
            self.defer("session reset", self._reset)
            await self.run_cleanups()

    async def _reset(self) -> None:
        outcome = await self.ctx.reset()
        if not outcome.ok:
            raise FixtureSetupError("session reset", outcome)

    def defer(self, description: str, cleanup: Cleanup) -> None:
        self._cleanups.append((description, cleanup))

    async def run_cleanups(self) -> None:
        while self._cleanups:
            description, cleanup = self._cleanups.pop()
            try:
                await cleanup()
            except Exception as e:
                logger.warning(f"Cleanup '{description}' failed: {e}")

    @property
    def operator_id(self) -> Identity:
        return self.ctx.operator_id

    @property
    def operator_key(self) -> str:
        return self.ctx.operator_key

    async def require(self, request: OperationRequest, what: Optional[str] = None) -> Dict[str, Any]:
        """Submit a precondition and return its result, or abort the test."""
        outcome = await self.ctx.rpc.submit(request)
        if not outcome.ok:
            raise FixtureSetupError(what or _describe(request), outcome)
        return outcome.result

    # --- Keys ---

    async def generate_key(
        self,
        key_type: KeyType = KeyType.ED25519_PRIVATE,
        from_key: Optional[KeyLike] = None,
    ) -> KeyMaterial:
        result = await self.require(GenerateKey(key_type, from_key=from_key), f"generate {key_type.value}")
        return KeyMaterial(key_type, result["key"])

    async def generate_key_list(
        self,
        key_types: Sequence[KeyType],
        threshold: Optional[int] = None,
    ) -> KeyMaterial:
        key_type = KeyType.THRESHOLD_KEY if threshold is not None else KeyType.KEY_LIST
        request = GenerateKey(
            key_type,
            threshold=threshold,
            keys=tuple(GenerateKey(t) for t in key_types),
        )
        result = await self.require(request, f"generate {key_type.value}")
        return KeyMaterial(key_type, result["key"], tuple(result.get("privateKeys", ())))

    async def generate_evm_address(self, from_key: KeyLike) -> str:
        return (await self.generate_key(KeyType.EVM_ADDRESS, from_key)).key

    # --- Accounts ---

    async def create_account(
        self,
        key: Optional[KeyLike] = None,
        initial_balance: Optional[int] = None,
        max_auto_token_associations: Optional[int] = None,
        alias: Optional[str] = None,
        receiver_signature_required: Optional[bool] = None,
        signers: Sequence[KeyLike] = (),
    ) -> Identity:
        request = CreateAccount(
            key=key,
            initial_balance=initial_balance,
            max_auto_token_associations=max_auto_token_associations,
            alias=alias,
            receiver_signature_required=receiver_signature_required,
            common=signed_by(*signers) if signers else None,
        )
        return (await self.require(request))["accountId"]

    async def create_funded_account(
        self,
        key_type: KeyType = KeyType.ED25519_PRIVATE,
        initial_balance: Optional[int] = None,
        max_auto_token_associations: Optional[int] = None,
        reclaim: bool = False,
    ) -> Tuple[Identity, KeyMaterial]:
        """Generate a key and an account for it in one step."""
        key = await self.generate_key(key_type)
        account_id = await self.create_account(
            key,
            initial_balance=initial_balance,
            max_auto_token_associations=max_auto_token_associations,
        )
        if reclaim:
            self.reclaim_account(account_id, key)
        return account_id, key

    async def update_account(
        self,
        account_id: Identity,
        signing_key: KeyLike,
        max_auto_token_associations: Optional[int] = None,
        receiver_signature_required: Optional[bool] = None,
        key: Optional[KeyLike] = None,
    ) -> None:
        await self.require(
            UpdateAccount(
                account_id,
                key=key,
                max_auto_token_associations=max_auto_token_associations,
                receiver_signature_required=receiver_signature_required,
                common=signed_by(signing_key),
            )
        )

    async def delete_account(
        self,
        account_id: Identity,
        signing_key: KeyLike,
        beneficiary: Optional[Identity] = None,
    ) -> None:
        """Delete an account, moving what is left to the beneficiary (default: operator)."""
        await self.require(
            DeleteAccount(
                delete_account_id=account_id,
                transfer_account_id=beneficiary or self.operator_id,
                common=signed_by(signing_key),
            )
        )

    def reclaim_account(self, account_id: Identity, signing_key: KeyLike) -> None:
        """Return an account's leftover balance to the operator at scope exit."""
        self.defer(
            f"reclaim {account_id}",
            lambda: self.delete_account(account_id, signing_key),
        )

    # --- Tokens ---

    async def create_token(self, request: CreateToken) -> Identity:
        if request.treasury_account_id is None:
            raise ValueError("CreateToken needs a treasury account")
        return (await self.require(request))["tokenId"]

    async def create_ft_token(
        self,
        key: Optional[KeyLike] = None,
        initial_supply: int = 1_000_000,
        decimals: Optional[int] = None,
        treasury_account_id: Optional[Identity] = None,
        custom_fees: Sequence[CustomFee] = (),
        freeze_default: Optional[bool] = None,
        max_supply: Optional[int] = None,
        signers: Sequence[KeyLike] = (),
    ) -> Identity:
        """Fungible token whose admin/freeze/supply/fee-schedule/pause keys are all ``key``."""
        return await self.create_token(
            CreateToken(
                token_type=TokenType.FUNGIBLE,
                decimals=decimals,
                initial_supply=initial_supply,
                treasury_account_id=treasury_account_id or self.operator_id,
                admin_key=key,
                freeze_key=key,
                supply_key=key,
                fee_schedule_key=key,
                pause_key=key,
                freeze_default=freeze_default,
                supply_type="finite" if max_supply is not None else None,
                max_supply=max_supply,
                custom_fees=tuple(custom_fees),
                common=self._signers(key, *signers),
            )
        )

    async def create_nft_token(
        self,
        key: Optional[KeyLike] = None,
        supply_key: Optional[KeyLike] = None,
        treasury_account_id: Optional[Identity] = None,
        custom_fees: Sequence[CustomFee] = (),
        signers: Sequence[KeyLike] = (),
    ) -> Identity:
        return await self.create_token(
            CreateToken(
                token_type=TokenType.NON_FUNGIBLE,
                treasury_account_id=treasury_account_id or self.operator_id,
                admin_key=key,
                freeze_key=key,
                supply_key=supply_key or key,
                fee_schedule_key=key,
                pause_key=key,
                custom_fees=tuple(custom_fees),
                common=self._signers(key, *signers),
            )
        )

    async def mint_token(
        self,
        token_id: Identity,
        supply_key: KeyLike,
        metadata: Sequence[str] = ("1234",),
        amount: Optional[int] = None,
    ) -> List[str]:
        """Mint NFTs (``metadata``) or fungible units (``amount``); returns new serials."""
        request = MintToken(
            token_id,
            amount=amount,
            metadata=tuple(metadata) if amount is None else (),
            common=signed_by(supply_key),
        )
        return serial_numbers(await self.require(request))

    async def associate_token(self, account_id: Identity, signing_key: KeyLike, *token_ids: Identity) -> None:
        await self.require(AssociateToken(account_id, tuple(token_ids), signed_by(signing_key)))

    async def dissociate_token(self, account_id: Identity, signing_key: KeyLike, *token_ids: Identity) -> None:
        await self.require(DissociateToken(account_id, tuple(token_ids), signed_by(signing_key)))

    async def freeze_token(self, token_id: Identity, account_id: Identity, freeze_key: KeyLike) -> None:
        await self.require(FreezeToken(account_id, token_id, signed_by(freeze_key)))

    async def unfreeze_token(self, token_id: Identity, account_id: Identity, freeze_key: KeyLike) -> None:
        await self.require(UnfreezeToken(account_id, token_id, signed_by(freeze_key)))

    async def pause_token(self, token_id: Identity, pause_key: KeyLike) -> None:
        await self.require(PauseToken(token_id, signed_by(pause_key)))

    async def unpause_token(self, token_id: Identity, pause_key: KeyLike) -> None:
        await self.require(UnpauseToken(token_id, signed_by(pause_key)))

    async def delete_token(self, token_id: Identity, admin_key: KeyLike) -> None:
        await self.require(DeleteToken(token_id, signed_by(admin_key)))

    async def update_token(self, request: UpdateToken) -> None:
        await self.require(request)

    async def update_fee_schedule(
        self,
        token_id: Identity,
        fee_schedule_key: KeyLike,
        custom_fees: Sequence[CustomFee],
    ) -> None:
        await self.require(
            UpdateTokenFeeSchedule(token_id, tuple(custom_fees), signed_by(fee_schedule_key))
        )

    # --- Allowances ---

    async def approve_hbar_allowance(
        self, owner_id: Identity, owner_key: KeyLike, spender_id: Identity, amount: int
    ) -> None:
        await self.require(
            ApproveAllowance((HbarAllowance(owner_id, spender_id, amount),), signed_by(owner_key))
        )

    async def approve_token_allowance(
        self, owner_id: Identity, owner_key: KeyLike, spender_id: Identity, token_id: Identity, amount: int
    ) -> None:
        await self.require(
            ApproveAllowance(
                (TokenAllowance(owner_id, spender_id, token_id, amount),),
                signed_by(owner_key),
            )
        )

    async def approve_nft_allowance(
        self,
        owner_id: Identity,
        owner_key: KeyLike,
        spender_id: Identity,
        token_id: Identity,
        serial_numbers: Sequence[str] = (),
        approved_for_all: Optional[bool] = None,
    ) -> None:
        allowance = NftAllowance(
            owner_id,
            spender_id,
            token_id,
            serial_numbers=tuple(str(s) for s in serial_numbers),
            approved_for_all=approved_for_all,
        )
        await self.require(ApproveAllowance((allowance,), signed_by(owner_key)))

    # --- Funding from the operator ---

    async def fund_hbar(self, account_id: Identity, amount: int) -> None:
        await self.require(
            TransferCrypto(
                (
                    HbarTransfer(self.operator_id, -amount),
                    HbarTransfer(account_id, amount),
                ),
                signed_by(self.operator_key),
            ),
            f"fund {account_id} with {amount} tinybar",
        )

    async def fund_token(
        self,
        account_id: Identity,
        token_id: Identity,
        amount: int,
        decimals: Optional[int] = None,
    ) -> None:
        await self.require(
            TransferCrypto(
                (
                    TokenTransfer(self.operator_id, token_id, -amount, decimals),
                    TokenTransfer(account_id, token_id, amount, decimals),
                ),
                signed_by(self.operator_key),
            ),
            f"fund {account_id} with {amount} of {token_id}",
        )

    async def fund_nft(self, account_id: Identity, token_id: Identity, serial_number: str) -> None:
        await self.require(
            TransferCrypto(
                (NftTransfer(self.operator_id, account_id, token_id, serial_number),),
                signed_by(self.operator_key),
            ),
            f"move NFT {token_id}/{serial_number} to {account_id}",
        )

    def _signers(self, *keys: Optional[KeyLike]) -> Optional[CommonTransactionParams]:
        present = tuple(k for k in keys if k is not None)
        return signed_by(*present) if present else None
