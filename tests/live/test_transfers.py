"""Transfer properties checked against a running SUT and both read sources.

Run with ``pytest --live``; endpoints and the operator come from the
environment (see ``TckConfig.from_env``).
"""

from __future__ import annotations

from typing import Tuple

import pytest

from ledger_tck.config import TckConfig
from ledger_tck.context import SuiteContext
from ledger_tck.expect import expect_internal_error, expect_status, expect_success
from ledger_tck.fixtures import Fixtures
from ledger_tck.types import (
    EMPTY_ID,
    NONEXISTENT_ID,
    HbarTransfer,
    Identity,
    KeyMaterial,
    KeyType,
    NftTransfer,
    transfer,
)

pytestmark = pytest.mark.live

Account = Tuple[Identity, KeyMaterial]


@pytest.fixture
async def live_ctx():
    async with SuiteContext(TckConfig.from_env()) as ctx:
        yield ctx


@pytest.fixture
async def fx(live_ctx: SuiteContext):
    async with Fixtures(live_ctx) as scope:
        yield scope


@pytest.fixture
async def sender(fx: Fixtures) -> Account:
    return await fx.create_funded_account(
        KeyType.ECDSA_SECP256K1_PRIVATE, initial_balance=10, max_auto_token_associations=1
    )


@pytest.fixture
async def receiver(fx: Fixtures) -> Account:
    return await fx.create_funded_account(max_auto_token_associations=1)


async def test_transfer_to_receiver(live_ctx: SuiteContext, sender: Account, receiver: Account) -> None:
    (sender_id, sender_key), (receiver_id, _) = sender, receiver

    expect_success(await live_ctx.rpc.submit(
        transfer(HbarTransfer(sender_id, -10), HbarTransfer(receiver_id, 10), signers=[sender_key])
    ))

    await live_ctx.verifier.assert_hbar_balance(sender_id, 0)
    await live_ctx.verifier.assert_hbar_balance(receiver_id, 10)


async def test_missing_sender_signature(live_ctx: SuiteContext, sender: Account, receiver: Account) -> None:
    (sender_id, _), (receiver_id, _) = sender, receiver

    outcome = await live_ctx.rpc.submit(transfer(HbarTransfer(sender_id, -10), HbarTransfer(receiver_id, 10)))

    expect_status(outcome, "INVALID_SIGNATURE")


async def test_more_than_balance(live_ctx: SuiteContext, sender: Account, receiver: Account) -> None:
    (sender_id, sender_key), (receiver_id, _) = sender, receiver

    outcome = await live_ctx.rpc.submit(
        transfer(HbarTransfer(sender_id, -100), HbarTransfer(receiver_id, 100), signers=[sender_key])
    )

    expect_status(outcome, "INSUFFICIENT_ACCOUNT_BALANCE")


async def test_more_than_allowance(
    live_ctx: SuiteContext, fx: Fixtures, sender: Account, receiver: Account
) -> None:
    (sender_id, sender_key), (receiver_id, _) = sender, receiver
    spender_id, spender_key = await fx.create_funded_account(
        KeyType.ECDSA_SECP256K1_PRIVATE, initial_balance=1_000_000, reclaim=True
    )
    await fx.approve_hbar_allowance(sender_id, sender_key, spender_id, 10)

    outcome = await live_ctx.rpc.submit(
        transfer(
            HbarTransfer(sender_id, -100, approved=True),
            HbarTransfer(receiver_id, 100),
            signers=[spender_key],
            payer=spender_id,
        )
    )

    expect_status(outcome, "AMOUNT_EXCEEDS_ALLOWANCE")


async def test_zero_transfer_changes_nothing(live_ctx: SuiteContext, sender: Account, receiver: Account) -> None:
    (sender_id, sender_key), (receiver_id, _) = sender, receiver

    expect_success(await live_ctx.rpc.submit(
        transfer(HbarTransfer(sender_id, 0), HbarTransfer(receiver_id, 0), signers=[sender_key])
    ))

    await live_ctx.verifier.assert_hbar_balance(sender_id, 10)
    await live_ctx.verifier.assert_hbar_balance(receiver_id, 0)


async def test_multi_party_transfer_conserves_value(
    live_ctx: SuiteContext, fx: Fixtures, sender: Account, receiver: Account
) -> None:
    (sender_id, sender_key), (receiver_id, _) = sender, receiver
    other_id, _ = await fx.create_funded_account()
    lines = (HbarTransfer(sender_id, -10), HbarTransfer(receiver_id, 4), HbarTransfer(other_id, 6))
    assert sum(line.amount for line in lines) == 0

    expect_success(await live_ctx.rpc.submit(transfer(*lines, signers=[sender_key])))

    starting = {sender_id: 10}
    for line in lines:
        await live_ctx.verifier.assert_hbar_balance(line.account_id, starting.get(line.account_id, 0) + line.amount)


async def test_hbar_self_transfer_is_a_no_op(live_ctx: SuiteContext, sender: Account) -> None:
    sender_id, sender_key = sender

    expect_success(await live_ctx.rpc.submit(
        transfer(HbarTransfer(sender_id, -10), HbarTransfer(sender_id, 10), signers=[sender_key])
    ))

    await live_ctx.verifier.assert_hbar_balance(sender_id, 10)


async def test_nft_self_transfer_is_rejected(live_ctx: SuiteContext, fx: Fixtures, sender: Account) -> None:
    sender_id, sender_key = sender
    supply_key = await fx.generate_key(KeyType.ECDSA_SECP256K1_PRIVATE)
    token_id = await fx.create_nft_token(supply_key=supply_key)
    [serial] = await fx.mint_token(token_id, supply_key)
    await fx.fund_nft(sender_id, token_id, serial)

    outcome = await live_ctx.rpc.submit(
        transfer(NftTransfer(sender_id, sender_id, token_id, serial), signers=[sender_key])
    )

    expect_status(outcome, "ACCOUNT_REPEATED_IN_ACCOUNT_AMOUNTS")
    await live_ctx.verifier.assert_nft_possession(sender_id, token_id, serial, True)


@pytest.mark.parametrize("side", ["sender", "receiver"])
async def test_empty_identity_is_request_shape(
    live_ctx: SuiteContext, sender: Account, receiver: Account, side: str
) -> None:
    (sender_id, sender_key), (receiver_id, _) = sender, receiver
    if side == "sender":
        sender_id = EMPTY_ID
    else:
        receiver_id = EMPTY_ID

    outcome = await live_ctx.rpc.submit(
        transfer(HbarTransfer(sender_id, -10), HbarTransfer(receiver_id, 10), signers=[sender_key])
    )

    expect_internal_error(outcome)


@pytest.mark.parametrize("side", ["sender", "receiver"])
async def test_nonexistent_identity_is_invalid_account(
    live_ctx: SuiteContext, sender: Account, receiver: Account, side: str
) -> None:
    (sender_id, sender_key), (receiver_id, _) = sender, receiver
    if side == "sender":
        sender_id = NONEXISTENT_ID
    else:
        receiver_id = NONEXISTENT_ID

    outcome = await live_ctx.rpc.submit(
        transfer(HbarTransfer(sender_id, -10), HbarTransfer(receiver_id, 10), signers=[sender_key])
    )

    expect_status(outcome, "INVALID_ACCOUNT_ID")


async def test_delete_credits_beneficiary(live_ctx: SuiteContext, fx: Fixtures, receiver: Account) -> None:
    # The operator pays every fee, so a fresh beneficiary sees the exact amount.
    beneficiary_id, _ = receiver
    account_id, key = await fx.create_funded_account(initial_balance=500)

    await fx.delete_account(account_id, key, beneficiary_id)

    await live_ctx.verifier.assert_hbar_balance(beneficiary_id, 500)


async def test_delete_into_operator(live_ctx: SuiteContext, fx: Fixtures) -> None:
    account_id, key = await fx.create_funded_account(initial_balance=100_000_000)
    before = await live_ctx.consensus.hbar_balance(fx.operator_id)

    await fx.delete_account(account_id, key)

    after = await live_ctx.consensus.hbar_balance(fx.operator_id)
    # Net of the delete's own fee, which the operator pays.
    assert before < after <= before + 100_000_000
    await live_ctx.verifier.assert_hbar_balance(fx.operator_id, after)
