"""Fixture scope: preconditions, deferred cleanup and session reset."""

from __future__ import annotations

import logging

import pytest

from fakes import OPERATOR_ID, OPERATOR_KEY, FakeSut, ok, rejected
from ledger_tck.context import SuiteContext
from ledger_tck.errors import ErrorCategory, FixtureSetupError
from ledger_tck.fixtures import Fixtures
from ledger_tck.types import FixedFee, KeyType, UpdateToken


def script_accounts(sut: FakeSut) -> None:
    counter = iter(range(1001, 2000))
    sut.on("generateKey", lambda params: ok({"key": f"{params['type']}-key"}))
    sut.on("createAccount", lambda params: ok({"accountId": f"0.0.{next(counter)}", "status": "SUCCESS"}))
    sut.on("deleteAccount", ok({"status": "SUCCESS"}))
    sut.on("transferCrypto", ok({"status": "SUCCESS"}))


async def test_scope_sets_operator_and_resets(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    async with Fixtures(ctx):
        pass

    assert fake_sut.methods() == ["setup", "reset"]
    assert fake_sut.params_of("setup")[0] == {
        "operatorAccountId": OPERATOR_ID,
        "operatorPrivateKey": OPERATOR_KEY,
    }


async def test_create_funded_account(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    script_accounts(fake_sut)

    async with Fixtures(ctx) as fx:
        account_id, key = await fx.create_funded_account(
            KeyType.ECDSA_SECP256K1_PRIVATE, initial_balance=10, max_auto_token_associations=1
        )

    assert account_id == "0.0.1001"
    assert key.key == "ecdsaSecp256k1PrivateKey-key"
    assert fake_sut.params_of("createAccount") == [{
        "key": "ecdsaSecp256k1PrivateKey-key",
        "initialBalance": "10",
        "maxAutoTokenAssociations": 1,
    }]


async def test_failed_precondition_raises(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    fake_sut.on("createAccount", rejected("INSUFFICIENT_PAYER_BALANCE"))

    with pytest.raises(FixtureSetupError) as excinfo:
        async with Fixtures(ctx) as fx:
            await fx.create_account("some-key", initial_balance=10)

    assert excinfo.value.failure.category is ErrorCategory.BUSINESS_REJECTION
    assert excinfo.value.failure.status == "INSUFFICIENT_PAYER_BALANCE"
    # The scope still reset the session on the way out.
    assert fake_sut.methods()[-1] == "reset"


async def test_cleanups_run_in_reverse_order(ctx: SuiteContext) -> None:
    order = []

    async def record(name):
        order.append(name)

    async with Fixtures(ctx, reset_on_exit=False) as fx:
        fx.defer("first", lambda: record("first"))
        fx.defer("second", lambda: record("second"))

    assert order == ["second", "first"]


async def test_failing_cleanup_does_not_mask_test_error(ctx: SuiteContext, caplog) -> None:
    ran = []

    async def broken():
        raise RuntimeError("cleanup exploded")

    async def fine():
        ran.append(True)

    with caplog.at_level(logging.WARNING, logger="ledger_tck.fixtures"):
        with pytest.raises(AssertionError, match="primary"):
            async with Fixtures(ctx, reset_on_exit=False) as fx:
                fx.defer("fine", fine)
                fx.defer("broken", broken)
                raise AssertionError("primary")

    assert ran == [True]
    assert "cleanup exploded" in caplog.text


async def test_reclaim_deletes_into_operator(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    script_accounts(fake_sut)

    async with Fixtures(ctx) as fx:
        account_id, key = await fx.create_funded_account(initial_balance=100, reclaim=True)

    assert fake_sut.params_of("deleteAccount") == [{
        "deleteAccountId": account_id,
        "transferAccountId": OPERATOR_ID,
        "commonTransactionParams": {"signers": [key.key]},
    }]
    assert fake_sut.methods()[-2:] == ["deleteAccount", "reset"]


async def test_failed_reset_is_logged(ctx: SuiteContext, fake_sut: FakeSut, caplog) -> None:
    fake_sut.on("reset", {"error": {"code": -32603, "message": "boom"}})

    with caplog.at_level(logging.WARNING, logger="ledger_tck.fixtures"):
        async with Fixtures(ctx):
            pass

    assert "session reset" in caplog.text


async def test_fund_hbar_is_signed_by_operator(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    script_accounts(fake_sut)

    async with Fixtures(ctx) as fx:
        await fx.fund_hbar("0.0.1001", 10)

    assert fake_sut.params_of("transferCrypto") == [{
        "transfers": [
            {"hbar": {"accountId": OPERATOR_ID, "amount": "-10"}},
            {"hbar": {"accountId": "0.0.1001", "amount": "10"}},
        ],
        "commonTransactionParams": {"signers": [OPERATOR_KEY]},
    }]


async def test_mint_returns_serials(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    fake_sut.on("mintToken", ok({"status": "SUCCESS", "newTotalSupply": "2", "serialNumbers": [1, 2]}))

    async with Fixtures(ctx) as fx:
        serials = await fx.mint_token("0.0.3001", "supply-key", metadata=["12", "34"])

    assert serials == ["1", "2"]
    assert fake_sut.params_of("mintToken")[0]["metadata"] == ["12", "34"]


async def test_ft_token_uses_one_key_for_every_role(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    fake_sut.on("createToken", ok({"tokenId": "0.0.2001", "status": "SUCCESS"}))

    async with Fixtures(ctx) as fx:
        token_id = await fx.create_ft_token("token-key")

    params = fake_sut.params_of("createToken")[0]
    assert token_id == "0.0.2001"
    assert params["name"] == "testname"
    assert params["symbol"] == "testsymbol"
    assert params["initialSupply"] == "1000000"
    assert params["treasuryAccountId"] == OPERATOR_ID
    for role in ("adminKey", "freezeKey", "supplyKey", "feeScheduleKey", "pauseKey"):
        assert params[role] == "token-key"
    assert params["commonTransactionParams"] == {"signers": ["token-key"]}


async def test_threshold_key(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    fake_sut.on("generateKey", ok({"key": "threshold-key", "privateKeys": ["k1", "k2"]}))

    async with Fixtures(ctx) as fx:
        key = await fx.generate_key_list([KeyType.ED25519_PRIVATE, KeyType.ECDSA_SECP256K1_PRIVATE], threshold=1)

    assert key.key_type is KeyType.THRESHOLD_KEY
    assert key.private_keys == ("k1", "k2")
    assert fake_sut.params_of("generateKey")[0] == {
        "type": "thresholdKey",
        "threshold": 1,
        "keys": [{"type": "ed25519PrivateKey"}, {"type": "ecdsaSecp256k1PrivateKey"}],
    }


async def test_evm_address_from_key(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    fake_sut.on("generateKey", ok({"key": "0xa74b6c63e4f5b497f48f77baaf96280e9e58c494"}))

    async with Fixtures(ctx) as fx:
        address = await fx.generate_evm_address("ecdsa-key")

    assert address.startswith("0x")
    assert fake_sut.params_of("generateKey")[0] == {"type": "evmAddress", "fromKey": "ecdsa-key"}


async def test_token_lifecycle_helpers(ctx: SuiteContext, fake_sut: FakeSut) -> None:
    for method in (
        "updateToken", "updateTokenFeeSchedule", "dissociateToken", "unfreezeToken", "unpauseToken"
    ):
        fake_sut.on(method, ok({"status": "SUCCESS"}))

    async with Fixtures(ctx) as fx:
        await fx.update_token(UpdateToken("0.0.2001", name="renamed"))
        await fx.update_fee_schedule("0.0.2001", "fee-key", [FixedFee("0.0.2", 1)])
        await fx.unfreeze_token("0.0.2001", "0.0.1001", "freeze-key")
        await fx.unpause_token("0.0.2001", "pause-key")
        await fx.dissociate_token("0.0.1001", "account-key", "0.0.2001")

    assert fake_sut.methods()[1:-1] == [
        "updateToken", "updateTokenFeeSchedule", "unfreezeToken", "unpauseToken", "dissociateToken"
    ]
    assert fake_sut.params_of("updateTokenFeeSchedule")[0]["commonTransactionParams"] == {"signers": ["fee-key"]}
    assert fake_sut.params_of("unfreezeToken")[0]["accountId"] == "0.0.1001"
