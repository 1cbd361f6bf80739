"""JSON-RPC client: outcome normalization and one-POST-per-call transport."""

from __future__ import annotations

import pytest

from fakes import FakeSut, ok, rejected, rpc_error
from ledger_tck.config import EndpointConfig
from ledger_tck.errors import ErrorCategory, JsonRpcErrorCode
from ledger_tck.protocol import ProtocolClient, normalize_error, normalize_response
from ledger_tck.types import HbarTransfer, Method, Success, transfer


# --- normalization ---


def test_status_in_error_data_is_business_rejection() -> None:
    failure = normalize_error(
        {"code": -32001, "message": "Hiero error", "data": {"status": "INVALID_SIGNATURE"}}
    )
    assert failure.category is ErrorCategory.BUSINESS_REJECTION
    assert failure.status == "INVALID_SIGNATURE"
    assert failure.code == -32001


def test_method_not_found_is_not_implemented() -> None:
    failure = normalize_error({"code": -32601, "message": "Method not found"})
    assert failure.category is ErrorCategory.NOT_IMPLEMENTED


@pytest.mark.parametrize("code", [-32603, -32602, -32600])
def test_other_jsonrpc_errors_are_request_shape(code: int) -> None:
    failure = normalize_error({"code": code, "message": "bad"})
    assert failure.category is ErrorCategory.REQUEST_SHAPE
    assert failure.code == code
    assert failure.status is None


def test_not_implemented_result_marker() -> None:
    outcome = normalize_response({"jsonrpc": "2.0", "id": 3, "result": {"error": "NOT_IMPLEMENTED"}}, 3)
    assert not outcome.ok
    assert outcome.category is ErrorCategory.NOT_IMPLEMENTED


def test_mismatched_id_is_transport_failure() -> None:
    outcome = normalize_response({"jsonrpc": "2.0", "id": 4, "result": {}}, 3)
    assert outcome.category is ErrorCategory.TRANSPORT


def test_response_without_result_or_error_is_transport_failure() -> None:
    outcome = normalize_response({"jsonrpc": "2.0", "id": 1}, 1)
    assert outcome.category is ErrorCategory.TRANSPORT


def test_null_and_scalar_results() -> None:
    assert normalize_response({"id": 1, "result": None}, 1) == Success({})
    assert normalize_response({"id": 1, "result": "0.0.7"}, 1) == Success({"value": "0.0.7"})


# --- client against an in-process endpoint ---


@pytest.fixture
async def client(fake_sut: FakeSut):
    async with ProtocolClient(EndpointConfig("json-rpc", fake_sut.url, 5.0)) as c:
        yield c


async def test_submit_sends_typed_params(client: ProtocolClient, fake_sut: FakeSut) -> None:
    fake_sut.on("transferCrypto", ok({"status": "SUCCESS"}))

    outcome = await client.submit(
        transfer(HbarTransfer("0.0.5", -10), HbarTransfer("0.0.6", 10), signers=["key-5"])
    )

    assert outcome.ok
    assert outcome.get("status") == "SUCCESS"
    assert fake_sut.calls == [(
        "transferCrypto",
        {
            "transfers": [
                {"hbar": {"amount": "-10", "accountId": "0.0.5"}},
                {"hbar": {"amount": "10", "accountId": "0.0.6"}},
            ],
            "commonTransactionParams": {"signers": ["key-5"]},
        },
    )]


async def test_business_rejection(client: ProtocolClient, fake_sut: FakeSut) -> None:
    fake_sut.on("transferCrypto", rejected("INSUFFICIENT_ACCOUNT_BALANCE"))

    outcome = await client.call(Method.TRANSFER_CRYPTO, {"transfers": []})

    assert not outcome.ok
    assert outcome.category is ErrorCategory.BUSINESS_REJECTION
    assert outcome.status == "INSUFFICIENT_ACCOUNT_BALANCE"


async def test_internal_error(client: ProtocolClient, fake_sut: FakeSut) -> None:
    fake_sut.on("transferCrypto", rpc_error(JsonRpcErrorCode.INTERNAL_ERROR))

    outcome = await client.call(Method.TRANSFER_CRYPTO, {"transfers": []})

    assert outcome.category is ErrorCategory.REQUEST_SHAPE
    assert outcome.code == -32603


async def test_unknown_method_is_not_implemented(client: ProtocolClient) -> None:
    outcome = await client.call(Method.CLAIM_TOKEN, {})
    assert outcome.category is ErrorCategory.NOT_IMPLEMENTED


async def test_http_error_is_transport_failure(client: ProtocolClient, fake_sut: FakeSut) -> None:
    fake_sut.on("getAccountInfo", {"http_status": 502, "result": {}})

    outcome = await client.call(Method.GET_ACCOUNT_INFO, {"accountId": "0.0.5"})

    assert outcome.category is ErrorCategory.TRANSPORT
    assert outcome.code == 502


async def test_wrong_response_id_is_transport_failure(client: ProtocolClient, fake_sut: FakeSut) -> None:
    fake_sut.on("reset", {"id": 999, "result": {}})

    outcome = await client.call(Method.RESET)

    assert outcome.category is ErrorCategory.TRANSPORT


async def test_failures_are_never_retried(client: ProtocolClient, fake_sut: FakeSut) -> None:
    fake_sut.on("transferCrypto", rpc_error(-32603))

    await client.call(Method.TRANSFER_CRYPTO, {})

    assert fake_sut.methods() == ["transferCrypto"]


async def test_unreachable_endpoint_is_transport_failure() -> None:
    async with ProtocolClient(EndpointConfig("json-rpc", "http://127.0.0.1:9/", 2.0)) as c:
        outcome = await c.call(Method.RESET)
    assert outcome.category is ErrorCategory.TRANSPORT


async def test_submit_requires_connect() -> None:
    c = ProtocolClient(EndpointConfig("json-rpc", "http://127.0.0.1:9/"))
    with pytest.raises(RuntimeError):
        await c.call(Method.RESET)
