"""Core types for the transfer TCK.

Everything that crosses the control protocol is modelled here: entity
identities, generated key material, the closed family of typed operation
requests (each rendering its own JSON-RPC parameter bag) and the normalized
``OperationOutcome`` every submission resolves to.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import ErrorCategory, OperationFailed

# An opaque ledger entity name: "0.0.1234", a token id, or "<token>/<serial>".
Identity = str

# Reserved identities for negative tests.
EMPTY_ID: Identity = ""
NONEXISTENT_ID: Identity = "123.456.789"


def nft_id(token_id: Identity, serial_number: Union[int, str]) -> Identity:
    return f"{token_id}/{serial_number}"


class Method(str, Enum):
    SETUP = "setup"
    RESET = "reset"
    GENERATE_KEY = "generateKey"
    CREATE_ACCOUNT = "createAccount"
    UPDATE_ACCOUNT = "updateAccount"
    DELETE_ACCOUNT = "deleteAccount"
    GET_ACCOUNT_INFO = "getAccountInfo"
    GET_ACCOUNT_BALANCE = "getAccountBalance"
    APPROVE_ALLOWANCE = "approveAllowance"
    DELETE_ALLOWANCE = "deleteAllowance"
    TRANSFER_CRYPTO = "transferCrypto"
    CREATE_TOKEN = "createToken"
    UPDATE_TOKEN = "updateToken"
    DELETE_TOKEN = "deleteToken"
    MINT_TOKEN = "mintToken"
    ASSOCIATE_TOKEN = "associateToken"
    DISSOCIATE_TOKEN = "dissociateToken"
    FREEZE_TOKEN = "freezeToken"
    UNFREEZE_TOKEN = "unfreezeToken"
    PAUSE_TOKEN = "pauseToken"
    UNPAUSE_TOKEN = "unpauseToken"
    UPDATE_TOKEN_FEE_SCHEDULE = "updateTokenFeeSchedule"
    GRANT_TOKEN_KYC = "grantTokenKyc"
    REVOKE_TOKEN_KYC = "revokeTokenKyc"
    AIRDROP_TOKEN = "airdropToken"
    CLAIM_TOKEN = "claimToken"
    CANCEL_AIRDROP = "cancelAirdrop"
    GET_TOKEN_INFO = "getTokenInfo"
    GET_TOKEN_NFT_INFO = "getTokenNftInfo"


class KeyType(str, Enum):
    ED25519_PRIVATE = "ed25519PrivateKey"
    ED25519_PUBLIC = "ed25519PublicKey"
    ECDSA_SECP256K1_PRIVATE = "ecdsaSecp256k1PrivateKey"
    ECDSA_SECP256K1_PUBLIC = "ecdsaSecp256k1PublicKey"
    KEY_LIST = "keyList"
    THRESHOLD_KEY = "thresholdKey"
    EVM_ADDRESS = "evmAddress"


class TokenType(str, Enum):
    FUNGIBLE = "ft"
    NON_FUNGIBLE = "nft"


@dataclass(frozen=True)
class KeyMaterial:
    """A generated key (or address) in the encoding the SUT returned it."""
    key_type: KeyType
    key: str
    # Private keys composing a key list or threshold key, in order.
    private_keys: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.key


KeyLike = Union[KeyMaterial, str]


def key_str(key: KeyLike) -> str:
    return key.key if isinstance(key, KeyMaterial) else key


def _put(params: Dict[str, Any], name: str, value: Any) -> None:
    """Set an optional parameter, omitting unset values."""
    if value is None:
        return
    if isinstance(value, KeyMaterial):
        value = value.key
    elif isinstance(value, int) and not isinstance(value, bool):
        # Amounts and counts travel as decimal strings.
        value = str(value)
    params[name] = value


@dataclass(frozen=True)
class CommonTransactionParams:
    signers: Tuple[KeyLike, ...] = ()
    # Account id the SUT generates the transaction id from (the payer).
    transaction_id: Optional[Identity] = None
    max_transaction_fee: Optional[int] = None
    memo: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        _put(params, "transactionId", self.transaction_id)
        _put(params, "maxTransactionFee", self.max_transaction_fee)
        _put(params, "memo", self.memo)
        if self.signers:
            params["signers"] = [key_str(k) for k in self.signers]
        return params


def signed_by(*keys: KeyLike, payer: Optional[Identity] = None) -> CommonTransactionParams:
    return CommonTransactionParams(signers=tuple(keys), transaction_id=payer)


# --- Transfer lines ---


@dataclass(frozen=True)
class HbarTransfer:
    account_id: Identity
    amount: int
    approved: bool = False
    # Set to an EVM address instead of account_id to target an alias.
    evm_address: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        hbar: Dict[str, Any] = {"amount": str(self.amount)}
        if self.evm_address is not None:
            hbar["evmAddress"] = self.evm_address
        else:
            hbar["accountId"] = self.account_id
        line: Dict[str, Any] = {"hbar": hbar}
        if self.approved:
            line["approved"] = True
        return line


@dataclass(frozen=True)
class TokenTransfer:
    account_id: Identity
    token_id: Identity
    amount: int
    decimals: Optional[int] = None
    approved: bool = False

    def to_params(self) -> Dict[str, Any]:
        token: Dict[str, Any] = {
            "accountId": self.account_id,
            "tokenId": self.token_id,
            "amount": str(self.amount),
        }
        if self.decimals is not None:
            token["decimals"] = self.decimals
        line: Dict[str, Any] = {"token": token}
        if self.approved:
            line["approved"] = True
        return line


@dataclass(frozen=True)
class NftTransfer:
    sender_account_id: Identity
    receiver_account_id: Identity
    token_id: Identity
    serial_number: str
    approved: bool = False

    def to_params(self) -> Dict[str, Any]:
        line: Dict[str, Any] = {
            "nft": {
                "senderAccountId": self.sender_account_id,
                "receiverAccountId": self.receiver_account_id,
                "tokenId": self.token_id,
                "serialNumber": str(self.serial_number),
            }
        }
        if self.approved:
            line["approved"] = True
        return line


TransferLine = Union[HbarTransfer, TokenTransfer, NftTransfer]


# --- Custom fees ---


@dataclass(frozen=True)
class FixedFee:
    fee_collector_account_id: Identity
    amount: int
    denominating_token_id: Optional[Identity] = None
    fee_collectors_exempt: bool = False

    def to_params(self) -> Dict[str, Any]:
        fee: Dict[str, Any] = {"amount": str(self.amount)}
        _put(fee, "denominatingTokenId", self.denominating_token_id)
        return {
            "feeCollectorAccountId": self.fee_collector_account_id,
            "feeCollectorsExempt": self.fee_collectors_exempt,
            "fixedFee": fee,
        }


@dataclass(frozen=True)
class FractionalFee:
    fee_collector_account_id: Identity
    numerator: int
    denominator: int
    minimum_amount: int
    maximum_amount: int
    assessment_method: str = "inclusive"
    fee_collectors_exempt: bool = False

    def to_params(self) -> Dict[str, Any]:
        return {
            "feeCollectorAccountId": self.fee_collector_account_id,
            "feeCollectorsExempt": self.fee_collectors_exempt,
            "fractionalFee": {
                "numerator": str(self.numerator),
                "denominator": str(self.denominator),
                "minimumAmount": str(self.minimum_amount),
                "maximumAmount": str(self.maximum_amount),
                "assessmentMethod": self.assessment_method,
            },
        }


@dataclass(frozen=True)
class RoyaltyFee:
    fee_collector_account_id: Identity
    numerator: int
    denominator: int
    fallback_amount: Optional[int] = None
    fallback_denominating_token_id: Optional[Identity] = None
    fee_collectors_exempt: bool = False

    def to_params(self) -> Dict[str, Any]:
        royalty: Dict[str, Any] = {
            "numerator": str(self.numerator),
            "denominator": str(self.denominator),
        }
        if self.fallback_amount is not None:
            fallback: Dict[str, Any] = {"amount": str(self.fallback_amount)}
            _put(fallback, "denominatingTokenId", self.fallback_denominating_token_id)
            royalty["fallbackFee"] = fallback
        return {
            "feeCollectorAccountId": self.fee_collector_account_id,
            "feeCollectorsExempt": self.fee_collectors_exempt,
            "royaltyFee": royalty,
        }


CustomFee = Union[FixedFee, FractionalFee, RoyaltyFee]


# --- Allowances ---


@dataclass(frozen=True)
class HbarAllowance:
    owner_account_id: Identity
    spender_account_id: Identity
    amount: int

    def to_params(self) -> Dict[str, Any]:
        return {
            "ownerAccountId": self.owner_account_id,
            "spenderAccountId": self.spender_account_id,
            "hbar": {"amount": str(self.amount)},
        }


@dataclass(frozen=True)
class TokenAllowance:
    owner_account_id: Identity
    spender_account_id: Identity
    token_id: Identity
    amount: int

    def to_params(self) -> Dict[str, Any]:
        return {
            "ownerAccountId": self.owner_account_id,
            "spenderAccountId": self.spender_account_id,
            "token": {"tokenId": self.token_id, "amount": str(self.amount)},
        }


@dataclass(frozen=True)
class NftAllowance:
    owner_account_id: Identity
    spender_account_id: Identity
    token_id: Identity
    serial_numbers: Tuple[str, ...] = ()
    approved_for_all: Optional[bool] = None
    delegate_spender_account_id: Optional[Identity] = None

    def to_params(self) -> Dict[str, Any]:
        nft: Dict[str, Any] = {"tokenId": self.token_id}
        if self.serial_numbers:
            nft["serialNumbers"] = [str(s) for s in self.serial_numbers]
        _put(nft, "approvedForAll", self.approved_for_all)
        _put(nft, "delegateSpenderAccountId", self.delegate_spender_account_id)
        return {
            "ownerAccountId": self.owner_account_id,
            "spenderAccountId": self.spender_account_id,
            "nft": nft,
        }


Allowance = Union[HbarAllowance, TokenAllowance, NftAllowance]


# --- Operation requests ---


@dataclass(frozen=True)
class OperationRequest(ABC):
    """One call of the control protocol. Subclasses fix the method."""
    method: ClassVar[Method]

    @abstractmethod
    def to_params(self) -> Dict[str, Any]:
        """The JSON-RPC parameter bag of this call."""


def _with_common(params: Dict[str, Any], common: Optional[CommonTransactionParams]) -> Dict[str, Any]:
    if common is not None:
        rendered = common.to_params()
        if rendered:
            params["commonTransactionParams"] = rendered
    return params


@dataclass(frozen=True)
class RawRequest(OperationRequest):
    """Untyped fallback: an enumerated method with a caller-built bag."""
    raw_method: Method
    params: Mapping[str, Any] = field(default_factory=dict)

    def to_params(self) -> Dict[str, Any]:
        return dict(self.params)


@dataclass(frozen=True)
class Setup(OperationRequest):
    method: ClassVar[Method] = Method.SETUP
    operator_account_id: Identity
    operator_private_key: str
    node_ip: Optional[str] = None
    node_account_id: Optional[Identity] = None
    mirror_network_ip: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "operatorAccountId": self.operator_account_id,
            "operatorPrivateKey": self.operator_private_key,
        }
        _put(params, "nodeIp", self.node_ip)
        _put(params, "nodeAccountId", self.node_account_id)
        _put(params, "mirrorNetworkIp", self.mirror_network_ip)
        return params


@dataclass(frozen=True)
class Reset(OperationRequest):
    method: ClassVar[Method] = Method.RESET

    def to_params(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class GenerateKey(OperationRequest):
    method: ClassVar[Method] = Method.GENERATE_KEY
    key_type: KeyType
    from_key: Optional[KeyLike] = None
    threshold: Optional[int] = None
    keys: Tuple["GenerateKey", ...] = ()

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"type": self.key_type.value}
        _put(params, "fromKey", self.from_key)
        if self.threshold is not None:
            params["threshold"] = self.threshold
        if self.keys:
            params["keys"] = [k.to_params() for k in self.keys]
        return params


@dataclass(frozen=True)
class CreateAccount(OperationRequest):
    method: ClassVar[Method] = Method.CREATE_ACCOUNT
    key: Optional[KeyLike] = None
    initial_balance: Optional[int] = None
    max_auto_token_associations: Optional[int] = None
    alias: Optional[str] = None
    receiver_signature_required: Optional[bool] = None
    memo: Optional[str] = None
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        _put(params, "key", self.key)
        _put(params, "initialBalance", self.initial_balance)
        if self.max_auto_token_associations is not None:
            params["maxAutoTokenAssociations"] = self.max_auto_token_associations
        _put(params, "alias", self.alias)
        _put(params, "receiverSignatureRequired", self.receiver_signature_required)
        _put(params, "memo", self.memo)
        return _with_common(params, self.common)


@dataclass(frozen=True)
class UpdateAccount(OperationRequest):
    method: ClassVar[Method] = Method.UPDATE_ACCOUNT
    account_id: Identity
    key: Optional[KeyLike] = None
    max_auto_token_associations: Optional[int] = None
    receiver_signature_required: Optional[bool] = None
    memo: Optional[str] = None
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"accountId": self.account_id}
        _put(params, "key", self.key)
        if self.max_auto_token_associations is not None:
            params["maxAutoTokenAssociations"] = self.max_auto_token_associations
        _put(params, "receiverSignatureRequired", self.receiver_signature_required)
        _put(params, "memo", self.memo)
        return _with_common(params, self.common)


@dataclass(frozen=True)
class DeleteAccount(OperationRequest):
    method: ClassVar[Method] = Method.DELETE_ACCOUNT
    delete_account_id: Identity
    transfer_account_id: Identity
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params = {
            "deleteAccountId": self.delete_account_id,
            "transferAccountId": self.transfer_account_id,
        }
        return _with_common(params, self.common)


@dataclass(frozen=True)
class GetAccountInfo(OperationRequest):
    method: ClassVar[Method] = Method.GET_ACCOUNT_INFO
    account_id: Identity

    def to_params(self) -> Dict[str, Any]:
        return {"accountId": self.account_id}


@dataclass(frozen=True)
class ApproveAllowance(OperationRequest):
    method: ClassVar[Method] = Method.APPROVE_ALLOWANCE
    allowances: Tuple[Allowance, ...]
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params = {"allowances": [a.to_params() for a in self.allowances]}
        return _with_common(params, self.common)


@dataclass(frozen=True)
class TransferCrypto(OperationRequest):
    method: ClassVar[Method] = Method.TRANSFER_CRYPTO
    transfers: Tuple[TransferLine, ...]
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params = {"transfers": [t.to_params() for t in self.transfers]}
        return _with_common(params, self.common)


@dataclass(frozen=True)
class AirdropToken(OperationRequest):
    method: ClassVar[Method] = Method.AIRDROP_TOKEN
    token_transfers: Tuple[Union[TokenTransfer, NftTransfer], ...]
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params = {"tokenTransfers": [t.to_params() for t in self.token_transfers]}
        return _with_common(params, self.common)


@dataclass(frozen=True)
class CreateToken(OperationRequest):
    method: ClassVar[Method] = Method.CREATE_TOKEN
    name: Optional[str] = "testname"
    symbol: Optional[str] = "testsymbol"
    token_type: Optional[TokenType] = None
    decimals: Optional[int] = None
    initial_supply: Optional[int] = None
    treasury_account_id: Optional[Identity] = None
    admin_key: Optional[KeyLike] = None
    kyc_key: Optional[KeyLike] = None
    freeze_key: Optional[KeyLike] = None
    supply_key: Optional[KeyLike] = None
    fee_schedule_key: Optional[KeyLike] = None
    pause_key: Optional[KeyLike] = None
    freeze_default: Optional[bool] = None
    supply_type: Optional[str] = None
    max_supply: Optional[int] = None
    custom_fees: Tuple[CustomFee, ...] = ()
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        _put(params, "name", self.name)
        _put(params, "symbol", self.symbol)
        if self.token_type is not None:
            params["tokenType"] = self.token_type.value
        if self.decimals is not None:
            params["decimals"] = self.decimals
        _put(params, "initialSupply", self.initial_supply)
        _put(params, "treasuryAccountId", self.treasury_account_id)
        _put(params, "adminKey", self.admin_key)
        _put(params, "kycKey", self.kyc_key)
        _put(params, "freezeKey", self.freeze_key)
        _put(params, "supplyKey", self.supply_key)
        _put(params, "feeScheduleKey", self.fee_schedule_key)
        _put(params, "pauseKey", self.pause_key)
        _put(params, "freezeDefault", self.freeze_default)
        _put(params, "supplyType", self.supply_type)
        _put(params, "maxSupply", self.max_supply)
        if self.custom_fees:
            params["customFees"] = [f.to_params() for f in self.custom_fees]
        return _with_common(params, self.common)


@dataclass(frozen=True)
class UpdateToken(OperationRequest):
    method: ClassVar[Method] = Method.UPDATE_TOKEN
    token_id: Identity
    name: Optional[str] = None
    symbol: Optional[str] = None
    treasury_account_id: Optional[Identity] = None
    admin_key: Optional[KeyLike] = None
    supply_key: Optional[KeyLike] = None
    freeze_key: Optional[KeyLike] = None
    pause_key: Optional[KeyLike] = None
    fee_schedule_key: Optional[KeyLike] = None
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"tokenId": self.token_id}
        _put(params, "name", self.name)
        _put(params, "symbol", self.symbol)
        _put(params, "treasuryAccountId", self.treasury_account_id)
        _put(params, "adminKey", self.admin_key)
        _put(params, "supplyKey", self.supply_key)
        _put(params, "freezeKey", self.freeze_key)
        _put(params, "pauseKey", self.pause_key)
        _put(params, "feeScheduleKey", self.fee_schedule_key)
        return _with_common(params, self.common)


@dataclass(frozen=True)
class MintToken(OperationRequest):
    method: ClassVar[Method] = Method.MINT_TOKEN
    token_id: Identity
    amount: Optional[int] = None
    metadata: Tuple[str, ...] = ()
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"tokenId": self.token_id}
        _put(params, "amount", self.amount)
        if self.metadata:
            params["metadata"] = list(self.metadata)
        return _with_common(params, self.common)


@dataclass(frozen=True)
class _AccountTokens(OperationRequest):
    account_id: Identity
    token_ids: Tuple[Identity, ...]
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params = {"accountId": self.account_id, "tokenIds": list(self.token_ids)}
        return _with_common(params, self.common)


@dataclass(frozen=True)
class AssociateToken(_AccountTokens):
    method: ClassVar[Method] = Method.ASSOCIATE_TOKEN


@dataclass(frozen=True)
class DissociateToken(_AccountTokens):
    method: ClassVar[Method] = Method.DISSOCIATE_TOKEN


@dataclass(frozen=True)
class _AccountToken(OperationRequest):
    account_id: Identity
    token_id: Identity
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params = {"accountId": self.account_id, "tokenId": self.token_id}
        return _with_common(params, self.common)


@dataclass(frozen=True)
class FreezeToken(_AccountToken):
    method: ClassVar[Method] = Method.FREEZE_TOKEN


@dataclass(frozen=True)
class UnfreezeToken(_AccountToken):
    method: ClassVar[Method] = Method.UNFREEZE_TOKEN


@dataclass(frozen=True)
class _Token(OperationRequest):
    token_id: Identity
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        return _with_common({"tokenId": self.token_id}, self.common)


@dataclass(frozen=True)
class PauseToken(_Token):
    method: ClassVar[Method] = Method.PAUSE_TOKEN


@dataclass(frozen=True)
class UnpauseToken(_Token):
    method: ClassVar[Method] = Method.UNPAUSE_TOKEN


@dataclass(frozen=True)
class DeleteToken(_Token):
    method: ClassVar[Method] = Method.DELETE_TOKEN


@dataclass(frozen=True)
class UpdateTokenFeeSchedule(OperationRequest):
    method: ClassVar[Method] = Method.UPDATE_TOKEN_FEE_SCHEDULE
    token_id: Identity
    custom_fees: Tuple[CustomFee, ...] = ()
    common: Optional[CommonTransactionParams] = None

    def to_params(self) -> Dict[str, Any]:
        params = {
            "tokenId": self.token_id,
            "customFees": [f.to_params() for f in self.custom_fees],
        }
        return _with_common(params, self.common)


@dataclass(frozen=True)
class GetTokenInfo(OperationRequest):
    method: ClassVar[Method] = Method.GET_TOKEN_INFO
    token_id: Identity

    def to_params(self) -> Dict[str, Any]:
        return {"tokenId": self.token_id}


@dataclass(frozen=True)
class GetTokenNftInfo(OperationRequest):
    method: ClassVar[Method] = Method.GET_TOKEN_NFT_INFO
    nft_id: Identity

    def to_params(self) -> Dict[str, Any]:
        return {"nftId": self.nft_id}


def request_method(request: OperationRequest) -> Method:
    if isinstance(request, RawRequest):
        return request.raw_method
    return request.method


# --- Outcomes ---


@dataclass(frozen=True)
class Success:
    result: Dict[str, Any] = field(default_factory=dict)

    ok: ClassVar[bool] = True

    def unwrap(self, what: str = "operation") -> Dict[str, Any]:
        return self.result

    def get(self, name: str, default: Any = None) -> Any:
        return self.result.get(name, default)


@dataclass(frozen=True)
class Failure:
    category: ErrorCategory
    # JSON-RPC error code, or HTTP status for transport failures.
    code: Optional[int] = None
    # Ledger status name for business rejections.
    status: Optional[str] = None
    message: str = ""

    ok: ClassVar[bool] = False

    def unwrap(self, what: str = "operation") -> Dict[str, Any]:
        raise OperationFailed(what, self)

    def describe(self) -> str:
        if self.category is ErrorCategory.BUSINESS_REJECTION:
            return f"status {self.status}"
        detail = f"{self.category.value}"
        if self.code is not None:
            detail += f" (code {self.code})"
        if self.message:
            detail += f": {self.message}"
        return detail


OperationOutcome = Union[Success, Failure]


def serial_numbers(result: Mapping[str, Any]) -> List[str]:
    return [str(s) for s in result.get("serialNumbers", [])]


def transfer(*lines: TransferLine, signers: Sequence[KeyLike] = (), payer: Optional[Identity] = None) -> TransferCrypto:
    """Shorthand for the operation most scenarios submit."""
    common = signed_by(*signers, payer=payer) if (signers or payer) else None
    return TransferCrypto(transfers=tuple(lines), common=common)


# --- Read models ---


@dataclass(frozen=True)
class NftRecord:
    """One NFT as a read source reports it."""
    owner: Identity
    token_id: Identity
    serial_number: str
    spender: Optional[Identity] = None
    delegating_spender: Optional[Identity] = None

    def matches(self, owner: Identity, token_id: Identity, serial_number: Union[int, str]) -> bool:
        return (
            self.owner == owner
            and self.token_id == token_id
            and self.serial_number == str(serial_number)
        )
