# Models with validation
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from core.utils import UINT256_MAX, is_null_address, to_address


def _recipient(value: str) -> str:
    address = to_address(value)
    if is_null_address(address):
        raise ValueError("Recipient must not be the null address")
    return address


Address = Annotated[str, AfterValidator(to_address)]
Recipient = Annotated[str, AfterValidator(_recipient)]
Amount = Annotated[int, Field(ge=0, le=UINT256_MAX)]


# API request models
class DisbursementRequest(BaseModel):
    transaction_id: str
    sender: Address
    recipients: list[Recipient]
    amounts: list[Amount]
    value: Amount


class DepositRequest(BaseModel):
    transaction_id: str
    sender: Address
    amount: Amount


# API response models
class AuditEventResponse(BaseModel):
    account: str
    action: str
    amount: int
    block_number: int


class DisbursementResponse(BaseModel):
    transaction_id: str
    status: str
    message: str
    error: str | None = None
    events: list[AuditEventResponse] = []


class DepositResponse(BaseModel):
    transaction_id: str
    status: str
    message: str
    block_number: int | None = None


class NetworkInfoResponse(BaseModel):
    chain_id: int
    bridge: str
    block_number: int
    timestamp: int


class BalanceResponse(BaseModel):
    address: str
    balance: int
    balance_in_ether: str


class GasCostResponse(BaseModel):
    gas_used: int
    gas_price: int
    cost: int
