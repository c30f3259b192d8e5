"""
Pydantic schemas for API requests and camelCase response payloads
"""

from decimal import Decimal
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from ..accounts import Account
from ..transfers import Transfer, TransferResult, TransferHistoryItem


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CreateAccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: int = Field(..., alias="customerId")
    initial_deposit: Decimal = Field(..., alias="initialDeposit", description="Opening balance")


class TransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_account_id: int = Field(..., alias="fromAccountId")
    to_account_id: int = Field(..., alias="toAccountId")
    amount: Decimal = Field(..., description="Amount to move, must be positive")


def login_payload(result: Dict[str, Any]) -> Dict[str, Any]:
    employee = result["employee"]
    return {
        "token": result["token"],
        "employee": {
            "employeeId": employee["employee_id"],
            "username": employee["username"],
            "role": employee["role"]
        }
    }


def account_payload(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "customerId": account.customer_id,
        "balance": str(account.balance),
        "createdAt": account.created_at.isoformat(),
        "updatedAt": account.updated_at.isoformat()
    }


def balance_payload(balance: Dict[str, Any]) -> Dict[str, Any]:
    return {"accountId": balance["account_id"], "balance": str(balance["balance"])}


def transfer_payload(transfer: Transfer) -> Dict[str, Any]:
    return {
        "id": transfer.id,
        "fromAccountId": transfer.from_account_id,
        "toAccountId": transfer.to_account_id,
        "amount": str(transfer.amount),
        "timestamp": transfer.timestamp.isoformat()
    }


def transfer_result_payload(result: TransferResult) -> Dict[str, Any]:
    return {
        "transfer": transfer_payload(result.transfer),
        "fromAccount": account_payload(result.from_account),
        "toAccount": account_payload(result.to_account)
    }


def history_item_payload(item: TransferHistoryItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "amount": str(item.amount),
        "timestamp": item.timestamp.isoformat(),
        "direction": item.direction.value,
        "fromAccount": {"id": item.from_account.id, "customerName": item.from_account.customer_name},
        "toAccount": {"id": item.to_account.id, "customerName": item.to_account.customer_name}
    }
