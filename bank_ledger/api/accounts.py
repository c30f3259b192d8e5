"""
Account management endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import BankingSystem, get_banking_system, get_current_employee
from .schemas import (
    CreateAccountRequest, account_payload, balance_payload, history_item_payload
)


router = APIRouter(dependencies=[Depends(get_current_employee)])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Open an account for an existing customer"""
    account = system.account_service.create_account(
        customer_id=request.customer_id,
        initial_deposit=request.initial_deposit
    )
    return account_payload(account)


@router.get("/{account_id}")
def get_balance(
    account_id: int,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account balance"""
    return balance_payload(system.account_service.get_balance(account_id))


@router.get("/{account_id}/transfers")
def get_transfer_history(
    account_id: int,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get transfer history for account, newest first"""
    history = system.transfer_engine.get_transfer_history(account_id)
    return [history_item_payload(item) for item in history]
