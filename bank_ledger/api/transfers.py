"""
Funds transfer endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import BankingSystem, get_banking_system, get_current_employee
from .schemas import TransferRequest, transfer_result_payload


router = APIRouter(dependencies=[Depends(get_current_employee)])


@router.post("", status_code=status.HTTP_201_CREATED)
def transfer_funds(
    request: TransferRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Transfer funds between two accounts"""
    result = system.transfer_engine.transfer(
        from_account_id=request.from_account_id,
        to_account_id=request.to_account_id,
        amount=request.amount
    )
    return transfer_result_payload(result)
