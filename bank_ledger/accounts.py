"""
Account Management Module

Opens customer accounts with a strictly positive initial deposit and reads
balances. After creation an account's balance is only ever changed by the
transfer engine.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict

from .storage import LedgerStore, StorageRecord
from .errors import NotFoundError
from .validation import require_positive_amount
from .logging_config import get_logger, log_action


@dataclass
class Account(StorageRecord):
    """Monetary balance owned by exactly one customer"""
    customer_id: int
    balance: Decimal
    created_at: datetime
    updated_at: datetime


class AccountService:
    """
    Creates accounts and answers balance queries
    """

    def __init__(self, storage: LedgerStore):
        self.storage = storage
        self.logger = get_logger("bank_ledger.accounts")

    def create_account(self, customer_id: int, initial_deposit: Any) -> Account:
        """
        Open a new account for an existing customer

        Args:
            customer_id: ID of the owning customer
            initial_deposit: Opening balance, must be finite and > 0

        Returns:
            Persisted Account with generated id and timestamps

        Raises:
            NotFoundError: customer does not exist
            InvalidArgumentError: initial deposit is not a positive number
        """
        with self.storage.atomic():
            if self.storage.get_customer(customer_id) is None:
                raise NotFoundError("Customer not found")

            deposit = require_positive_amount(
                initial_deposit, "initial deposit must be greater than zero"
            )
            account = Account.from_row(self.storage.insert_account(customer_id, deposit))

        log_action(
            self.logger, "info", "Account created",
            action="create_account", resource=f"account:{account.id}",
            extra={
                "account_id": account.id,
                "customer_id": customer_id,
                "initial_deposit": str(deposit)
            }
        )
        return account

    def get_account(self, account_id: int) -> Account:
        """Get account by ID or raise NotFoundError"""
        row = self.storage.get_account(account_id)
        if row is None:
            raise NotFoundError("Account not found")
        return Account.from_row(row)

    def get_balance(self, account_id: int) -> Dict[str, Any]:
        """
        Current balance of an account.

        Unlocked read: a concurrent transfer may commit right after it.
        """
        account = self.get_account(account_id)
        return {"account_id": account.id, "balance": account.balance}
