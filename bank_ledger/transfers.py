"""
Funds Transfer Module

Moves money between two accounts as one atomic unit of work and serves the
per-account transfer history.

The existence and sufficiency checks run inside the same store transaction
as the balance writes, on rows read with the store's locking read. Two
concurrent transfers out of one account therefore cannot both pass the
sufficiency check against the same stale balance.
"""

from decimal import Decimal, Inexact, InvalidOperation
from datetime import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Any, List
import time

from .storage import LedgerStore, StorageRecord, utc_now
from .accounts import Account
from .errors import (
    InvalidArgumentError, InsufficientFundsError, NotFoundError,
    StoreConflict, UnavailableError
)
from .validation import require_positive_amount, exact_money
from .logging_config import get_logger, log_action


class TransferDirection(Enum):
    """Direction of a transfer relative to the account whose history is read"""
    SENT = "sent"
    RECEIVED = "received"


@dataclass
class Transfer(StorageRecord):
    """Immutable record of one completed balance movement"""
    from_account_id: int
    to_account_id: int
    amount: Decimal
    timestamp: datetime


@dataclass
class TransferResult:
    """Outcome of a successful transfer with both accounts' post-transfer state"""
    transfer: Transfer
    from_account: Account
    to_account: Account


@dataclass
class AccountRef:
    """Account id plus the owning customer's display name"""
    id: int
    customer_name: str


@dataclass
class TransferHistoryItem:
    """One transfer as seen from a particular account"""
    id: int
    amount: Decimal
    timestamp: datetime
    from_account: AccountRef
    to_account: AccountRef
    direction: TransferDirection


class TransferEngine:
    """
    Validates and executes atomic transfers between accounts
    """

    def __init__(self, storage: LedgerStore, max_retries: int = 5, retry_backoff: float = 0.02):
        """
        Args:
            storage: Ledger store providing atomic() and locking reads
            max_retries: Attempts before a store conflict becomes UnavailableError
            retry_backoff: Base delay in seconds, multiplied by the attempt number
        """
        self.storage = storage
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.logger = get_logger("bank_ledger.transfers")

    def transfer(self, from_account_id: int, to_account_id: int, amount: Any) -> TransferResult:
        """
        Transfer funds between two accounts

        Checks run in this order and the first failure wins:
        amount > 0, distinct accounts, source exists, destination exists,
        sufficient funds. The last three run inside the atomic unit.

        Raises:
            InvalidArgumentError: bad amount, same account
            InsufficientFundsError: source balance below amount
            NotFoundError: source or destination account missing
            UnavailableError: store conflicts outlasted the retry budget
        """
        amount = require_positive_amount(amount, "amount must be positive")
        if from_account_id == to_account_id:
            raise InvalidArgumentError("cannot transfer to same account")

        for attempt in range(1, self.max_retries + 1):
            try:
                result = self._execute_transfer(from_account_id, to_account_id, amount)
            except StoreConflict as e:
                log_action(
                    self.logger, "warning", "Transfer hit a store conflict",
                    action="transfer_conflict",
                    extra={
                        "from_account": from_account_id,
                        "to_account": to_account_id,
                        "attempt": attempt,
                        "error": str(e)
                    }
                )
                if attempt < self.max_retries:
                    time.sleep(self.retry_backoff * attempt)
                continue
            except (NotFoundError, InvalidArgumentError) as e:
                log_action(
                    self.logger, "info", f"Transfer rejected: {e.message}",
                    action="transfer_rejected",
                    extra={
                        "from_account": from_account_id,
                        "to_account": to_account_id,
                        "amount": str(amount),
                        "kind": e.kind.value
                    }
                )
                raise

            log_action(
                self.logger, "info", "Transfer completed",
                action="transfer", resource=f"transfer:{result.transfer.id}",
                extra={
                    "transfer_id": result.transfer.id,
                    "from_account": from_account_id,
                    "to_account": to_account_id,
                    "amount": str(amount)
                }
            )
            return result

        raise UnavailableError("transfer could not be completed due to concurrent activity, please retry")

    def _execute_transfer(self, from_account_id: int, to_account_id: int, amount: Decimal) -> TransferResult:
        """One attempt: lock, validate, mutate and commit, or roll back entirely"""
        with self.storage.atomic():
            locked = self.storage.lock_accounts([from_account_id, to_account_id])

            source = locked.get(from_account_id)
            if source is None:
                raise NotFoundError("source account does not exist")

            destination = locked.get(to_account_id)
            if destination is None:
                raise NotFoundError("destination account does not exist")

            if source["balance"] < amount:
                raise InsufficientFundsError("insufficient funds")

            try:
                with exact_money():
                    new_source_balance = source["balance"] - amount
                    new_destination_balance = destination["balance"] + amount
            except (Inexact, InvalidOperation):
                raise InvalidArgumentError("resulting balance exceeds supported precision")

            now = utc_now()
            from_row = self.storage.set_account_balance(from_account_id, new_source_balance, now)
            to_row = self.storage.set_account_balance(to_account_id, new_destination_balance, now)
            transfer_row = self.storage.insert_transfer(from_account_id, to_account_id, amount, now)

        return TransferResult(
            transfer=Transfer.from_row(transfer_row),
            from_account=Account.from_row(from_row),
            to_account=Account.from_row(to_row)
        )

    def get_transfer_history(self, account_id: int) -> List[TransferHistoryItem]:
        """
        All transfers sent or received by an account, newest first

        Ties on timestamp are broken by transfer id, newest first.

        Raises:
            NotFoundError: account does not exist
        """
        if self.storage.get_account(account_id) is None:
            raise NotFoundError("Account not found")

        history = []
        for row in self.storage.find_transfers_for_account(account_id):
            direction = (
                TransferDirection.SENT if row["from_account_id"] == account_id
                else TransferDirection.RECEIVED
            )
            history.append(TransferHistoryItem(
                id=row["id"],
                amount=row["amount"],
                timestamp=row["timestamp"],
                from_account=AccountRef(row["from_account_id"], row["from_customer_name"]),
                to_account=AccountRef(row["to_account_id"], row["to_customer_name"]),
                direction=direction
            ))
        return history
