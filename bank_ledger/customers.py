"""
Customer Management Module

Customers are provisioned by seed data or an external onboarding path and
are never deleted once an account references them.
"""

from datetime import datetime
from dataclasses import dataclass
from typing import List, Optional

from .storage import LedgerStore, StorageRecord
from .errors import InvalidArgumentError
from .logging_config import get_logger, log_action


@dataclass
class Customer(StorageRecord):
    """Person who may own zero or more accounts"""
    name: str
    created_at: datetime
    updated_at: datetime


class CustomerManager:
    """
    Provisioning path and lookups for customers
    """

    def __init__(self, storage: LedgerStore):
        self.storage = storage
        self.logger = get_logger("bank_ledger.customers")

    def create_customer(self, name: str) -> Customer:
        """
        Create a new customer

        Args:
            name: Display name shown in transfer history

        Returns:
            Created Customer object
        """
        name = (name or "").strip()
        if not name:
            raise InvalidArgumentError("customer name is required")

        with self.storage.atomic():
            row = self.storage.insert_customer(name)
        customer = Customer.from_row(row)

        log_action(
            self.logger, "info", "Customer created",
            action="create_customer", resource=f"customer:{customer.id}",
            extra={"customer_id": customer.id}
        )
        return customer

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        """Get customer by ID"""
        row = self.storage.get_customer(customer_id)
        if row:
            return Customer.from_row(row)
        return None

    def find_by_name(self, name: str) -> List[Customer]:
        """Get all customers with an exact display name"""
        return [Customer.from_row(row) for row in self.storage.find_customers_by_name(name)]

    def ensure_customer(self, name: str) -> Customer:
        """Return the first customer with this name, creating it if missing"""
        existing = self.find_by_name(name)
        if existing:
            return existing[0]
        return self.create_customer(name)
