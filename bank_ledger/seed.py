#!/usr/bin/env python3
"""Seed script for the bank ledger

Provisions the first-run data:
- 4 customers
- 2 employees (a teller and a manager) sharing a default password

Safe to run repeatedly: customers are matched by name, employees by username.

Run with: python -m bank_ledger.seed
"""

from typing import Any, Dict

from .api.auth import BankingSystem
from .auth import EmployeeRole
from .config import get_config
from .logging_config import setup_logging, get_logger, log_action


SEED_CUSTOMERS = [
    "Arisha Barron",
    "Branden Gibson",
    "Rhonda Church",
    "Georgina Hazel",
]

SEED_EMPLOYEES = [
    ("employee1", "Jacques Cousteau", EmployeeRole.TELLER),
    ("manager1", "Poseidon no last name", EmployeeRole.MANAGER),
]

DEFAULT_PASSWORD = "password123"

logger = get_logger("bank_ledger.seed")


def seed_database(system: BankingSystem) -> Dict[str, Any]:
    """Create seed customers and employees if they are missing"""
    customers = [system.customer_manager.ensure_customer(name) for name in SEED_CUSTOMERS]

    employees = []
    for username, name, role in SEED_EMPLOYEES:
        # Re-registering resets the password in case it changed
        employees.append(system.authenticator.register_employee(username, DEFAULT_PASSWORD, name, role))

    summary = {
        "customers": {customer.name: customer.id for customer in customers},
        "employees": [employee.username for employee in employees]
    }
    log_action(logger, "info", "Seed data provisioned", action="seed", extra=summary)
    return summary


def main() -> None:
    config = get_config()
    setup_logging(config.log_level, config.log_format)

    system = BankingSystem(config)
    try:
        seed_database(system)
    finally:
        system.close()


if __name__ == "__main__":
    main()
