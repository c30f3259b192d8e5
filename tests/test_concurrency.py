"""
Concurrency tests for the transfer engine

Concurrent transfers out of one account must never overdraw it and must
conserve the total amount of money across all accounts.
"""

import tempfile
import threading
from decimal import Decimal
from pathlib import Path

from bank_ledger.storage import InMemoryLedgerStore, SQLiteLedgerStore
from bank_ledger.customers import CustomerManager
from bank_ledger.accounts import AccountService
from bank_ledger.transfers import TransferEngine
from bank_ledger.errors import InsufficientFundsError


def run_concurrently(tasks):
    """Start every task behind a barrier and collect outcomes in order"""
    barrier = threading.Barrier(len(tasks))
    outcomes = [None] * len(tasks)

    def worker(index, task):
        barrier.wait()
        try:
            outcomes[index] = task()
        except Exception as e:
            outcomes[index] = e

    threads = [threading.Thread(target=worker, args=(i, task)) for i, task in enumerate(tasks)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


class TestInMemoryConcurrency:
    """Threads sharing one in-memory store"""

    def setup_method(self):
        self.storage = InMemoryLedgerStore()
        customer = CustomerManager(self.storage).create_customer("Arisha Barron")
        self.accounts = AccountService(self.storage)
        self.engine = TransferEngine(self.storage, retry_backoff=0)
        self.source = self.accounts.create_account(customer.id, Decimal("100"))
        self.destination_a = self.accounts.create_account(customer.id, Decimal("1"))
        self.destination_b = self.accounts.create_account(customer.id, Decimal("1"))

    def test_competing_withdrawals_never_overdraw(self):
        """Two transfers of 60 from a balance of 100: exactly one succeeds"""
        outcomes = run_concurrently([
            lambda: self.engine.transfer(self.source.id, self.destination_a.id, Decimal("60")),
            lambda: self.engine.transfer(self.source.id, self.destination_b.id, Decimal("60")),
        ])

        failures = [o for o in outcomes if isinstance(o, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientFundsError)
        assert self.accounts.get_balance(self.source.id)["balance"] == Decimal("40")
        assert self.storage.count("transfers") == 1

    def test_many_transfers_conserve_total(self):
        """Crossing transfers in both directions keep the sum constant"""
        tasks = []
        for _ in range(20):
            tasks.append(lambda: self.engine.transfer(self.source.id, self.destination_a.id, Decimal("3")))
            tasks.append(lambda: self.engine.transfer(self.destination_a.id, self.source.id, Decimal("1")))
            tasks.append(lambda: self.engine.transfer(self.destination_b.id, self.source.id, Decimal("0.5")))

        outcomes = run_concurrently(tasks)

        succeeded = [o for o in outcomes if not isinstance(o, Exception)]
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                assert isinstance(outcome, InsufficientFundsError)

        balances = [
            self.accounts.get_balance(account.id)["balance"]
            for account in (self.source, self.destination_a, self.destination_b)
        ]
        assert sum(balances) == Decimal("102")
        assert all(balance >= 0 for balance in balances)
        assert self.storage.count("transfers") == len(succeeded)


class TestSQLiteConcurrency:
    """Separate store handles on one SQLite file, as separate processes would use"""

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = Path(self.temp_dir.name) / "ledger.db"

        self.storage = SQLiteLedgerStore(self.db_path)
        customer = CustomerManager(self.storage).create_customer("Branden Gibson")
        accounts = AccountService(self.storage)
        self.source = accounts.create_account(customer.id, Decimal("100"))
        self.destination_a = accounts.create_account(customer.id, Decimal("1"))
        self.destination_b = accounts.create_account(customer.id, Decimal("1"))

        self.handles = [SQLiteLedgerStore(self.db_path), SQLiteLedgerStore(self.db_path)]

    def teardown_method(self):
        for handle in self.handles:
            handle.close()
        self.storage.close()
        self.temp_dir.cleanup()

    def test_competing_withdrawals_never_overdraw(self):
        """Two handles each move 60 out of 100: exactly one succeeds"""
        engine_a = TransferEngine(self.handles[0], retry_backoff=0.01)
        engine_b = TransferEngine(self.handles[1], retry_backoff=0.01)

        outcomes = run_concurrently([
            lambda: engine_a.transfer(self.source.id, self.destination_a.id, Decimal("60")),
            lambda: engine_b.transfer(self.source.id, self.destination_b.id, Decimal("60")),
        ])

        failures = [o for o in outcomes if isinstance(o, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientFundsError)

        assert self.storage.get_account(self.source.id)["balance"] == Decimal("40")
        total = sum(
            self.storage.get_account(account.id)["balance"]
            for account in (self.source, self.destination_a, self.destination_b)
        )
        assert total == Decimal("102")
        assert self.storage.count("transfers") == 1
