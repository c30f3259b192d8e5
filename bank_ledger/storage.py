"""
Storage Backend Module

Provides the abstract ledger store interface and implementations for
in-memory (testing), SQLite (default persistence) and PostgreSQL
(production). Rows are returned as plain dicts with Decimal balances and
timezone-aware datetimes.

Every backend implements atomic() so that all reads and writes inside the
block form one isolated, all-or-nothing unit of work:

- InMemoryLedgerStore (tests only) holds one store-wide lock for the
  whole unit and restores a snapshot on rollback.
- SQLiteLedgerStore issues BEGIN IMMEDIATE, taking the database write lock
  before the first read of the unit.
- PostgreSQLLedgerStore gives each unit its own pooled connection and
  reads account rows with SELECT ... FOR UPDATE.

Lock contention that the backend cannot wait out is raised as StoreConflict.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Iterable, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import threading
from dataclasses import dataclass, fields
from pathlib import Path
from contextlib import contextmanager

from .errors import StoreConflict


TABLES = ("customers", "accounts", "transfers", "employees")

DECIMAL_COLUMNS = ("balance", "amount")
DATETIME_COLUMNS = ("created_at", "updated_at", "timestamp")

# Primary keys are signed 64-bit integers in SQLite and PostgreSQL (BIGINT)
MIN_ROW_ID = -2 ** 63
MAX_ROW_ID = 2 ** 63 - 1


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: int

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from a store row, ignoring joined columns"""
        return cls(**{f.name: row[f.name] for f in fields(cls) if f.name in row})


class LedgerStore(ABC):
    """Abstract interface for ledger storage backends"""

    # Customers

    @abstractmethod
    def insert_customer(self, name: str) -> Dict[str, Any]:
        """Insert a customer and return the stored row"""
        pass

    @abstractmethod
    def get_customer(self, customer_id: int) -> Optional[Dict[str, Any]]:
        """Load a customer by primary key"""
        pass

    @abstractmethod
    def find_customers_by_name(self, name: str) -> List[Dict[str, Any]]:
        """Find customers with an exact display name"""
        pass

    # Accounts

    @abstractmethod
    def insert_account(self, customer_id: int, balance: Decimal) -> Dict[str, Any]:
        """Insert an account and return the stored row"""
        pass

    @abstractmethod
    def get_account(self, account_id: int, for_update: bool = False) -> Optional[Dict[str, Any]]:
        """
        Load an account by primary key.

        With for_update=True the row is locked against concurrent writers until
        the enclosing atomic() block ends. Only meaningful inside atomic().
        """
        pass

    @abstractmethod
    def set_account_balance(self, account_id: int, balance: Decimal,
                            updated_at: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """Overwrite an account balance and return the updated row"""
        pass

    def lock_accounts(self, account_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
        """
        Lock and load several accounts, keyed by id.

        Rows are locked in ascending id order so that two units locking the
        same pair never wait on each other in opposite order. Missing ids are
        absent from the result.
        """
        locked = {}
        for account_id in sorted(set(account_ids)):
            row = self.get_account(account_id, for_update=True)
            if row is not None:
                locked[account_id] = row
        return locked

    # Transfers

    @abstractmethod
    def insert_transfer(self, from_account_id: int, to_account_id: int,
                        amount: Decimal, timestamp: datetime) -> Dict[str, Any]:
        """Append a transfer row and return it"""
        pass

    @abstractmethod
    def find_transfers_for_account(self, account_id: int) -> List[Dict[str, Any]]:
        """
        All transfers where the account is source or destination.

        Each row also carries from_customer_name and to_customer_name.
        Ordered by timestamp descending, then id descending.
        """
        pass

    # Employees

    @abstractmethod
    def upsert_employee(self, username: str, password_hash: str, name: str, role: str) -> Dict[str, Any]:
        """Insert an employee or update the one with the same username"""
        pass

    @abstractmethod
    def get_employee(self, employee_id: int) -> Optional[Dict[str, Any]]:
        """Load an employee by primary key"""
        pass

    @abstractmethod
    def get_employee_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        """Load an employee by unique username"""
        pass

    # Housekeeping

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException:
            self.rollback()
            raise


def _check_table(table: str) -> None:
    if table not in TABLES:
        raise ValueError(f"Unknown table '{table}'")


def _is_row_id(value: int) -> bool:
    """Ids outside the key column range can never match a row"""
    return MIN_ROW_ID <= value <= MAX_ROW_ID


class InMemoryLedgerStore(LedgerStore):
    """
    In-memory storage implementation for testing

    One store-wide lock is held for each whole unit of work, so all units
    run one at a time. Not meant for serving concurrent traffic.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[int, Dict[str, Any]]] = {table: {} for table in TABLES}
        self._sequences: Dict[str, int] = {table: 0 for table in TABLES}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot = None

    def _next_id(self, table: str) -> int:
        self._sequences[table] += 1
        return self._sequences[table]

    def _insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row["id"] = self._next_id(table)
        self._tables[table][row["id"]] = row
        return dict(row)

    def insert_customer(self, name: str) -> Dict[str, Any]:
        with self._lock:
            now = utc_now()
            return self._insert("customers", {"name": name, "created_at": now, "updated_at": now})

    def get_customer(self, customer_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._tables["customers"].get(customer_id)
            return dict(row) if row else None

    def find_customers_by_name(self, name: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self._tables["customers"].values() if row["name"] == name]

    def insert_account(self, customer_id: int, balance: Decimal) -> Dict[str, Any]:
        with self._lock:
            if customer_id not in self._tables["customers"]:
                raise ValueError(f"Customer {customer_id} does not exist")
            now = utc_now()
            return self._insert("accounts", {
                "customer_id": customer_id,
                "balance": balance,
                "created_at": now,
                "updated_at": now
            })

    def get_account(self, account_id: int, for_update: bool = False) -> Optional[Dict[str, Any]]:
        # The store lock is already held for the whole unit when for_update matters
        with self._lock:
            row = self._tables["accounts"].get(account_id)
            return dict(row) if row else None

    def set_account_balance(self, account_id: int, balance: Decimal,
                            updated_at: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._tables["accounts"].get(account_id)
            if row is None:
                return None
            row["balance"] = balance
            row["updated_at"] = updated_at or utc_now()
            return dict(row)

    def insert_transfer(self, from_account_id: int, to_account_id: int,
                        amount: Decimal, timestamp: datetime) -> Dict[str, Any]:
        with self._lock:
            accounts = self._tables["accounts"]
            if from_account_id not in accounts or to_account_id not in accounts:
                raise ValueError("Transfer references a missing account")
            return self._insert("transfers", {
                "from_account_id": from_account_id,
                "to_account_id": to_account_id,
                "amount": amount,
                "timestamp": timestamp
            })

    def find_transfers_for_account(self, account_id: int) -> List[Dict[str, Any]]:
        with self._lock:
            accounts = self._tables["accounts"]
            customers = self._tables["customers"]

            def customer_name(acc_id: int) -> str:
                return customers[accounts[acc_id]["customer_id"]]["name"]

            results = []
            for row in self._tables["transfers"].values():
                if row["from_account_id"] == account_id or row["to_account_id"] == account_id:
                    item = dict(row)
                    item["from_customer_name"] = customer_name(row["from_account_id"])
                    item["to_customer_name"] = customer_name(row["to_account_id"])
                    results.append(item)

            results.sort(key=lambda r: (r["timestamp"], r["id"]), reverse=True)
            return results

    def upsert_employee(self, username: str, password_hash: str, name: str, role: str) -> Dict[str, Any]:
        with self._lock:
            now = utc_now()
            for row in self._tables["employees"].values():
                if row["username"] == username:
                    row.update(password_hash=password_hash, name=name, role=role, updated_at=now)
                    return dict(row)
            return self._insert("employees", {
                "username": username,
                "password_hash": password_hash,
                "name": name,
                "role": role,
                "created_at": now,
                "updated_at": now
            })

    def get_employee(self, employee_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._tables["employees"].get(employee_id)
            return dict(row) if row else None

    def get_employee_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for row in self._tables["employees"].values():
                if row["username"] == username:
                    return dict(row)
            return None

    def count(self, table: str) -> int:
        _check_table(table)
        with self._lock:
            return len(self._tables[table])

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def begin_transaction(self) -> None:
        """Acquire the store lock for the whole unit and snapshot the tables"""
        self._lock.acquire()
        self._depth += 1
        if self._depth == 1:
            self._snapshot = (
                {table: {k: dict(v) for k, v in rows.items()} for table, rows in self._tables.items()},
                dict(self._sequences)
            )

    def commit(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        self._depth -= 1
        if self._depth == 0 and self._snapshot is not None:
            self._tables, self._sequences = self._snapshot
            self._snapshot = None
        self._lock.release()


SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS customers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES customers(id) ON DELETE RESTRICT,
    balance TEXT NOT NULL CHECK (CAST(balance AS REAL) >= 0),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_accounts_customer_id ON accounts(customer_id);

CREATE TABLE IF NOT EXISTS transfers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE RESTRICT,
    to_account_id INTEGER NOT NULL REFERENCES accounts(id) ON DELETE RESTRICT,
    amount TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    CHECK (from_account_id <> to_account_id)
);

CREATE INDEX IF NOT EXISTS idx_transfers_from_account_id ON transfers(from_account_id);
CREATE INDEX IF NOT EXISTS idx_transfers_to_account_id ON transfers(to_account_id);

CREATE TABLE IF NOT EXISTS employees (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    name TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'teller',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

HISTORY_QUERY = """
    SELECT t.id, t.from_account_id, t.to_account_id, t.amount, t.timestamp,
           fc.name AS from_customer_name, tc.name AS to_customer_name
    FROM transfers t
    JOIN accounts fa ON fa.id = t.from_account_id
    JOIN customers fc ON fc.id = fa.customer_id
    JOIN accounts ta ON ta.id = t.to_account_id
    JOIN customers tc ON tc.id = ta.customer_id
    WHERE t.from_account_id = {p} OR t.to_account_id = {p}
    ORDER BY t.timestamp DESC, t.id DESC
"""


def _format_timestamp(value: datetime) -> str:
    # Fixed-width ISO text keeps lexicographic order equal to time order
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _decode_sqlite_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    data = dict(row)
    for key in DECIMAL_COLUMNS:
        if key in data and data[key] is not None:
            data[key] = Decimal(data[key])
    for key in DATETIME_COLUMNS:
        if key in data and data[key] is not None:
            data[key] = datetime.fromisoformat(data[key])
    return data


def _is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


class SQLiteLedgerStore(LedgerStore):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", busy_timeout_ms: int = 5000):
        self.db_path = str(db_path)
        # isolation_level=None: statements autocommit unless we issue BEGIN ourselves
        self._connection = sqlite3.connect(
            self.db_path,
            timeout=busy_timeout_ms / 1000,
            check_same_thread=False,
            isolation_level=None
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0

        with self._lock:
            self._connection.execute("PRAGMA foreign_keys = ON")
            if self.db_path != ":memory:":
                # WAL mode lets readers proceed while a transfer holds the write lock
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.executescript(SQLITE_SCHEMA)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(sql, params)
        except sqlite3.OperationalError as e:
            if _is_lock_error(e):
                raise StoreConflict(str(e)) from e
            raise

    def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            return _decode_sqlite_row(self._execute(sql, params).fetchone())

    def _fetch_all(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self._lock:
            return [_decode_sqlite_row(row) for row in self._execute(sql, params).fetchall()]

    def insert_customer(self, name: str) -> Dict[str, Any]:
        with self._lock:
            now = _format_timestamp(utc_now())
            cursor = self._execute(
                "INSERT INTO customers (name, created_at, updated_at) VALUES (?, ?, ?)",
                (name, now, now)
            )
            return self.get_customer(cursor.lastrowid)

    def get_customer(self, customer_id: int) -> Optional[Dict[str, Any]]:
        if not _is_row_id(customer_id):
            return None
        return self._fetch_one("SELECT * FROM customers WHERE id = ?", (customer_id,))

    def find_customers_by_name(self, name: str) -> List[Dict[str, Any]]:
        return self._fetch_all("SELECT * FROM customers WHERE name = ? ORDER BY id", (name,))

    def insert_account(self, customer_id: int, balance: Decimal) -> Dict[str, Any]:
        with self._lock:
            now = _format_timestamp(utc_now())
            cursor = self._execute(
                "INSERT INTO accounts (customer_id, balance, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (customer_id, str(balance), now, now)
            )
            return self.get_account(cursor.lastrowid)

    def get_account(self, account_id: int, for_update: bool = False) -> Optional[Dict[str, Any]]:
        # BEGIN IMMEDIATE already holds the write lock, so no row lock clause exists or is needed
        if not _is_row_id(account_id):
            return None
        return self._fetch_one("SELECT * FROM accounts WHERE id = ?", (account_id,))

    def set_account_balance(self, account_id: int, balance: Decimal,
                            updated_at: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        if not _is_row_id(account_id):
            return None
        with self._lock:
            self._execute(
                "UPDATE accounts SET balance = ?, updated_at = ? WHERE id = ?",
                (str(balance), _format_timestamp(updated_at or utc_now()), account_id)
            )
            return self.get_account(account_id)

    def insert_transfer(self, from_account_id: int, to_account_id: int,
                        amount: Decimal, timestamp: datetime) -> Dict[str, Any]:
        with self._lock:
            cursor = self._execute(
                "INSERT INTO transfers (from_account_id, to_account_id, amount, timestamp) VALUES (?, ?, ?, ?)",
                (from_account_id, to_account_id, str(amount), _format_timestamp(timestamp))
            )
            return self._fetch_one("SELECT * FROM transfers WHERE id = ?", (cursor.lastrowid,))

    def find_transfers_for_account(self, account_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(HISTORY_QUERY.format(p="?"), (account_id, account_id))

    def upsert_employee(self, username: str, password_hash: str, name: str, role: str) -> Dict[str, Any]:
        with self._lock:
            now = _format_timestamp(utc_now())
            self._execute("""
                INSERT INTO employees (username, password_hash, name, role, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (username) DO UPDATE SET
                    password_hash = excluded.password_hash,
                    name = excluded.name,
                    role = excluded.role,
                    updated_at = excluded.updated_at
            """, (username, password_hash, name, role, now, now))
            return self.get_employee_by_username(username)

    def get_employee(self, employee_id: int) -> Optional[Dict[str, Any]]:
        if not _is_row_id(employee_id):
            return None
        return self._fetch_one("SELECT * FROM employees WHERE id = ?", (employee_id,))

    def get_employee_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM employees WHERE username = ?", (username,))

    def count(self, table: str) -> int:
        _check_table(table)
        with self._lock:
            return self._execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()["count"]

    def begin_transaction(self) -> None:
        """Start a write transaction, taking the database write lock up front"""
        self._lock.acquire()
        if self._depth == 0:
            try:
                self._execute("BEGIN IMMEDIATE")
            except BaseException:
                self._lock.release()
                raise
        self._depth += 1

    def commit(self) -> None:
        """Commit current transaction"""
        if self._depth == 1:
            # On failure the state is left for rollback() to unwind
            self._execute("COMMIT")
        self._depth -= 1
        self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction"""
        try:
            if self._depth == 1 and self._connection.in_transaction:
                self._connection.execute("ROLLBACK")
        finally:
            self._depth -= 1
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


POSTGRESQL_SCHEMA = """
CREATE TABLE IF NOT EXISTS customers (
    id BIGSERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS accounts (
    id BIGSERIAL PRIMARY KEY,
    customer_id BIGINT NOT NULL REFERENCES customers(id) ON DELETE RESTRICT,
    balance NUMERIC NOT NULL CHECK (balance >= 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_accounts_customer_id ON accounts(customer_id);

CREATE TABLE IF NOT EXISTS transfers (
    id BIGSERIAL PRIMARY KEY,
    from_account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE RESTRICT,
    to_account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE RESTRICT,
    amount NUMERIC NOT NULL CHECK (amount > 0),
    timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (from_account_id <> to_account_id)
);

CREATE INDEX IF NOT EXISTS idx_transfers_from_account_id ON transfers(from_account_id);
CREATE INDEX IF NOT EXISTS idx_transfers_to_account_id ON transfers(to_account_id);

CREATE TABLE IF NOT EXISTS employees (
    id BIGSERIAL PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    name TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'teller',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


class PostgreSQLLedgerStore(LedgerStore):
    """
    PostgreSQL storage backend with row-level locking

    Connections come from a thread-safe pool. A unit of work opened with
    atomic() keeps one connection on the calling thread until it commits or
    rolls back, so concurrent transfers only meet at the FOR UPDATE row
    locks. Statements outside a unit borrow a connection and autocommit.
    """

    def __init__(self, connection_string: str, min_connections: int = 1, max_connections: int = 10):
        try:
            import psycopg2
            import psycopg2.errors
            import psycopg2.extras
            import psycopg2.pool
            self.psycopg2 = psycopg2
            self.extras = psycopg2.extras
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install psycopg2-binary")

        self.connection_string = connection_string
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            min_connections,
            max_connections,
            connection_string,
            cursor_factory=self.extras.RealDictCursor
        )
        self._local = threading.local()
        self._conflict_errors = (
            psycopg2.extensions.TransactionRollbackError,  # serialization failure, deadlock
            psycopg2.errors.LockNotAvailable,
        )
        self._ensure_schema()

    def _getconn(self):
        try:
            return self._pool.getconn()
        except self.psycopg2.pool.PoolError as e:
            raise StoreConflict(f"connection pool exhausted: {e}") from e

    def _unit_connection(self):
        """Connection owned by this thread's open unit of work, if any"""
        return getattr(self._local, "connection", None)

    def _release_unit(self) -> None:
        connection = self._local.connection
        self._local.connection = None
        self._local.depth = 0
        self._pool.putconn(connection)

    def _ensure_schema(self) -> None:
        connection = self._getconn()
        try:
            with connection.cursor() as cursor:
                cursor.execute(POSTGRESQL_SCHEMA)
            connection.commit()
        finally:
            self._pool.putconn(connection)

    def _execute(self, connection, sql: str, params: tuple, fetch: str):
        try:
            with connection.cursor() as cursor:
                cursor.execute(sql, params)
                if fetch == "one":
                    row = cursor.fetchone()
                    return dict(row) if row else None
                if fetch == "all":
                    return [dict(row) for row in cursor.fetchall()]
                return None
        except self._conflict_errors as e:
            raise StoreConflict(str(e)) from e

    def _run(self, sql: str, params: tuple = (), fetch: str = "none"):
        """Execute one statement, committing immediately when outside atomic()"""
        connection = self._unit_connection()
        if connection is not None:
            return self._execute(connection, sql, params, fetch)

        connection = self._getconn()
        try:
            result = self._execute(connection, sql, params, fetch)
            connection.commit()
            return result
        except self._conflict_errors as e:
            connection.rollback()
            raise StoreConflict(str(e)) from e
        except BaseException:
            connection.rollback()
            raise
        finally:
            self._pool.putconn(connection)

    def insert_customer(self, name: str) -> Dict[str, Any]:
        return self._run(
            "INSERT INTO customers (name) VALUES (%s) RETURNING *",
            (name,), fetch="one"
        )

    def get_customer(self, customer_id: int) -> Optional[Dict[str, Any]]:
        if not _is_row_id(customer_id):
            return None
        return self._run("SELECT * FROM customers WHERE id = %s", (customer_id,), fetch="one")

    def find_customers_by_name(self, name: str) -> List[Dict[str, Any]]:
        return self._run("SELECT * FROM customers WHERE name = %s ORDER BY id", (name,), fetch="all")

    def insert_account(self, customer_id: int, balance: Decimal) -> Dict[str, Any]:
        return self._run(
            "INSERT INTO accounts (customer_id, balance) VALUES (%s, %s) RETURNING *",
            (customer_id, balance), fetch="one"
        )

    def get_account(self, account_id: int, for_update: bool = False) -> Optional[Dict[str, Any]]:
        if not _is_row_id(account_id):
            return None
        sql = "SELECT * FROM accounts WHERE id = %s"
        if for_update:
            sql += " FOR UPDATE"
        return self._run(sql, (account_id,), fetch="one")

    def set_account_balance(self, account_id: int, balance: Decimal,
                            updated_at: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        if not _is_row_id(account_id):
            return None
        return self._run(
            "UPDATE accounts SET balance = %s, updated_at = %s WHERE id = %s RETURNING *",
            (balance, updated_at or utc_now(), account_id), fetch="one"
        )

    def insert_transfer(self, from_account_id: int, to_account_id: int,
                        amount: Decimal, timestamp: datetime) -> Dict[str, Any]:
        return self._run("""
            INSERT INTO transfers (from_account_id, to_account_id, amount, timestamp)
            VALUES (%s, %s, %s, %s) RETURNING *
        """, (from_account_id, to_account_id, amount, timestamp), fetch="one")

    def find_transfers_for_account(self, account_id: int) -> List[Dict[str, Any]]:
        return self._run(HISTORY_QUERY.format(p="%s"), (account_id, account_id), fetch="all")

    def upsert_employee(self, username: str, password_hash: str, name: str, role: str) -> Dict[str, Any]:
        return self._run("""
            INSERT INTO employees (username, password_hash, name, role)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (username) DO UPDATE SET
                password_hash = EXCLUDED.password_hash,
                name = EXCLUDED.name,
                role = EXCLUDED.role,
                updated_at = NOW()
            RETURNING *
        """, (username, password_hash, name, role), fetch="one")

    def get_employee(self, employee_id: int) -> Optional[Dict[str, Any]]:
        if not _is_row_id(employee_id):
            return None
        return self._run("SELECT * FROM employees WHERE id = %s", (employee_id,), fetch="one")

    def get_employee_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        return self._run("SELECT * FROM employees WHERE username = %s", (username,), fetch="one")

    def count(self, table: str) -> int:
        _check_table(table)
        return self._run(f"SELECT COUNT(*) AS count FROM {table}", fetch="one")["count"]

    def begin_transaction(self) -> None:
        """Check out a connection for this thread's unit of work"""
        # PostgreSQL transactions start automatically on the first statement
        if self._unit_connection() is None:
            self._local.connection = self._getconn()
            self._local.depth = 0
        self._local.depth += 1

    def commit(self) -> None:
        """Commit current transaction and return its connection to the pool"""
        if self._local.depth > 1:
            self._local.depth -= 1
            return
        try:
            self._local.connection.commit()
        except self._conflict_errors as e:
            # Left open for rollback() to unwind and release
            raise StoreConflict(str(e)) from e
        self._release_unit()

    def rollback(self) -> None:
        """Rollback current transaction and return its connection to the pool"""
        if self._local.depth > 1:
            self._local.depth -= 1
            return
        try:
            self._local.connection.rollback()
        finally:
            self._release_unit()

    def close(self) -> None:
        """Close every pooled PostgreSQL connection"""
        if not self._pool.closed:
            self._pool.closeall()


def create_store(database_url: str, sqlite_busy_timeout_ms: int = 5000,
                 postgres_pool_size: int = 10) -> LedgerStore:
    """
    Build a ledger store from a database URL.

    Supported forms:
        memory://                      in-memory store
        sqlite://                      in-memory SQLite database
        sqlite:///relative/path.db     SQLite file (four slashes for absolute paths)
        postgresql://user:pw@host/db   PostgreSQL
    """
    if database_url.startswith("memory://"):
        return InMemoryLedgerStore()

    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteLedgerStore(path or ":memory:", busy_timeout_ms=sqlite_busy_timeout_ms)

    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLLedgerStore(database_url, max_connections=postgres_pool_size)

    raise ValueError(f"Unsupported database URL: {database_url}")
