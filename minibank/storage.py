"""
Storage Backend Module

Provides the abstract account store and implementations for in-memory
(testing), SQLite (single-node persistence) and PostgreSQL (production).
Balances are stored as integers in the smallest currency unit.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Union
from datetime import datetime, timezone
from pathlib import Path
from contextlib import contextmanager
import sqlite3
import threading

from .config import MinibankConfig
from .deadlines import check_deadline
from .errors import (
    ConflictError, InsufficientFundsError, NotFoundError, StoreError, ValidationError
)
from .models import MAX_INT64, Account, TransferRequest


class AccountStore(ABC):
    """
    Abstract interface for account storage backends

    Every returned Account is a detached copy. Engine failures surface as
    StoreError; subclasses translate their driver exceptions.
    """

    def __init__(self):
        self._lock = threading.RLock()

    def initialize(self) -> None:
        """Create the account table if it does not exist (default no-op)"""
        pass

    @abstractmethod
    def create_account(self, account: Account) -> Account:
        """Persist a new account and return it with its assigned id"""
        pass

    @abstractmethod
    def delete_account(self, account_id: int) -> None:
        """Delete an account by id"""
        pass

    @abstractmethod
    def update_account(self, account: Account) -> Account:
        """Replace names, number and balance of the account with ``account.id``"""
        pass

    @abstractmethod
    def get_account_by_id(self, account_id: int) -> Account:
        """Load an account by storage id"""
        pass

    @abstractmethod
    def get_account_by_number(self, number: int) -> Account:
        """Load an account by account number"""
        pass

    @abstractmethod
    def list_accounts(self) -> List[Account]:
        """Load all accounts ordered by id"""
        pass

    @abstractmethod
    def _balance_for_update(self, number: int) -> Optional[int]:
        """Read (and lock, where the engine supports it) a balance inside a transaction"""
        pass

    @abstractmethod
    def _add_to_balance(self, number: int, delta: int) -> None:
        """Apply a signed delta to a balance inside a transaction"""
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
        """
        Context manager for atomic operations

        The request deadline is checked before the transaction starts and
        again before it commits; an overrun rolls everything back.
        """
        check_deadline()
        with self._lock:
            self.begin_transaction()
            try:
                yield
                check_deadline()
                self.commit()
            except Exception:
                self.rollback()
                raise

    def transfer(self, request: TransferRequest) -> TransferRequest:
        """
        Debit the source and credit the destination in one transaction.

        Both balances are read in ascending account-number order so that two
        transfers over the same pair always lock rows in the same sequence.
        Any failure rolls the transaction back, so a missing destination
        never leaves the source debited.
        """
        with self.atomic():
            balances: Dict[int, Optional[int]] = {}
            for number in sorted((request.from_account, request.to_account)):
                balances[number] = self._balance_for_update(number)

            source_balance = balances[request.from_account]
            if source_balance is None:
                raise NotFoundError(f"Account with number {request.from_account} not found")
            if source_balance < request.amount:
                raise InsufficientFundsError(
                    f"Insufficient funds in account {request.from_account}: "
                    f"balance {source_balance}, requested {request.amount}"
                )
            destination_balance = balances[request.to_account]
            if destination_balance is None:
                raise NotFoundError(f"Account with number {request.to_account} not found")
            if destination_balance + request.amount > MAX_INT64:
                raise ValidationError(f"Transfer would overflow the balance of account {request.to_account}")

            self._add_to_balance(request.from_account, -request.amount)
            self._add_to_balance(request.to_account, request.amount)
        return request


class InMemoryAccountStore(AccountStore):
    """In-memory storage implementation for testing"""

    def __init__(self):
        super().__init__()
        self._accounts: Dict[int, Account] = {}
        self._next_id = 1
        self._snapshot: Optional[Dict[int, Account]] = None

    def _find_by_number(self, number: int) -> Optional[Account]:
        for account in self._accounts.values():
            if account.number == number:
                return account
        return None

    def create_account(self, account: Account) -> Account:
        with self._lock:
            if self._find_by_number(account.number) is not None:
                raise ConflictError(f"Account number {account.number} already exists")
            stored = account.copy()
            stored.id = self._next_id
            self._next_id += 1
            self._accounts[stored.id] = stored
            return stored.copy()

    def delete_account(self, account_id: int) -> None:
        with self._lock:
            if self._accounts.pop(account_id, None) is None:
                raise NotFoundError(f"Account with id {account_id} not found")

    def update_account(self, account: Account) -> Account:
        with self._lock:
            stored = self._accounts.get(account.id)
            if stored is None:
                raise NotFoundError(f"Account with id {account.id} not found")
            holder = self._find_by_number(account.number)
            if holder is not None and holder.id != account.id:
                raise ConflictError(f"Account number {account.number} already exists")
            stored.first_name = account.first_name
            stored.last_name = account.last_name
            stored.number = account.number
            stored.balance = account.balance
            return stored.copy()

    def get_account_by_id(self, account_id: int) -> Account:
        with self._lock:
            stored = self._accounts.get(account_id)
            if stored is None:
                raise NotFoundError(f"Account with id {account_id} not found")
            return stored.copy()

    def get_account_by_number(self, number: int) -> Account:
        with self._lock:
            stored = self._find_by_number(number)
            if stored is None:
                raise NotFoundError(f"Account with number {number} not found")
            return stored.copy()

    def list_accounts(self) -> List[Account]:
        with self._lock:
            return [self._accounts[key].copy() for key in sorted(self._accounts)]

    def _balance_for_update(self, number: int) -> Optional[int]:
        stored = self._find_by_number(number)
        return stored.balance if stored is not None else None

    def _add_to_balance(self, number: int, delta: int) -> None:
        self._find_by_number(number).balance += delta

    def begin_transaction(self) -> None:
        """Snapshot all accounts so a rollback can restore them"""
        self._snapshot = {key: value.copy() for key, value in self._accounts.items()}

    def commit(self) -> None:
        self._snapshot = None

    def rollback(self) -> None:
        if self._snapshot is not None:
            self._accounts = self._snapshot
            self._snapshot = None

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


ACCOUNT_COLUMNS = "id, first_name, last_name, password, number, balance, created_at"


class SQLiteAccountStore(AccountStore):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        # Autocommit mode; transactions are opened explicitly with BEGIN IMMEDIATE
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._in_transaction = False

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def initialize(self) -> None:
        with self._lock:
            self._execute("""
                CREATE TABLE IF NOT EXISTS account (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    password BLOB NOT NULL,
                    number INTEGER NOT NULL UNIQUE,
                    balance INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(query, params)
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"Account number already exists: {e}") from e
        except OverflowError as e:
            raise ValidationError(f"Value outside the 64-bit integer range: {e}") from e
        except sqlite3.Error as e:
            raise StoreError(f"SQLite error: {e}") from e

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            id=row['id'],
            first_name=row['first_name'],
            last_name=row['last_name'],
            password_hash=bytes(row['password']),
            number=row['number'],
            balance=row['balance'],
            created_at=datetime.fromisoformat(row['created_at']),
        )

    def create_account(self, account: Account) -> Account:
        with self._lock:
            cursor = self._execute("""
                INSERT INTO account (first_name, last_name, password, number, balance, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (account.first_name, account.last_name, account.password_hash,
                  account.number, account.balance, account.created_at.isoformat()))
            stored = account.copy()
            stored.id = cursor.lastrowid
            return stored

    def delete_account(self, account_id: int) -> None:
        with self._lock:
            cursor = self._execute("DELETE FROM account WHERE id = ?", (account_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Account with id {account_id} not found")

    def update_account(self, account: Account) -> Account:
        with self._lock:
            cursor = self._execute("""
                UPDATE account SET first_name = ?, last_name = ?, number = ?, balance = ?
                WHERE id = ?
            """, (account.first_name, account.last_name, account.number,
                  account.balance, account.id))
            if cursor.rowcount == 0:
                raise NotFoundError(f"Account with id {account.id} not found")
            return self.get_account_by_id(account.id)

    def get_account_by_id(self, account_id: int) -> Account:
        with self._lock:
            row = self._execute(
                f"SELECT {ACCOUNT_COLUMNS} FROM account WHERE id = ?", (account_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Account with id {account_id} not found")
            return self._row_to_account(row)

    def get_account_by_number(self, number: int) -> Account:
        with self._lock:
            row = self._execute(
                f"SELECT {ACCOUNT_COLUMNS} FROM account WHERE number = ?", (number,)
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Account with number {number} not found")
            return self._row_to_account(row)

    def list_accounts(self) -> List[Account]:
        with self._lock:
            rows = self._execute(f"SELECT {ACCOUNT_COLUMNS} FROM account ORDER BY id").fetchall()
            return [self._row_to_account(row) for row in rows]

    def _balance_for_update(self, number: int) -> Optional[int]:
        row = self._execute("SELECT balance FROM account WHERE number = ?", (number,)).fetchone()
        return row['balance'] if row is not None else None

    def _add_to_balance(self, number: int, delta: int) -> None:
        self._execute("UPDATE account SET balance = balance + ? WHERE number = ?", (delta, number))

    def begin_transaction(self) -> None:
        """Start a transaction holding the database write lock"""
        with self._lock:
            if not self._in_transaction:
                self._execute("BEGIN IMMEDIATE")
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                try:
                    self._execute("COMMIT")
                except StoreError:
                    self._connection.rollback()
                    raise
                finally:
                    self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._in_transaction = False
                self._execute("ROLLBACK")

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class PostgreSQLAccountStore(AccountStore):
    """PostgreSQL storage backend with row-locking transfers"""

    def __init__(self, connection_string: str):
        super().__init__()
        try:
            import psycopg2
            import psycopg2.errors
            import psycopg2.extras
            self.psycopg2 = psycopg2
            self.extras = psycopg2.extras
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install minibank[postgres]")

        self.connection_string = connection_string
        self._connection = None
        self._in_transaction = False
        self._connect()

    def _connect(self) -> None:
        """Establish database connection"""
        with self._lock:
            try:
                self._connection = self.psycopg2.connect(
                    self.connection_string,
                    cursor_factory=self.extras.RealDictCursor
                )
            except self.psycopg2.Error as e:
                raise StoreError(f"Could not connect to PostgreSQL: {e}") from e
            self._connection.autocommit = False  # We handle transactions manually

    @contextmanager
    def _cursor(self):
        """Cursor that commits afterwards unless an outer transaction is open"""
        with self._lock:
            cursor = self._connection.cursor()
            try:
                yield cursor
                if not self._in_transaction:
                    self._connection.commit()
            except self.psycopg2.errors.UniqueViolation as e:
                if not self._in_transaction:
                    self._connection.rollback()
                raise ConflictError(f"Account number already exists: {e.pgerror}") from e
            except self.psycopg2.errors.NumericValueOutOfRange as e:
                if not self._in_transaction:
                    self._connection.rollback()
                raise ValidationError(f"Value outside the 64-bit integer range: {e.pgerror}") from e
            except self.psycopg2.Error as e:
                if not self._in_transaction:
                    self._connection.rollback()
                raise StoreError(f"PostgreSQL error: {e}") from e
            finally:
                cursor.close()

    def initialize(self) -> None:
        with self._cursor() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS account (
                    id SERIAL PRIMARY KEY,
                    first_name VARCHAR(50) NOT NULL,
                    last_name VARCHAR(50) NOT NULL,
                    password BYTEA NOT NULL,
                    number BIGINT NOT NULL UNIQUE,
                    balance BIGINT NOT NULL DEFAULT 0,
                    created_at TIMESTAMPTZ NOT NULL
                )
            """)

    @staticmethod
    def _row_to_account(row: dict) -> Account:
        return Account(
            id=row['id'],
            first_name=row['first_name'],
            last_name=row['last_name'],
            password_hash=bytes(row['password']),
            number=row['number'],
            balance=row['balance'],
            created_at=row['created_at'],
        )

    def create_account(self, account: Account) -> Account:
        with self._cursor() as cursor:
            cursor.execute("""
                INSERT INTO account (first_name, last_name, password, number, balance, created_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id
            """, (account.first_name, account.last_name, self.psycopg2.Binary(account.password_hash),
                  account.number, account.balance, account.created_at))
            stored = account.copy()
            stored.id = cursor.fetchone()['id']
        return stored

    def delete_account(self, account_id: int) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM account WHERE id = %s", (account_id,))
            deleted = cursor.rowcount
        if deleted == 0:
            raise NotFoundError(f"Account with id {account_id} not found")

    def update_account(self, account: Account) -> Account:
        with self._cursor() as cursor:
            cursor.execute(f"""
                UPDATE account SET first_name = %s, last_name = %s, number = %s, balance = %s
                WHERE id = %s
                RETURNING {ACCOUNT_COLUMNS}
            """, (account.first_name, account.last_name, account.number,
                  account.balance, account.id))
            row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Account with id {account.id} not found")
        return self._row_to_account(row)

    def get_account_by_id(self, account_id: int) -> Account:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT {ACCOUNT_COLUMNS} FROM account WHERE id = %s", (account_id,))
            row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Account with id {account_id} not found")
        return self._row_to_account(row)

    def get_account_by_number(self, number: int) -> Account:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT {ACCOUNT_COLUMNS} FROM account WHERE number = %s", (number,))
            row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Account with number {number} not found")
        return self._row_to_account(row)

    def list_accounts(self) -> List[Account]:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT {ACCOUNT_COLUMNS} FROM account ORDER BY id")
            rows = cursor.fetchall()
        return [self._row_to_account(row) for row in rows]

    def _balance_for_update(self, number: int) -> Optional[int]:
        with self._cursor() as cursor:
            cursor.execute("SELECT balance FROM account WHERE number = %s FOR UPDATE", (number,))
            row = cursor.fetchone()
        return row['balance'] if row is not None else None

    def _add_to_balance(self, number: int, delta: int) -> None:
        with self._cursor() as cursor:
            cursor.execute("UPDATE account SET balance = balance + %s WHERE number = %s", (delta, number))

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        with self._lock:
            if not self._in_transaction:
                # PostgreSQL transactions start automatically
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                self._in_transaction = False
                try:
                    self._connection.commit()
                except self.psycopg2.Error as e:
                    self._connection.rollback()
                    raise StoreError(f"PostgreSQL commit failed: {e}") from e

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._in_transaction = False
                self._connection.rollback()

    def close(self) -> None:
        """Close PostgreSQL connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_store(config: MinibankConfig) -> AccountStore:
    """Create and initialize the store selected by ``config.storage_backend``"""
    backend = config.storage_backend.lower()
    if backend == "memory":
        store: AccountStore = InMemoryAccountStore()
    elif backend == "sqlite":
        store = SQLiteAccountStore(config.sqlite_path)
    elif backend in ("postgres", "postgresql"):
        store = PostgreSQLAccountStore(config.postgres_dsn)
    else:
        raise ValueError(f"Unknown storage backend: {config.storage_backend}")
    store.initialize()
    return store
