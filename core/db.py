"""
SQLite persistence for stores and transactions.

Blocking sqlite3 calls run in the default executor so the import pipeline
stays awaitable and cancellable. Each operation opens its own connection
and runs in a single database transaction.
"""
import asyncio
import sqlite3
from decimal import Decimal
from functools import partial
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, TypeVar

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from core.config import get_settings
from core.exceptions import PersistenceError, StoreConflictError, TransactionConflictError
from core.logger import setup_logger
from core.models import Store, Transaction
from core.repositories import StoreRepository, TransactionRepository
from core.schema import StoreBalance

logger = setup_logger(__name__)

T = TypeVar("T")

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS stores (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        owner TEXT NOT NULL,
        identifier TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        store_id INTEGER NOT NULL REFERENCES stores (id) ON DELETE RESTRICT,
        type INTEGER NOT NULL,
        amount_cents INTEGER NOT NULL,
        signed_amount_cents INTEGER NOT NULL,
        occurred_at_utc TIMESTAMP NOT NULL,
        cpf TEXT NOT NULL,
        card TEXT NOT NULL,
        raw_line_hash TEXT NOT NULL UNIQUE
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_transactions_store_id ON transactions (store_id)",
)


def _is_locked(exc: BaseException) -> bool:
    """True for transient 'database is locked/busy' errors."""
    return isinstance(exc, sqlite3.OperationalError) and (
        "locked" in str(exc) or "busy" in str(exc)
    )


retry_when_locked = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    retry=retry_if_exception(_is_locked),
    reraise=True,
)


def _chunks(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / Decimal(100)).quantize(Decimal("0.01"))


class Database:
    def __init__(self, db_path: Optional[str] = None, batch_size: Optional[int] = None):
        self.settings = get_settings()
        self.db_path = db_path or self.settings.database_path
        self.batch_size = batch_size or self.settings.db_batch_size

    def get_connection(self) -> sqlite3.Connection:
        """Create a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self) -> None:
        """Initialize database tables."""
        conn = self.get_connection()

        try:
            with conn:
                for statement in SCHEMA:
                    conn.execute(statement)
            logger.info("Database initialized successfully")
        except sqlite3.Error as e:
            logger.error(f"Database initialization failed: {e}")
            raise PersistenceError(
                "Database initialization failed",
                details={"database_path": self.db_path, "error": str(e)}
            )
        finally:
            conn.close()

    async def run(self, func: Callable[..., T], *args) -> T:
        """Run a blocking database call in the default executor."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args))
        except sqlite3.Error as e:
            logger.error(f"Database call {func.__name__} failed: {e}")
            raise PersistenceError(
                f"Database call {func.__name__} failed",
                details={"database_path": self.db_path, "error": str(e)}
            )

    def find_stores(self, identifiers: Sequence[str]) -> Dict[str, Store]:
        """Get stores by canonical identifier."""
        conn = self.get_connection()

        try:
            found: Dict[str, Store] = {}
            for chunk in _chunks(identifiers, self.batch_size):
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT id, name, owner, identifier FROM stores WHERE identifier IN ({placeholders})",
                    tuple(chunk)
                ).fetchall()
                for row in rows:
                    found[row["identifier"]] = Store(name=row["name"], owner=row["owner"], id=row["id"])
            return found
        except sqlite3.Error as e:
            logger.error(f"Failed to look up stores: {e}")
            raise PersistenceError("Failed to look up stores", details={"error": str(e)})
        finally:
            conn.close()

    @retry_when_locked
    def insert_stores(self, stores: Sequence[Store]) -> None:
        """Insert stores in one transaction and assign their ids."""
        conn = self.get_connection()
        assigned: List[int] = []

        try:
            with conn:
                for store in stores:
                    cursor = conn.execute(
                        "INSERT INTO stores (name, owner, identifier) VALUES (?, ?, ?)",
                        (store.name, store.owner, store.identifier)
                    )
                    assigned.append(cursor.lastrowid)
        except sqlite3.IntegrityError as e:
            logger.error(f"Store insert rejected: {e}")
            raise StoreConflictError(
                "A store with the same name and owner already exists",
                details={"stores": [store.identifier for store in stores], "error": str(e)}
            )
        finally:
            conn.close()

        # Ids are only published once the transaction committed
        for store, store_id in zip(stores, assigned):
            store.id = store_id

    def find_existing_hashes(self, hashes: Sequence[str]) -> Set[str]:
        """Get the subset of content hashes already stored."""
        conn = self.get_connection()

        try:
            found: Set[str] = set()
            for chunk in _chunks(hashes, self.batch_size):
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT raw_line_hash FROM transactions WHERE raw_line_hash IN ({placeholders})",
                    tuple(chunk)
                ).fetchall()
                found.update(row["raw_line_hash"] for row in rows)
            return found
        except sqlite3.Error as e:
            logger.error(f"Failed to look up transaction hashes: {e}")
            raise PersistenceError("Failed to look up transaction hashes", details={"error": str(e)})
        finally:
            conn.close()

    @retry_when_locked
    def insert_transactions(self, transactions: Sequence[Transaction]) -> None:
        """Insert transactions in one database transaction."""
        conn = self.get_connection()

        rows = [
            (
                t.store_id,
                int(t.type),
                to_cents(t.amount),
                to_cents(t.signed_amount),
                t.occurred_at_utc.isoformat(),
                t.cpf,
                t.card,
                t.raw_line_hash,
            )
            for t in transactions
        ]

        try:
            with conn:
                for chunk in _chunks(rows, self.batch_size):
                    conn.executemany(
                        """
                        INSERT INTO transactions (
                            store_id, type, amount_cents, signed_amount_cents,
                            occurred_at_utc, cpf, card, raw_line_hash
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        chunk
                    )
        except sqlite3.IntegrityError as e:
            logger.error(f"Transaction insert rejected: {e}")
            raise TransactionConflictError(
                "Transaction insert violated a storage constraint",
                details={"count": len(rows), "error": str(e)}
            )
        finally:
            conn.close()

    def get_store_balances(self) -> List[StoreBalance]:
        """Get all stores with their net balance, ordered by name."""
        conn = self.get_connection()

        try:
            rows = conn.execute(
                """
                SELECT s.id AS id, s.name AS name, s.owner AS owner,
                       COALESCE(SUM(t.signed_amount_cents), 0) AS balance_cents
                FROM stores s
                LEFT JOIN transactions t ON t.store_id = s.id
                GROUP BY s.id, s.name, s.owner
                ORDER BY s.name
                """
            ).fetchall()
            return [
                StoreBalance(
                    id=row["id"],
                    name=row["name"],
                    owner=row["owner"],
                    balance=from_cents(row["balance_cents"]),
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            logger.error(f"Failed to get store balances: {e}")
            raise PersistenceError("Failed to get store balances", details={"error": str(e)})
        finally:
            conn.close()

    async def list_store_balances(self) -> List[StoreBalance]:
        return await self.run(self.get_store_balances)


class SqliteStoreRepository(StoreRepository):
    """StoreRepository backed by the SQLite database."""

    def __init__(self, db: Database):
        self.db = db

    async def lookup_existing(self, identifiers: Set[str]) -> Dict[str, Store]:
        if not identifiers:
            return {}
        return await self.db.run(self.db.find_stores, sorted(identifiers))

    async def bulk_create(self, stores: List[Store]) -> None:
        if not stores:
            return
        await self.db.run(self.db.insert_stores, list(stores))


class SqliteTransactionRepository(TransactionRepository):
    """TransactionRepository backed by the SQLite database."""

    def __init__(self, db: Database):
        self.db = db

    async def hashes_existing(self, hashes: Set[str]) -> Set[str]:
        if not hashes:
            return set()
        return await self.db.run(self.db.find_existing_hashes, sorted(hashes))

    async def bulk_create(self, transactions: List[Transaction]) -> None:
        if not transactions:
            return
        await self.db.run(self.db.insert_transactions, list(transactions))


# Global DB instance
_db: Optional[Database] = None


def get_db() -> Database:
    global _db
    if _db is None:
        _db = Database()
    return _db
