"""
Line builders and in-memory repositories shared by the tests.
"""
from datetime import timedelta, timezone
from typing import Dict, List, Set

from core.exceptions import StoreConflictError, TransactionConflictError
from core.models import Store, Transaction
from core.repositories import StoreRepository, TransactionRepository

SAO_PAULO = timezone(timedelta(hours=-3))


def build_line(
    type_code: str = "1",
    date_text: str = "20190301",
    amount: str = "0000000100",
    cpf: str = "12345678901",
    card: str = "123456789012",
    time_text: str = "120000",
    owner: str = "OWNER",
    store: str = "STORE",
) -> str:
    """Build an 80 character CNAB line from its fields."""
    return type_code + date_text + amount + cpf + card + time_text + owner.ljust(14) + store.ljust(18)


class FakeStoreRepository(StoreRepository):
    """In-memory store repository assigning sequential ids."""

    def __init__(self, existing: List[Store] = None):
        self.stores: Dict[str, Store] = {}
        self.created: List[Store] = []
        self.lookups: List[Set[str]] = []
        self.next_id = 1
        for store in existing or []:
            self._add(store)

    def _add(self, store: Store) -> None:
        if store.identifier in self.stores:
            raise StoreConflictError("duplicate store", details={"store": store.identifier})
        store.id = self.next_id
        self.next_id += 1
        self.stores[store.identifier] = store

    async def lookup_existing(self, identifiers: Set[str]) -> Dict[str, Store]:
        self.lookups.append(set(identifiers))
        return {i: self.stores[i] for i in identifiers if i in self.stores}

    async def bulk_create(self, stores: List[Store]) -> None:
        for store in stores:
            self._add(store)
        self.created.extend(stores)


class FakeTransactionRepository(TransactionRepository):
    """In-memory transaction repository enforcing unique content hashes."""

    def __init__(self, existing_hashes: Set[str] = None):
        self.hashes: Set[str] = set(existing_hashes or set())
        self.created: List[Transaction] = []
        self.hash_queries: List[Set[str]] = []

    async def hashes_existing(self, hashes: Set[str]) -> Set[str]:
        self.hash_queries.append(set(hashes))
        return {h for h in hashes if h in self.hashes}

    async def bulk_create(self, transactions: List[Transaction]) -> None:
        incoming = [t.raw_line_hash for t in transactions]
        if len(set(incoming)) != len(incoming) or self.hashes.intersection(incoming):
            raise TransactionConflictError("duplicate hash", details={"count": len(incoming)})
        self.hashes.update(incoming)
        self.created.extend(transactions)


