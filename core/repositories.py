"""
Storage interfaces consumed by the import pipeline.

Implementations must be safe to call from a single coroutine per import;
the storage unique indexes are the authoritative guard against duplicate
stores and transactions.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Set

from core.models import Store, Transaction


class StoreRepository(ABC):
    """Lookup and creation of stores by canonical identifier."""

    @abstractmethod
    async def lookup_existing(self, identifiers: Set[str]) -> Dict[str, Store]:
        """
        Find persisted stores by canonical identifier.

        Args:
            identifiers: Canonical identifiers ("name - owner", lowercased)

        Returns:
            Mapping identifier -> Store for the identifiers that exist.
            Unknown identifiers are simply missing.
        """
        ...

    @abstractmethod
    async def bulk_create(self, stores: List[Store]) -> None:
        """
        Insert stores and assign their ids in place.

        Raises:
            StoreConflictError: If any identifier already exists. Nothing is inserted.
        """
        ...


class TransactionRepository(ABC):
    """Duplicate lookup and creation of transactions."""

    @abstractmethod
    async def hashes_existing(self, hashes: Set[str]) -> Set[str]:
        """Return the subset of content hashes already stored."""
        ...

    @abstractmethod
    async def bulk_create(self, transactions: List[Transaction]) -> None:
        """
        Insert transactions.

        Raises:
            TransactionConflictError: If any content hash already exists. Nothing is inserted.
        """
        ...
