"""
Domain entities for CNAB import.

CnabRecord is the immutable result of parsing one line. Store and
Transaction are the entities handed to the persistence layer; their ids
are assigned on insert.
"""
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import Optional


class TransactionType(IntEnum):
    """CNAB transaction type codes."""

    DEBIT = 1
    BOLETO = 2
    FINANCING = 3
    CREDIT = 4
    LOAN_RECEIPT = 5
    SALES = 6
    TED_RECEIPT = 7
    DOC_RECEIPT = 8
    RENT = 9

    @property
    def is_entry(self) -> bool:
        """True when the type adds money to the store balance."""
        return self not in _EXIT_TYPES

    @property
    def sign(self) -> int:
        return 1 if self.is_entry else -1


_EXIT_TYPES = frozenset({TransactionType.BOLETO, TransactionType.FINANCING, TransactionType.RENT})


@dataclass(frozen=True)
class CnabRecord:
    """One parsed CNAB line."""

    type: TransactionType
    occurred_at_local: datetime
    amount: Decimal
    cpf: str
    card: str
    store_owner: str
    store_name: str
    raw_line: str
    line_number: int

    def __post_init__(self) -> None:
        if self.amount < Decimal("0"):
            raise ValueError(f"amount cannot be negative: {self.amount}")


def store_identifier(name: str, owner: str) -> str:
    """
    Build the canonical store identifier.

    Format: "<name> - <owner>", both trimmed and lowercased. Used as the
    lookup key in memory and as the unique key in storage.
    """
    return f"{name.strip().lower()} - {owner.strip().lower()}"


@dataclass(eq=False)
class Store:
    """A store and its owner. Name and owner are trimmed on construction."""

    name: str
    owner: str
    id: Optional[int] = None

    def __post_init__(self) -> None:
        self.name = self.name.strip()
        self.owner = self.owner.strip()

    @property
    def identifier(self) -> str:
        return store_identifier(self.name, self.owner)

    def __str__(self) -> str:
        return self.identifier


def compute_line_hash(raw_line: str) -> str:
    """Return the uppercase hex SHA-256 of the UTF-8 encoded raw line."""
    return hashlib.sha256(raw_line.encode("utf-8")).hexdigest().upper()


@dataclass(eq=False)
class Transaction:
    """A transaction ready to be persisted."""

    store: Store
    type: TransactionType
    amount: Decimal
    signed_amount: Decimal
    occurred_at_utc: datetime
    cpf: str
    card: str
    raw_line_hash: str
    id: Optional[int] = field(default=None)

    @property
    def store_id(self) -> Optional[int]:
        return self.store.id

    @classmethod
    def create(
        cls,
        store: Store,
        type: TransactionType,
        amount: Decimal,
        occurred_at_utc: datetime,
        cpf: str,
        card: str,
        raw_line: str,
    ) -> "Transaction":
        """
        Create a transaction from parsed values.

        The signed amount follows the type direction and the content hash is
        derived from the raw CNAB line only.
        """
        return cls(
            store=store,
            type=type,
            amount=amount,
            signed_amount=amount * type.sign,
            occurred_at_utc=occurred_at_utc,
            cpf=cpf,
            card=card,
            raw_line_hash=compute_line_hash(raw_line),
        )
