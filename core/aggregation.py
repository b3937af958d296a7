"""
Turns parsed CNAB records into stores and transactions.
"""
from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterable, List, Mapping, Set, Tuple

from core.logger import setup_logger
from core.models import CnabRecord, Store, Transaction

logger = setup_logger(__name__)


class RecordAggregator:
    """
    Derives unique stores and transaction entities from valid records.

    CNAB timestamps carry no offset; they are interpreted in the zone given
    at construction and stored in UTC.
    """

    def __init__(self, cnab_timezone: tzinfo):
        self.cnab_timezone = cnab_timezone

    def collect_stores(self, records: Iterable[CnabRecord]) -> Tuple[Set[str], Dict[str, Store]]:
        """
        Build the unique stores referenced by the records.

        Returns:
            Tuple of (canonical identifiers, identifier -> first-seen Store)
        """
        identifiers: Set[str] = set()
        stores: Dict[str, Store] = {}
        record_count = 0

        for record in records:
            record_count += 1
            store = Store(name=record.store_name, owner=record.store_owner)
            identifiers.add(store.identifier)
            stores.setdefault(store.identifier, store)

        logger.info(f"Parsed {record_count} valid records from {len(identifiers)} unique stores")
        return identifiers, stores

    @staticmethod
    def stores_to_create(cnab_stores: Mapping[str, Store], existing: Mapping[str, Store]) -> List[Store]:
        """Return the stores not yet persisted, in first-seen order."""
        return [store for identifier, store in cnab_stores.items() if identifier not in existing]

    def to_utc(self, record: CnabRecord) -> datetime:
        """
        Convert the record's local wall time to UTC.

        A wall time repeated when clocks go back resolves to standard time.

        Raises:
            ValueError: If the wall time falls in a daylight saving gap
        """
        local = record.occurred_at_local.replace(tzinfo=self.cnab_timezone, fold=1)
        occurred_at_utc = local.astimezone(timezone.utc)

        round_trip = occurred_at_utc.astimezone(self.cnab_timezone).replace(tzinfo=None)
        if round_trip != record.occurred_at_local:
            raise ValueError(
                f"Line {record.line_number}: local time {record.occurred_at_local.isoformat()} "
                f"does not exist in {self.cnab_timezone}"
            )
        return occurred_at_utc

    def build_transactions(self, records: Iterable[CnabRecord], stores: Mapping[str, Store]) -> List[Transaction]:
        """
        Create one transaction per record, bound to its resolved store.

        Raises:
            KeyError: If a record's store is missing from `stores`. Every store
                collected from the records must have been resolved or created.
        """
        transactions: List[Transaction] = []
        for record in records:
            store = stores[Store(name=record.store_name, owner=record.store_owner).identifier]
            transactions.append(
                Transaction.create(
                    store=store,
                    type=record.type,
                    amount=record.amount,
                    occurred_at_utc=self.to_utc(record),
                    cpf=record.cpf,
                    card=record.card,
                    raw_line=record.raw_line,
                )
            )
        return transactions
