"""
CNAB import service.
Sequences parsing, store resolution, duplicate detection and persistence.
"""
import asyncio
import time
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from core.aggregation import RecordAggregator
from core.config import get_settings
from core.deduplication import collect_hashes, partition_duplicates
from core.exceptions import CnabImportException, ImportProcessingError
from core.logger import setup_logger
from core.models import CnabRecord, Store, Transaction
from core.parsing import parse_lines
from core.repositories import StoreRepository, TransactionRepository
from core.schema import CnabValidationError, ImportSummary, StoreImportSummary

logger = setup_logger(__name__)


class Importer(Protocol):
    async def import_lines(self, raw_lines: Sequence[Optional[str]]) -> ImportSummary:
        ...


class ImportService:
    """Service for importing CNAB lines into the store and transaction repositories."""

    def __init__(
        self,
        store_repository: StoreRepository,
        transaction_repository: TransactionRepository,
        aggregator: RecordAggregator,
        parse_yield_interval: int = 1000
    ):
        """
        Initialize import service.

        Args:
            store_repository: Store lookup and creation
            transaction_repository: Duplicate lookup and transaction creation
            aggregator: Builds stores and transactions from parsed records
            parse_yield_interval: Lines parsed between event loop yields
        """
        self.store_repository = store_repository
        self.transaction_repository = transaction_repository
        self.aggregator = aggregator
        self.parse_yield_interval = max(1, parse_yield_interval)

    async def parse_records(
        self,
        raw_lines: Sequence[Optional[str]]
    ) -> Tuple[List[CnabRecord], List[CnabValidationError]]:
        """
        Parse every line, collecting records and validation errors.

        Bad lines never stop the loop. Control returns to the event loop
        periodically so a cancelled import stops between lines.
        """
        records: List[CnabRecord] = []
        errors: List[CnabValidationError] = []

        for start in range(0, len(raw_lines), self.parse_yield_interval):
            if start:
                await asyncio.sleep(0)

            chunk = raw_lines[start:start + self.parse_yield_interval]
            chunk_records, chunk_errors = parse_lines(chunk, first_line_number=start + 1)
            records.extend(chunk_records)
            errors.extend(chunk_errors)

        if errors:
            logger.warning(f"Found {len(errors)} validation errors during parsing")

        return records, errors

    async def resolve_stores(self, records: List[CnabRecord]) -> Dict[str, Store]:
        """
        Resolve every store referenced by the records, creating missing ones.

        Returns:
            Mapping canonical identifier -> Store with ids assigned
        """
        identifiers, cnab_stores = self.aggregator.collect_stores(records)

        resolved = dict(await self.store_repository.lookup_existing(identifiers))
        stores_to_insert = self.aggregator.stores_to_create(cnab_stores, resolved)

        if stores_to_insert:
            logger.info(f"Inserting {len(stores_to_insert)} new stores")
            await self.store_repository.bulk_create(stores_to_insert)
            logger.info(f"Successfully inserted {len(stores_to_insert)} new stores")

        for store in stores_to_insert:
            resolved[store.identifier] = store

        return resolved

    async def filter_new(self, transactions: List[Transaction]) -> Tuple[List[Transaction], int]:
        """Drop transactions whose content hash is already stored."""
        logger.debug(f"Checking for duplicates among {len(transactions)} transactions")

        existing_hashes = await self.transaction_repository.hashes_existing(collect_hashes(transactions))
        to_insert, duplicate_count = partition_duplicates(transactions, existing_hashes)

        if duplicate_count > 0:
            logger.info(f"Skipping {duplicate_count} duplicate transactions")

        return to_insert, duplicate_count

    @staticmethod
    def summarize_per_store(transactions: List[Transaction]) -> List[StoreImportSummary]:
        """Count imported transactions per store, in first-seen order."""
        counts: Dict[str, int] = {}
        for transaction in transactions:
            key = str(transaction.store)
            counts[key] = counts.get(key, 0) + 1
        return [StoreImportSummary(store_name=name, imported=count) for name, count in counts.items()]

    async def import_lines(self, raw_lines: Sequence[Optional[str]]) -> ImportSummary:
        """
        Import a CNAB file already split into lines.

        Args:
            raw_lines: File lines without terminators

        Returns:
            ImportSummary with counts, validation errors and per-store totals

        Raises:
            CnabImportException: If any storage operation fails. Nothing is
                summarized for a failed import.
        """
        try:
            logger.info(f"Starting CNAB import with {len(raw_lines)} lines")

            # 1. Parse
            records, validation_errors = await self.parse_records(raw_lines)

            # 2. Stores
            stores = await self.resolve_stores(records)

            # 3. Transactions bound to resolved stores
            transactions = self.aggregator.build_transactions(records, stores)

            # 4. Duplicates
            to_insert, duplicate_count = await self.filter_new(transactions)

            # 5. Persist
            logger.info(f"Inserting {len(to_insert)} new transactions")
            await self.transaction_repository.bulk_create(to_insert)

            per_store = self.summarize_per_store(to_insert)

            logger.info(
                f"CNAB import completed successfully. Total: {len(raw_lines)}, "
                f"Imported: {len(to_insert)}, Duplicates: {duplicate_count}, "
                f"Errors: {len(validation_errors)}, Stores: {len(per_store)}"
            )

            return ImportSummary(
                total_imported=len(to_insert),
                total_invalid=len(validation_errors),
                total_duplicate=duplicate_count,
                validation_errors=validation_errors,
                imported_per_store=per_store,
            )

        except CnabImportException:
            raise
        except Exception as e:
            logger.error(f"CNAB import failed: {e}", exc_info=True)
            raise ImportProcessingError(
                "Failed to import CNAB file",
                details={"line_count": len(raw_lines), "error": str(e)}
            ) from e


class LoggingImportService:
    """Logs start, duration and failure of every import handled by `inner`."""

    def __init__(self, inner: Importer):
        self.inner = inner

    async def import_lines(self, raw_lines: Sequence[Optional[str]]) -> ImportSummary:
        request_name = type(self.inner).__name__
        started = time.perf_counter()

        try:
            logger.info(f"Handling {request_name}")
            summary = await self.inner.import_lines(raw_lines)
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.error(f"Error handling {request_name} after {elapsed_ms}ms: {e}")
            raise

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(f"Completed {request_name} in {elapsed_ms}ms")
        return summary


def build_import_service(
    store_repository: StoreRepository,
    transaction_repository: TransactionRepository
) -> LoggingImportService:
    """Compose the import service from settings and the given repositories."""
    settings = get_settings()
    service = ImportService(
        store_repository,
        transaction_repository,
        RecordAggregator(settings.cnab_tzinfo()),
        parse_yield_interval=settings.parse_yield_interval,
    )
    return LoggingImportService(service)
