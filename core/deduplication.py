"""
Detection of transactions imported by an earlier file.
"""
from typing import Iterable, List, Sequence, Set, Tuple

from core.models import Transaction


def collect_hashes(transactions: Iterable[Transaction]) -> Set[str]:
    """Return the set of content hashes of the candidate transactions."""
    return {transaction.raw_line_hash for transaction in transactions}


def partition_duplicates(
    transactions: Sequence[Transaction],
    existing_hashes: Set[str]
) -> Tuple[List[Transaction], int]:
    """
    Split candidates into new transactions and duplicates.

    Args:
        transactions: Candidate transactions in file order
        existing_hashes: Content hashes already stored

    Returns:
        Tuple of (transactions to insert in original order, duplicate count)
    """
    to_insert = [t for t in transactions if t.raw_line_hash not in existing_hashes]
    return to_insert, len(transactions) - len(to_insert)
