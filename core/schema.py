"""
Pydantic schemas for import results and API responses.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

# Validation error codes
CNAB_EMPTY_LINE = "CNAB_EMPTY_LINE"
CNAB_INVALID_LENGTH = "CNAB_INVALID_LENGTH"
CNAB_INVALID_TYPE = "CNAB_INVALID_TYPE"
CNAB_UNKNOWN_TYPE = "CNAB_UNKNOWN_TYPE"
CNAB_INVALID_DATE = "CNAB_INVALID_DATE"
CNAB_INVALID_TIME = "CNAB_INVALID_TIME"
CNAB_INVALID_AMOUNT = "CNAB_INVALID_AMOUNT"
CNAB_NEGATIVE_AMOUNT = "CNAB_NEGATIVE_AMOUNT"


class CnabValidationError(BaseModel):
    """A field-level problem found while parsing one CNAB line."""
    code: str = Field(..., description="Stable error identifier, e.g. CNAB_INVALID_DATE")
    message: str = Field(..., description="Human readable message with the source line number")
    line_number: int = Field(0, ge=0, description="1-based source line number")


class StoreImportSummary(BaseModel):
    """Number of transactions imported for one store."""
    store_name: str
    imported: int = Field(..., ge=0)


class ImportSummary(BaseModel):
    """Result of importing one CNAB file."""
    total_imported: int = Field(0, ge=0)
    total_invalid: int = Field(0, ge=0)
    total_duplicate: int = Field(0, ge=0)
    validation_errors: List[CnabValidationError] = Field(default_factory=list)
    imported_per_store: List[StoreImportSummary] = Field(default_factory=list)


class StoreBalance(BaseModel):
    """A store and its current net balance (entries minus exits)."""
    id: int
    name: str
    owner: str
    balance: Decimal = Decimal("0")


class ImportOkResponse(BaseModel):
    """Imported part of an import response."""
    status: int
    total_imported_lines: int
    imported_per_store: List[StoreImportSummary]
    total_duplicate_lines: Optional[int] = None


class ImportErrorResponse(BaseModel):
    """Rejected part of an import response."""
    status: int
    total_invalid_lines: int
    errors: List[CnabValidationError]


class ImportMultiStatusResponse(BaseModel):
    """Response used when a file has both imported and invalid lines."""
    results: List[dict]
