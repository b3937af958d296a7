"""
FastAPI routes for CNAB upload and store balances.
Thin HTTP layer: all import logic lives in services.import_service.
"""
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.db import Database, SqliteStoreRepository, SqliteTransactionRepository, get_db
from core.exceptions import CnabImportException
from core.logger import setup_logger
from core.parsing import split_lines
from core.schema import (
    ImportErrorResponse,
    ImportMultiStatusResponse,
    ImportOkResponse,
    ImportSummary,
    StoreBalance,
)
from services.import_service import Importer, build_import_service

logger = setup_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_db().init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Import CNAB fixed-width transaction files and list store balances",
    version="1.0.0",
    lifespan=lifespan
)


def get_database() -> Database:
    return get_db()


def get_import_service(db: Database = Depends(get_database)) -> Importer:
    return build_import_service(SqliteStoreRepository(db), SqliteTransactionRepository(db))


@app.exception_handler(CnabImportException)
async def import_exception_handler(request: Request, exc: CnabImportException):
    """Translate infrastructure failures into a 500 response."""
    logger.error(f"Unhandled import error on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content={
            "status": 500,
            "title": "An error occurred while processing your request",
            "detail": exc.message,
            "details": exc.details,
        }
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "cnab_import",
        "version": "1.0.0"
    }


def build_import_response(summary: ImportSummary) -> JSONResponse:
    """
    Choose the HTTP status from the import counts.

    200 when no line is invalid, 422 when nothing was imported and some
    lines are invalid, 207 with both parts otherwise.
    """
    ok = ImportOkResponse(
        status=200,
        total_imported_lines=summary.total_imported,
        imported_per_store=summary.imported_per_store,
        total_duplicate_lines=summary.total_duplicate,
    )
    error = ImportErrorResponse(
        status=422,
        total_invalid_lines=summary.total_invalid,
        errors=summary.validation_errors,
    )

    if summary.total_invalid == 0:
        return JSONResponse(status_code=200, content=ok.model_dump(mode="json"))

    if summary.total_imported == 0:
        return JSONResponse(status_code=422, content=error.model_dump(mode="json"))

    ok.status = 207
    error.status = 207
    multi = ImportMultiStatusResponse(
        results=[ok.model_dump(mode="json"), error.model_dump(mode="json")]
    )
    return JSONResponse(status_code=207, content=multi.model_dump(mode="json"))


@app.post("/api/v1/transactions/import")
async def import_transactions(
    file: Optional[UploadFile] = File(None),
    service: Importer = Depends(get_import_service)
):
    """
    Import a CNAB file uploaded as multipart/form-data (field 'file').

    Returns:
        200, 207 or 422 depending on the mix of imported and invalid lines
    """
    if file is None:
        raise HTTPException(status_code=400, detail="File is missing.")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="File is empty.")

    try:
        lines = split_lines(content)
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File is not valid UTF-8 text.")

    logger.info(f"Received CNAB file {file.filename} with {len(lines)} lines")

    summary = await service.import_lines(lines)
    return build_import_response(summary)


@app.get("/api/v1/stores", response_model=List[StoreBalance])
async def list_stores(db: Database = Depends(get_database)):
    """Return all stores with their current net balance (entries minus exits)."""
    return await db.list_store_balances()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
