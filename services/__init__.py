"""
Service layer for business logic.

This package contains the import service that orchestrates the CNAB
pipeline: parsing, store resolution, duplicate detection and persistence.
"""
