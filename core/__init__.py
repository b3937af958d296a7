"""
Core processing modules for CNAB import.

This package contains:
- aggregation: Store and transaction building from parsed records
- config: Application configuration and settings
- db: SQLite persistence layer
- deduplication: Content hash duplicate filtering
- exceptions: Custom exception classes
- logger: Logging configuration
- models: Domain entities (transaction types, records, stores, transactions)
- parsing: CNAB 80 line parsing
- repositories: Storage interfaces used by the import service
- schema: Pydantic models for results and API responses
"""
