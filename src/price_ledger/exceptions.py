"""
Custom exceptions for Auctionator price ingestion.

Provides specific error types for different failure modes to enable
better error handling and debugging.
"""


class PriceLedgerError(Exception):
    pass


class MissingTableError(PriceLedgerError):
    def __init__(self, source: str, table_names: list[str], report: object | None = None):
        self.source = source
        self.table_names = table_names
        # the ingestion report, left in its failed state
        self.report = report
        super().__init__(
            f"{source} does not contain {' or '.join(table_names)} sections. "
            "Please select a valid Auctionator.lua file."
        )


class LookupServiceError(PriceLedgerError):
    pass


class StorageError(PriceLedgerError):
    pass


class ReferenceIndexError(PriceLedgerError):
    pass
