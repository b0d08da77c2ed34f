"""
Error taxonomy for the ledger core.

Missing records are never errors: lookups return None or an empty list.
"""


class BankError(Exception):
    """Base class for all ledger core errors"""


class StoreUnavailableError(BankError):
    """The record store could not be reached or a read/write failed"""


class RowDecodeError(StoreUnavailableError):
    """A stored row is missing a column or holds an undecodable value"""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"{table}: {message}")


class InvalidArgumentError(BankError, ValueError):
    """A money movement was rejected before any write was issued"""
