"""
Error taxonomy for the ledger consistency subsystem.

Per-item errors (TransientStoreError, CheckError) are contained to
the party or document that raised them. Only FatalEnumerationError
aborts a whole run, and only AlreadyRunningError ever reaches a
caller of the rebuild scheduler.
"""


class LedgerConsistencyError(Exception):
    """Base class for all errors raised by this package."""


class TransientStoreError(LedgerConsistencyError):
    """A read or write against the store failed; the next run recomputes."""


class AlreadyRunningError(LedgerConsistencyError):
    """A manual rebuild was requested while another run is in flight."""

    def __init__(self, message: str = "Balance rebuild is already running"):
        super().__init__(message)


class CheckError(LedgerConsistencyError):
    """A single document's identity check could not be evaluated."""


class FatalEnumerationError(LedgerConsistencyError):
    """Parties or documents could not be listed at all."""


class PartyNotFoundError(LedgerConsistencyError):
    """A party id did not resolve to a customer or supplier."""
