"""Exception taxonomy for the wager ledger.

The HTTP layer maps these onto status codes in ``backend/main.py``; service
code raises them and never returns error sentinels.
"""


class LedgerError(Exception):
    """Base class for every error the ledger raises on purpose."""


class ValidationError(LedgerError):
    """Input that cannot be clamped to a safe default."""


class NotFoundError(LedgerError):
    """No wager with that id belongs to the calling user."""

    def __init__(self, wager_id: str):
        super().__init__(f"bet not found: {wager_id}")
        self.wager_id = wager_id


class ConflictError(LedgerError):
    """Reserved: the ledger has no uniqueness constraint beyond wager id."""


class StorageError(LedgerError):
    """The backing store failed; the whole unit of work was rolled back.

    Always safe for the caller to retry.
    """
