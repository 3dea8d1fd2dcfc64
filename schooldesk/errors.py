from __future__ import annotations


class SchoolDeskError(Exception):
    """Base class for every error raised by the dashboard core."""


class ValidationError(SchoolDeskError, ValueError):
    """Caller input was rejected before any state change or store call."""


class TableNotFound(SchoolDeskError, LookupError):
    def __init__(self, name: str):
        super().__init__(f"No custom tab named {name!r}")
        self.name = name


class DeleteInProgress(SchoolDeskError):
    def __init__(self, name: str):
        super().__init__(f"Tab {name!r} is already being deleted")
        self.name = name


class PersistenceError(SchoolDeskError):
    """A record store call failed.

    The in-memory state is left as the operation produced it; the message is
    meant to be shown to the user as-is. After a partly failed save, ``tables``
    holds every tab in input order, carrying the id the store assigned where
    the write went through.
    """

    def __init__(self, message: str, tables: list | None = None):
        super().__init__(message)
        self.tables = tables


class StoreError(SchoolDeskError):
    """Raised by record store implementations."""


class RecordNotFound(StoreError, LookupError):
    def __init__(self, collection: str, identity: int):
        super().__init__(f"{collection}: no record with id {identity}")
        self.collection = collection
        self.identity = identity
