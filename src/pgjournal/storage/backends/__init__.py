"""Storage backend implementations."""

from pgjournal.storage.backends.postgres import PostgresJournalStorage

__all__ = ["PostgresJournalStorage"]
