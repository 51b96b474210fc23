"""Domain services: thread reconstruction, reputation, status lookups and the ledger."""
