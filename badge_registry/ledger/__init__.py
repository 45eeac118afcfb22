"""Append-only, hash-chained event ledger and event sinks."""
