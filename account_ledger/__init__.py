"""Bank account ledger: accounts, money movement and an append-only entry log."""

__version__ = "0.1.0"
