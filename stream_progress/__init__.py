"""Continue-watching progress ledger and embed stream resolver."""

__version__ = "0.1.0"
