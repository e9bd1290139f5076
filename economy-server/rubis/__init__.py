"""Rubis economy server: weighted ledger and streamer chests."""

__version__ = "0.3.0"
