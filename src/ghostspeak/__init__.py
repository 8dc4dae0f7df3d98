"""Ghostspeak rules — off-ledger replica of the agent-commerce protocol rules."""

__version__ = "0.1.0"
