"""Escrow lifecycle and dispute resolution."""

from ghostspeak.escrow.engine import EscrowEngine

__all__ = ["EscrowEngine"]
