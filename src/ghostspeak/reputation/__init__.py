"""Ghost Score computation and reputation event application."""

from ghostspeak.reputation.engine import ReputationEngine

__all__ = ["ReputationEngine"]
