"""Local persistence: key-value stores, record codec and the audit event log."""
