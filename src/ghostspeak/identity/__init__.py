"""Wallet custody backends."""
