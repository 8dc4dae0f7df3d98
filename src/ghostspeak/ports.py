"""Collaborator contracts — the narrow interfaces the core calls outward.

Wallet custody, ledger transport, metadata blob storage and local
persistence are pluggable backends behind these Protocols. Engines never
touch them; only the service layer does. Adding a backend means
implementing a Protocol, with zero changes to any engine.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable


class AuthError(Exception):
    """Wallet could not be unlocked (unknown wallet or wrong passphrase)."""


class LedgerTimeout(Exception):
    """The ledger did not confirm within the transport's deadline."""


class RejectedByLedger(Exception):
    """The ledger refused the submitted operation."""


class BlobNotFound(LookupError):
    """No blob stored under the content URI."""


@runtime_checkable
class Signer(Protocol):
    """Wallet key custody."""

    def sign(self, wallet_id: str, passphrase: str) -> Any:
        """Return a signing key for ``wallet_id`` or raise AuthError."""
        ...


@runtime_checkable
class ChainAdapter(Protocol):
    """Ledger transport."""

    def submit(self, operation: dict[str, Any]) -> dict[str, Any]:
        """Submit an opaque operation; return its confirmation.

        Raises LedgerTimeout or RejectedByLedger.
        """
        ...

    def query(self, address: str) -> dict[str, Any]:
        """Return raw account state. Raises LookupError when absent."""
        ...


@runtime_checkable
class BlobStore(Protocol):
    """Content-addressed JSON storage."""

    def put(self, document: dict[str, Any]) -> str:
        """Store a JSON document; return its content URI."""
        ...

    def get(self, uri: str) -> dict[str, Any]:
        """Fetch a document. Raises BlobNotFound."""
        ...


@runtime_checkable
class KeyValueStore(Protocol):
    """Local key-value persistence with optional per-key expiry."""

    def get(self, key: str) -> Optional[dict[str, Any]]:
        ...

    def set(self, key: str, value: dict[str, Any]) -> None:
        ...

    def set_many(self, items: Mapping[str, dict[str, Any]]) -> None:
        """Write every item or none of them."""
        ...

    def set_with_expiry(self, key: str, value: dict[str, Any], ttl_seconds: float) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys_by_prefix(self, prefix: str) -> list[str]:
        ...
