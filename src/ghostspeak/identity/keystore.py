"""Keystore signer — reference Signer over encrypted JSON keystore files.

Each wallet is one Web3 Secret Storage file, ``<wallet_id>.json``, in
the keystore directory. Unlocking decrypts it with the passphrase and
returns a local account able to sign messages.

The core never holds key material: the service asks a Signer for a key
only at the boundary where an operation is handed to the transport.

Requires the ``eth-account`` package.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Optional

from ghostspeak.ports import AuthError

_WALLET_ID = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")


class KeystoreSigner:
    """Unlocks wallets stored as encrypted keystore files.

    Usage:
        signer = KeystoreSigner(Path("~/.ghostspeak/wallets").expanduser())
        signer.store("main", private_key, "passphrase")
        account = signer.sign("main", "passphrase")
        account.address
    """

    def __init__(self, keystore_dir: Path) -> None:
        self._dir = keystore_dir

    def wallet_ids(self) -> list[str]:
        if not self._dir.exists():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json"))

    def store(
        self,
        wallet_id: str,
        private_key: Any,
        passphrase: str,
        kdf: Optional[str] = None,
        iterations: Optional[int] = None,
    ) -> str:
        """Encrypt ``private_key`` under ``passphrase``. Returns the wallet address."""
        from eth_account import Account

        path = self._path(wallet_id)
        if path.exists():
            raise ValueError(f"Wallet already exists: {wallet_id}")
        keystore = Account.encrypt(private_key, passphrase, kdf=kdf, iterations=iterations)
        self._dir.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(keystore, f, indent=2, sort_keys=True)
        return Account.from_key(private_key).address

    def sign(self, wallet_id: str, passphrase: str) -> Any:
        """Return an unlocked local account, or raise AuthError."""
        from eth_account import Account

        path = self._path(wallet_id)
        if not path.exists():
            raise AuthError(f"Unknown wallet: {wallet_id}")
        with path.open("r", encoding="utf-8") as f:
            keystore = json.load(f)
        try:
            private_key = Account.decrypt(keystore, passphrase)
        except ValueError as exc:
            raise AuthError(f"Could not unlock wallet {wallet_id}: {exc}") from exc
        return Account.from_key(private_key)

    def address_of(self, wallet_id: str) -> str:
        """Wallet address from the keystore header, without decrypting."""
        path = self._path(wallet_id)
        if not path.exists():
            raise AuthError(f"Unknown wallet: {wallet_id}")
        with path.open("r", encoding="utf-8") as f:
            keystore = json.load(f)
        address = keystore.get("address")
        if not address:
            raise AuthError(f"Keystore for {wallet_id} has no address")
        return "0x" + address if not address.startswith("0x") else address

    def _path(self, wallet_id: str) -> Path:
        if not _WALLET_ID.match(wallet_id):
            raise AuthError(f"Invalid wallet id: {wallet_id!r}")
        return self._dir / f"{wallet_id}.json"
