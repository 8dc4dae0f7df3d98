"""Tests for the keystore signer — encrypted wallets unlocked by passphrase."""

from pathlib import Path

import pytest
from eth_account import Account

from ghostspeak.identity.keystore import KeystoreSigner
from ghostspeak.ports import AuthError, Signer


@pytest.fixture
def signer(tmp_path: Path) -> KeystoreSigner:
    return KeystoreSigner(tmp_path / "wallets")


def _store(signer: KeystoreSigner, wallet_id: str = "main", passphrase: str = "hunter2"):
    account = Account.create()
    # Cheap KDF settings keep the suite fast
    address = signer.store(wallet_id, account.key, passphrase, kdf="pbkdf2", iterations=2)
    return account, address


class TestKeystoreSigner:
    def test_satisfies_signer_protocol(self, signer: KeystoreSigner) -> None:
        assert isinstance(signer, Signer)

    def test_store_and_unlock(self, signer: KeystoreSigner) -> None:
        account, address = _store(signer)
        assert address == account.address
        unlocked = signer.sign("main", "hunter2")
        assert unlocked.address == account.address
        assert signer.wallet_ids() == ["main"]

    def test_address_without_decrypting(self, signer: KeystoreSigner) -> None:
        account, _ = _store(signer)
        assert signer.address_of("main").lower() == account.address.lower()

    def test_wrong_passphrase(self, signer: KeystoreSigner) -> None:
        _store(signer)
        with pytest.raises(AuthError, match="Could not unlock"):
            signer.sign("main", "wrong")

    def test_unknown_wallet(self, signer: KeystoreSigner) -> None:
        with pytest.raises(AuthError, match="Unknown wallet"):
            signer.sign("ghost", "hunter2")
        assert signer.wallet_ids() == []

    def test_existing_wallet_not_overwritten(self, signer: KeystoreSigner) -> None:
        _store(signer)
        with pytest.raises(ValueError, match="already exists"):
            _store(signer)

    @pytest.mark.parametrize("wallet_id", ["../escape", "a/b", "", "x" * 65])
    def test_invalid_wallet_id(self, signer: KeystoreSigner, wallet_id: str) -> None:
        with pytest.raises(AuthError, match="Invalid wallet id"):
            signer.sign(wallet_id, "hunter2")
