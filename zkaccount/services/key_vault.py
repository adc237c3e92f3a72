"""Holder of the owner's signing key."""
import logging
import re
from typing import Any, Dict, Optional, Tuple

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from zkaccount.exceptions import InvalidInputError
from zkaccount.schemas.account import Keypair

logger = logging.getLogger(__name__)

_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


class KeyVault:
    """
    Signing capability for one keypair.

    The key lives only inside the wrapped LocalAccount. It is never logged,
    never returned by repr, and is dropped by `clear()`.
    """

    def __init__(self, account: LocalAccount):
        self._account: Optional[LocalAccount] = account

    @classmethod
    def create(cls) -> "KeyVault":
        """Generate a fresh random keypair."""
        vault = cls(Account.create())
        logger.info(f"Created new keypair for {vault.address}")
        return vault

    @classmethod
    def from_private_key(cls, private_key: Optional[str]) -> "KeyVault":
        """Import an existing key. Malformed keys are rejected before any use."""
        if not private_key or not _PRIVATE_KEY_RE.match(private_key.strip()):
            raise InvalidInputError("Invalid private key format")
        try:
            account = Account.from_key(private_key.strip())
        except Exception as e:
            # Out-of-range scalars are rejected by the curve library
            raise InvalidInputError("Invalid private key format") from e
        return cls(account)

    @property
    def is_cleared(self) -> bool:
        return self._account is None

    @property
    def account(self) -> LocalAccount:
        if self._account is None:
            raise InvalidInputError("Private key has been cleared")
        return self._account

    @property
    def address(self) -> str:
        """Checksummed address of the held key."""
        return self.account.address

    def controls(self, address: str) -> bool:
        return Web3.is_address(address) and address.lower() == self.address.lower()

    def ensure_owner(self, address: str) -> None:
        """Raise unless the held key controls `address`."""
        if not self.controls(address):
            raise InvalidInputError("Private key does not match wallet address")

    def sign_transaction(self, tx: Dict[str, Any]) -> Tuple[bytes, str]:
        """
        Sign a transaction dict.

        Returns: (raw_transaction, tx_hash)
        """
        signed = self.account.sign_transaction(tx)
        return bytes(signed.raw_transaction), Web3.to_hex(signed.hash)

    def to_keypair(self) -> Keypair:
        """Export as a Keypair. Only for handing off to encrypted storage."""
        return Keypair(address=self.address, private_key=Web3.to_hex(self.account.key))

    def clear(self) -> None:
        """Destroy the held key. Signing afterwards raises InvalidInputError."""
        if self._account is not None:
            logger.info(f"Clearing key for {self._account.address}")
        self._account = None

    def __repr__(self) -> str:
        if self._account is None:
            return "KeyVault(cleared)"
        return f"KeyVault(address={self._account.address}, private_key=***)"
