"""Recipient input classification and directory lookup."""
import logging
import re

from web3 import Web3

from zkaccount.contracts import ZERO_ADDRESS
from zkaccount.exceptions import InvalidInputError, NodeUnavailableError, RecipientNotFoundError, ZKAccountError
from zkaccount.services.ethereum import EthereumGateway, is_valid_address

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def email_hash(email: str) -> bytes:
    """keccak256 of the normalized email, as stored in the directory."""
    return Web3.keccak(text=normalize_email(email))


def is_address(value: str) -> bool:
    return bool(ADDRESS_RE.match(value.strip()))


def is_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value.strip()))


class RecipientResolver:
    """
    Resolve a human-entered recipient to a chain address.

    Side-effect free and safe to call on every keystroke. Callers that issue
    overlapping calls must discard out-of-order responses themselves.
    """

    def __init__(self, gateway: EthereumGateway):
        self.gateway = gateway

    async def resolve(self, value: str) -> str:
        """
        Resolve an address or email.

        Raises:
            InvalidInputError: Input is neither an address nor an email
            RecipientNotFoundError: Email has no bound address
        """
        text = (value or "").strip()
        if is_address(text):
            if not is_valid_address(text):
                raise InvalidInputError("invalid address", details="checksum mismatch")
            return Web3.to_checksum_address(text)

        if not is_email(text):
            raise InvalidInputError("invalid address")

        email = normalize_email(text)
        if not self.gateway.profile.directory_contract:
            raise RecipientNotFoundError(details="directory not configured", recipient=email)

        try:
            bound = await self.gateway.lookup_email(email_hash(email))
        except ZKAccountError:
            raise
        except Exception as e:
            logger.warning(f"Directory lookup failed for {email}: {e}")
            raise NodeUnavailableError(details=str(e))

        if not bound or bound.lower() == ZERO_ADDRESS:
            logger.info(f"No address bound to {email}")
            raise RecipientNotFoundError(recipient=email)

        resolved = Web3.to_checksum_address(bound)
        logger.info(f"Resolved {email} -> {resolved}")
        return resolved
