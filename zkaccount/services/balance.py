"""Balance reads with bounded retry and a per-attempt timeout."""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from web3.exceptions import InvalidAddress

from zkaccount.config import Settings, get_settings
from zkaccount.exceptions import (
    BalanceTimeoutError,
    InvalidInputError,
    NodeUnavailableError,
    ZKAccountError,
)
from zkaccount.schemas.transfer import Balance
from zkaccount.services.ethereum import EthereumGateway, checksum
from zkaccount.services.retry import call_with_retry
from zkaccount.units import NATIVE_DECIMALS, format_units

logger = logging.getLogger(__name__)

NATIVE_ASSET = "native"


def is_transient(exc: BaseException) -> bool:
    """Definitive errors (bad address, classified failures) are never retried."""
    return not isinstance(exc, (ZKAccountError, InvalidAddress))


class BalanceReader:
    """Reads native and token balances for one chain."""

    def __init__(self, gateway: EthereumGateway, settings: Optional[Settings] = None):
        self.gateway = gateway
        self.settings = settings or get_settings()
        self._decimals: Dict[str, int] = {}

    async def _read(self, fn: Callable[[], Awaitable[int]], label: str) -> int:
        try:
            return await call_with_retry(
                fn,
                attempts=self.settings.balance_read_attempts,
                delay=self.settings.balance_retry_delay_seconds,
                retry_on=is_transient,
                timeout=self.settings.balance_read_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Balance read timed out: {label}")
            raise BalanceTimeoutError(details=label)
        except ZKAccountError:
            raise
        except InvalidAddress as e:
            raise InvalidInputError("invalid address", details=str(e))
        except Exception as e:
            logger.error(f"Balance read failed: {label}: {e}")
            raise NodeUnavailableError(details=str(e))

    async def get_decimals(self, token_address: Optional[str]) -> int:
        """Asset decimals. Token decimals are read once per reader."""
        if token_address is None:
            return NATIVE_DECIMALS
        key = checksum(token_address, "token address")
        if key not in self._decimals:
            self._decimals[key] = await self._read(
                lambda: self.gateway.get_token_decimals(key),
                f"decimals({key})",
            )
        return self._decimals[key]

    async def get_balance(self, address: str, token_address: Optional[str] = None) -> Balance:
        """Balance of `address` in the native asset, or in `token_address` when given."""
        owner = checksum(address)
        decimals = await self.get_decimals(token_address)
        if token_address is None:
            raw = await self._read(lambda: self.gateway.get_balance(owner), f"balance({owner})")
        else:
            token = checksum(token_address, "token address")
            raw = await self._read(
                lambda: self.gateway.get_token_balance(token, owner),
                f"balanceOf({token}, {owner})",
            )
        return Balance(raw=raw, decimals=decimals, formatted=format_units(raw, decimals))

    async def get_balances(self, address: str, token_addresses: List[str]) -> Dict[str, Balance]:
        """Native plus token balances, read concurrently.

        Keys are `NATIVE_ASSET` and each checksummed token address.
        """
        tokens = [checksum(t, "token address") for t in token_addresses]
        results = await asyncio.gather(
            self.get_balance(address),
            *(self.get_balance(address, token) for token in tokens),
        )
        return dict(zip([NATIVE_ASSET] + tokens, results))
