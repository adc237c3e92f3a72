"""Background confirmation tracking for submitted transactions."""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, Optional, Set, Union

from zkaccount.config import Settings, get_settings
from zkaccount.schemas.chain import ChainProfile
from zkaccount.schemas.transfer import SettlementNotice
from zkaccount.services.ethereum import EthereumGateway

logger = logging.getLogger(__name__)

SettledCallback = Callable[[SettlementNotice], Union[None, Awaitable[None]]]
GatewayFactory = Callable[[ChainProfile], EthereumGateway]


class SettlementBoard:
    """Latest settlement notice per transaction hash. In memory only."""

    def __init__(self):
        self._notices: Dict[str, SettlementNotice] = {}

    def record(self, notice: SettlementNotice) -> None:
        self._notices[notice.tx_hash.lower()] = notice

    def get(self, tx_hash: str) -> Optional[SettlementNotice]:
        return self._notices.get(tx_hash.lower())

    def __len__(self) -> int:
        return len(self._notices)


class ConfirmationTracker:
    """
    Waits for receipts in background tasks.

    The caller already holds the transaction hash; the outcome is delivered
    only through `on_settled`. A timeout means "confirmation unknown", never
    a failed transfer.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gateway_factory: Optional[GatewayFactory] = None,
    ):
        self.settings = settings or get_settings()
        self.gateway_factory = gateway_factory or (lambda profile: EthereumGateway(profile, self.settings))
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def track(
        self,
        tx_hash: str,
        profile: ChainProfile,
        on_settled: Optional[SettledCallback] = None,
        gateway: Optional[EthereumGateway] = None,
    ) -> asyncio.Task:
        """Schedule a confirmation wait and return immediately."""
        gateway = gateway or self.gateway_factory(profile)
        task = asyncio.create_task(self._watch(tx_hash, gateway, on_settled))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Tracking confirmation for {tx_hash} on chain {profile.chain_id}")
        return task

    async def _watch(
        self,
        tx_hash: str,
        gateway: EthereumGateway,
        on_settled: Optional[SettledCallback],
    ) -> SettlementNotice:
        try:
            receipt = await gateway.wait_for_receipt(
                tx_hash,
                timeout=self.settings.confirmation_timeout_seconds,
                poll_interval=self.settings.confirmation_poll_interval_seconds,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Receipt lookup failed for {tx_hash}: {e}")
            notice = SettlementNotice(tx_hash=tx_hash, confirmed=False, reason="unavailable")
        else:
            if receipt is None:
                logger.warning(f"Confirmation timed out for {tx_hash}")
                notice = SettlementNotice(tx_hash=tx_hash, confirmed=False, reason="timeout")
            else:
                reverted = receipt.get("status") == 0
                if reverted:
                    logger.error(f"Transaction {tx_hash} reverted on-chain")
                else:
                    logger.info(f"Transaction {tx_hash} confirmed in block {receipt.get('blockNumber')}")
                notice = SettlementNotice(
                    tx_hash=tx_hash,
                    confirmed=True,
                    reverted=reverted,
                    block_number=receipt.get("blockNumber"),
                )

        await self._notify(on_settled, notice)
        return notice

    async def _notify(self, on_settled: Optional[SettledCallback], notice: SettlementNotice) -> None:
        if on_settled is None:
            return
        try:
            result = on_settled(notice)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Settlement callback failed for {notice.tx_hash}: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait for every in-flight confirmation."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Abandon in-flight confirmation waits."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("Confirmation tracker stopped")
