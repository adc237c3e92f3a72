"""Gas estimation and transaction submission shared by transfers and account creation."""
import asyncio
import logging
from typing import Any, Dict, Optional

from zkaccount.config import Settings
from zkaccount.exceptions import SubmissionError, ZKAccountError
from zkaccount.services.ethereum import EthereumGateway
from zkaccount.services.key_vault import KeyVault
from zkaccount.services.retry import call_with_retry
from zkaccount.services.revert_classifier import classify_error, error_for_kind, revert_reason

logger = logging.getLogger(__name__)


def _is_infrastructure_error(exc: BaseException) -> bool:
    return not isinstance(exc, ZKAccountError) and classify_error(exc) is None


async def estimate_call(
    gateway: EthereumGateway,
    sender: str,
    call: Dict[str, Any],
    settings: Settings,
    stage: str = "estimating_gas",
) -> Optional[int]:
    """
    Estimate gas for `call` sent by `sender`.

    Infrastructure failures are retried up to `estimate_attempts`; reverts are
    never retried.

    Returns:
        The estimate, or None when estimation kept failing for infrastructure
        reasons. The caller decides whether a fallback limit is acceptable.

    Raises:
        ZKAccountError: The classified revert (PROOF_REPLAY, WOULD_REVERT, ...)
    """
    try:
        return await call_with_retry(
            lambda: gateway.estimate_gas(sender, call),
            attempts=settings.estimate_attempts,
            delay=settings.estimate_retry_delay_seconds,
            retry_on=_is_infrastructure_error,
        )
    except ZKAccountError:
        raise
    except Exception as e:
        reason = revert_reason(e)
        kind = classify_error(e)
        if kind is None:
            logger.warning(f"Gas estimation unavailable for {sender}: {reason}")
            return None
        logger.warning(f"Gas estimation rejected ({kind.value}) for {sender}: {reason}")
        raise error_for_kind(kind, reason, stage)


def _log_orphaned_send(task: "asyncio.Future[str]") -> None:
    if task.cancelled() or task.exception() is not None:
        return
    logger.warning(f"Caller went away after broadcast; transaction {task.result()} is on the network")


async def submit_call(
    gateway: EthereumGateway,
    vault: KeyVault,
    call: Dict[str, Any],
    gas: int,
    stage: str = "submitting",
) -> str:
    """
    Sign and broadcast `call`. Returns the transaction hash.

    The broadcast is shielded from caller cancellation so a hash the node
    accepted is never lost.

    Raises:
        ZKAccountError: Classified node rejection, or SubmissionError
    """
    send_task = asyncio.ensure_future(gateway.send(vault, call, gas))
    try:
        return await asyncio.shield(send_task)
    except asyncio.CancelledError:
        send_task.add_done_callback(_log_orphaned_send)
        raise
    except ZKAccountError:
        raise
    except Exception as e:
        reason = revert_reason(e)
        kind = classify_error(e)
        logger.error(f"Submission failed from {vault.address}: {reason}")
        if kind is None:
            raise SubmissionError(details=reason, stage=stage, reason=reason)
        raise error_for_kind(kind, reason, stage)
