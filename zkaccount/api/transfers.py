"""Transfer API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from zkaccount.api.deps import (
    ChainServices,
    get_board,
    get_chain_services,
    get_correlation_id,
    get_session_context,
)
from zkaccount.schemas.common import CorrelatedResponse
from zkaccount.schemas.proof import SessionContext
from zkaccount.schemas.transfer import (
    NativeTransferCreate,
    SettlementNotice,
    TokenTransferCreate,
    TransferOutcome,
)
from zkaccount.services.confirmation import SettlementBoard
from zkaccount.services.key_vault import KeyVault

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/transfers", tags=["Transfers"])


def _open_vault(private_key: str, owner_address: str) -> KeyVault:
    vault = KeyVault.from_private_key(private_key)
    try:
        vault.ensure_owner(owner_address)
    except Exception:
        vault.clear()
        raise
    return vault


async def _sending_account(services: ChainServices, vault: KeyVault, from_zk_account: Optional[str]) -> str:
    """The requested ZK Account, or the key owner's account on the pinned chain."""
    if from_zk_account:
        return from_zk_account
    account = await services.factory.require_account(vault.address)
    return account.zk_account_address


@router.post("/native", response_model=CorrelatedResponse[TransferOutcome])
async def send_native(
    transfer_data: NativeTransferCreate,
    request: Request,
    session: SessionContext = Depends(get_session_context),
    board: SettlementBoard = Depends(get_board),
    correlation_id: str = Depends(get_correlation_id),
):
    """
    Send the native asset from the caller's ZK Account.

    A failed transfer is returned with `success=false` and an `error_kind`.
    Confirmation is reported later at `/v1/transfers/{tx_hash}/settlement`.
    """
    services = await get_chain_services(request, transfer_data.chain_id)
    vault = _open_vault(transfer_data.private_key.get_secret_value(), transfer_data.owner_address)
    try:
        outcome = await services.orchestrator.send_native(
            vault,
            to=transfer_data.to,
            amount=transfer_data.amount,
            from_zk_account=await _sending_account(services, vault, transfer_data.from_zk_account),
            session=session,
            on_settled=board.record,
        )
    finally:
        vault.clear()

    return CorrelatedResponse(correlation_id=correlation_id, data=outcome)


@router.post("/token", response_model=CorrelatedResponse[TransferOutcome])
async def send_token(
    transfer_data: TokenTransferCreate,
    request: Request,
    session: SessionContext = Depends(get_session_context),
    board: SettlementBoard = Depends(get_board),
    correlation_id: str = Depends(get_correlation_id),
):
    """Send an ERC-20 token from the caller's ZK Account."""
    services = await get_chain_services(request, transfer_data.chain_id)
    vault = _open_vault(transfer_data.private_key.get_secret_value(), transfer_data.owner_address)
    try:
        outcome = await services.orchestrator.send_token(
            vault,
            token_address=transfer_data.token_address,
            to=transfer_data.to,
            amount=transfer_data.amount,
            from_zk_account=await _sending_account(services, vault, transfer_data.from_zk_account),
            session=session,
            on_settled=board.record,
        )
    finally:
        vault.clear()

    return CorrelatedResponse(correlation_id=correlation_id, data=outcome)


@router.get("/{tx_hash}/settlement", response_model=CorrelatedResponse[SettlementNotice])
async def get_settlement(
    tx_hash: str,
    board: SettlementBoard = Depends(get_board),
    correlation_id: str = Depends(get_correlation_id),
):
    """Latest confirmation notice for a submitted transaction."""
    notice = board.get(tx_hash)
    if not notice:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No settlement notice for this transaction yet"
        )
    return CorrelatedResponse(correlation_id=correlation_id, data=notice)
