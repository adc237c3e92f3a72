"""ZK Account API endpoints."""
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from zkaccount.api.deps import get_board, get_chain_services, get_correlation_id, get_session_context
from zkaccount.schemas.account import AccountCreate, AccountStatusResponse, BalanceView
from zkaccount.schemas.common import CorrelatedResponse
from zkaccount.schemas.proof import SessionContext
from zkaccount.schemas.transfer import Balance, TransferOutcome
from zkaccount.services.balance import NATIVE_ASSET
from zkaccount.services.confirmation import SettlementBoard
from zkaccount.services.ethereum import checksum
from zkaccount.services.key_vault import KeyVault

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/accounts", tags=["ZK Accounts"])


def _view(asset: str, balance: Balance) -> BalanceView:
    return BalanceView(
        asset=asset,
        raw=str(balance.raw),
        formatted=balance.formatted,
        decimals=balance.decimals,
    )


@router.post("", response_model=CorrelatedResponse[TransferOutcome])
async def create_account(
    account_data: AccountCreate,
    request: Request,
    session: SessionContext = Depends(get_session_context),
    board: SettlementBoard = Depends(get_board),
    correlation_id: str = Depends(get_correlation_id),
):
    """
    Create a ZK Account bound to the caller's identity session.

    Idempotent: an owner that already has an account gets the existing
    address back with `already_existed=true` and no transaction hash.
    """
    services = await get_chain_services(request, account_data.chain_id)
    vault = KeyVault.from_private_key(account_data.private_key.get_secret_value())
    try:
        outcome = await services.factory.create_for_session(
            owner=account_data.owner_address,
            vault=vault,
            email=account_data.email,
            session=session,
            proofs=services.proofs,
            requires_proof=account_data.requires_proof,
            on_settled=board.record,
        )
    finally:
        vault.clear()

    return CorrelatedResponse(correlation_id=correlation_id, data=outcome)


@router.get("/{owner}", response_model=CorrelatedResponse[AccountStatusResponse])
async def check_account(
    owner: str,
    request: Request,
    chain_id: int = Query(..., gt=0),
    tokens: Optional[List[str]] = Query(None),
    correlation_id: str = Depends(get_correlation_id),
):
    """Account record plus owner and account balances, read concurrently."""
    services = await get_chain_services(request, chain_id)
    owner = checksum(owner, "owner address")
    token_addresses = [checksum(t, "token address") for t in tokens or []]

    record, owner_balance = await asyncio.gather(
        services.factory.exists(owner),
        services.balances.get_balance(owner),
    )

    balances: List[BalanceView] = []
    explorer_url = services.profile.address_url(owner)
    if record is not None:
        account_balances = await services.balances.get_balances(
            record.zk_account_address, token_addresses
        )
        balances = [
            _view("ETH" if asset == NATIVE_ASSET else asset, balance)
            for asset, balance in account_balances.items()
        ]
        explorer_url = services.profile.address_url(record.zk_account_address)

    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=AccountStatusResponse(
            owner_address=owner,
            has_account=record is not None,
            account=record,
            owner_balance=_view("ETH", owner_balance),
            balances=balances,
            explorer_url=explorer_url,
        ),
    )
