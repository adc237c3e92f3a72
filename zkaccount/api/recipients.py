"""Recipient resolution endpoint."""
from fastapi import APIRouter, Depends, Query, Request

from zkaccount.api.deps import get_chain_services, get_correlation_id
from zkaccount.schemas.common import CorrelatedResponse
from zkaccount.schemas.transfer import RecipientResolution
from zkaccount.services.recipient import is_address

router = APIRouter(prefix="/v1/recipients", tags=["Recipients"])


@router.get("/resolve", response_model=CorrelatedResponse[RecipientResolution])
async def resolve_recipient(
    request: Request,
    input: str = Query(..., min_length=1),
    chain_id: int = Query(..., gt=0),
    correlation_id: str = Depends(get_correlation_id),
):
    """
    Resolve an address or email to a chain address.

    Safe to call on every keystroke; clients should drop out-of-order responses.
    """
    services = await get_chain_services(request, chain_id)
    address = await services.recipients.resolve(input)
    return CorrelatedResponse(
        correlation_id=correlation_id,
        data=RecipientResolution(
            input=input,
            address=address,
            via_directory=not is_address(input),
        ),
    )
