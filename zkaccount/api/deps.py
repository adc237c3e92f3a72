"""API dependencies for dependency injection."""
from typing import Optional
from uuid import uuid4

from fastapi import Header, Request

from zkaccount.config import Settings, get_settings
from zkaccount.schemas.chain import ChainProfile
from zkaccount.schemas.proof import SessionContext
from zkaccount.services.account_factory import AccountFactoryClient
from zkaccount.services.balance import BalanceReader
from zkaccount.services.chain_config import ChainEndpointResolver, ChainSessionStore
from zkaccount.services.confirmation import ConfirmationTracker, SettlementBoard
from zkaccount.services.ethereum import EthereumGateway
from zkaccount.services.orchestrator import TransferOrchestrator
from zkaccount.services.proof import ProofProvider
from zkaccount.services.recipient import RecipientResolver


def get_correlation_id(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-ID")
) -> str:
    """Get or generate correlation ID for request tracing."""
    return x_correlation_id or str(uuid4())


def get_session_context(
    cookie: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> SessionContext:
    """Caller session, forwarded verbatim to the proof issuing service."""
    return SessionContext(cookie=cookie, authorization=authorization)


def get_board(request: Request) -> SettlementBoard:
    return request.app.state.board


class ChainServices:
    """Collaborators for one request, all bound to the same pinned chain profile."""

    def __init__(
        self,
        profile: ChainProfile,
        gateway: EthereumGateway,
        proofs: ProofProvider,
        tracker: ConfirmationTracker,
        settings: Settings,
    ):
        self.profile = profile
        self.gateway = gateway
        self.proofs = proofs
        self.balances = BalanceReader(gateway, settings)
        self.recipients = RecipientResolver(gateway)
        self.factory = AccountFactoryClient(gateway, settings, tracker, self.balances)
        self.orchestrator = TransferOrchestrator(
            gateway=gateway,
            recipients=self.recipients,
            balances=self.balances,
            proofs=proofs,
            factory=self.factory,
            tracker=tracker,
            settings=settings,
        )


async def get_chain_services(request: Request, chain_id: int) -> ChainServices:
    """
    Pin `chain_id` in the caller's chain context and build services.

    The profile and gateway are reused across the caller's requests until
    the caller switches to another chain.

    Raises:
        ChainNotConfiguredError: No configuration for the chain
    """
    state = request.app.state
    settings = getattr(state, "settings", None) or get_settings()
    caller = get_session_context(request.headers.get("cookie"), request.headers.get("authorization"))
    profile, gateway = await state.chain_sessions.session_for(caller.cache_key).pin(chain_id)
    return ChainServices(
        profile=profile,
        gateway=gateway,
        proofs=ProofProvider(settings, state.http_client),
        tracker=state.tracker,
        settings=settings,
    )


def build_chain_sessions(settings: Settings, http_client, gateway_factory) -> ChainSessionStore:
    """Chain contexts shared by all requests of the application."""
    return ChainSessionStore(
        ChainEndpointResolver(settings, http_client),
        gateway_factory,
        max_sessions=settings.max_chain_sessions,
    )
