"""Pytest configuration and fixtures."""
from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from zkaccount.api.deps import build_chain_sessions
from zkaccount.config import Settings
from zkaccount.main import app
from zkaccount.schemas.chain import ChainProfile
from zkaccount.schemas.proof import SessionContext
from zkaccount.services.account_factory import AccountFactoryClient
from zkaccount.services.balance import BalanceReader
from zkaccount.services.chain_config import ChainEndpointResolver
from zkaccount.services.confirmation import ConfirmationTracker, SettlementBoard
from zkaccount.services.key_vault import KeyVault
from zkaccount.services.orchestrator import TransferOrchestrator
from zkaccount.services.recipient import RecipientResolver

from tests.fakes import (
    CHAIN_ID,
    DIRECTORY,
    FACTORY,
    ONE_ETH,
    OWNER,
    OWNER_KEY,
    TOKEN,
    VERIFIER,
    ZK_ACCOUNT,
    FakeGateway,
    FakeProofProvider,
)


@pytest.fixture
def settings() -> Settings:
    """Test settings with no retry delays and short timeouts."""
    return Settings(
        _env_file=None,
        balance_retry_delay_seconds=0,
        balance_read_timeout_seconds=0.2,
        estimate_retry_delay_seconds=0,
        confirmation_timeout_seconds=0.2,
        confirmation_poll_interval_seconds=0.01,
    )


@pytest.fixture
def profile() -> ChainProfile:
    return ChainProfile(
        chain_id=CHAIN_ID,
        network_name="Holesky",
        rpc_url="http://rpc.test",
        explorer_url="https://explorer.test",
        directory_contract=DIRECTORY,
        factory_contract=FACTORY,
        verifier_contract=VERIFIER,
    )


@pytest.fixture
def gateway(profile: ChainProfile) -> FakeGateway:
    """Chain with a funded, proof-gated ZK Account owned by OWNER."""
    gw = FakeGateway(profile)
    gw.deploy_account(OWNER, ZK_ACCOUNT, requires_proof=True)
    gw.fund(ZK_ACCOUNT, ONE_ETH)
    gw.fund(OWNER, ONE_ETH)
    gw.fund_token(TOKEN, ZK_ACCOUNT, 1_000 * 10**6, decimals=6)
    return gw


@pytest.fixture
def vault() -> KeyVault:
    return KeyVault.from_private_key(OWNER_KEY)


@pytest.fixture
def proofs() -> FakeProofProvider:
    return FakeProofProvider()


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(cookie="connect.sid=s%3Atest")


@pytest_asyncio.fixture
async def tracker(settings: Settings, gateway: FakeGateway):
    """Confirmation tracker whose background tasks are cancelled after each test."""
    tracker = ConfirmationTracker(settings, gateway_factory=lambda profile: gateway)
    yield tracker
    await tracker.aclose()


@pytest.fixture
def factory(gateway: FakeGateway, settings: Settings, tracker: ConfirmationTracker) -> AccountFactoryClient:
    return AccountFactoryClient(gateway, settings, tracker)


@pytest.fixture
def orchestrator(
    gateway: FakeGateway,
    proofs: FakeProofProvider,
    settings: Settings,
    tracker: ConfirmationTracker,
    factory: AccountFactoryClient,
) -> TransferOrchestrator:
    return TransferOrchestrator(
        gateway=gateway,
        recipients=RecipientResolver(gateway),
        balances=BalanceReader(gateway, settings),
        proofs=proofs,
        factory=factory,
        tracker=tracker,
        settings=settings,
    )


@pytest.fixture
def chain_config(profile: ChainProfile):
    """Configuration service lookup, answering every chain id with `profile`."""
    with patch.object(ChainEndpointResolver, "resolve", new_callable=AsyncMock) as mock_resolve:
        mock_resolve.return_value = profile
        yield mock_resolve


@pytest_asyncio.fixture
async def client(
    settings: Settings,
    gateway: FakeGateway,
    proofs: FakeProofProvider,
    tracker: ConfirmationTracker,
    chain_config: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """API client wired to the in-memory chain and proof service."""
    app.state.settings = settings
    app.state.http_client = AsyncMock()
    app.state.gateway_factory = lambda profile: gateway
    app.state.chain_sessions = build_chain_sessions(settings, app.state.http_client, app.state.gateway_factory)
    app.state.tracker = tracker
    app.state.board = SettlementBoard()

    with patch("zkaccount.api.deps.ProofProvider", return_value=proofs):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
