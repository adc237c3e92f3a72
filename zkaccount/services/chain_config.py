"""Chain profile resolution and the session-scoped chain context."""
import logging
from collections import OrderedDict
from typing import Callable, Optional, Tuple

import httpx

from zkaccount.config import Settings, get_settings
from zkaccount.exceptions import ChainNotConfiguredError
from zkaccount.schemas.chain import ChainConfigResponse, ChainProfile
from zkaccount.services.ethereum import EthereumGateway

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[ChainProfile], EthereumGateway]


class ChainEndpointResolver:
    """Client for the configuration service.

    Usage:
        async with ChainEndpointResolver(settings) as resolver:
            profile = await resolver.resolve(17000)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "ChainEndpointResolver":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.settings.rpc_request_timeout_seconds))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get HTTP client, ensuring it's initialized."""
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with ChainEndpointResolver() as resolver:'"
            )
        return self._client

    async def resolve(self, chain_id: int) -> ChainProfile:
        """
        Fetch the profile for `chain_id`.

        Raises:
            ChainNotConfiguredError: Service unreachable, error status,
                success=false, or a payload without RPC URL / factory address.
        """
        url = f"{self.settings.config_service_url}{self.settings.config_endpoint_path}"
        try:
            response = await self.client.request(
                method="GET",
                url=url,
                params={"chainId": str(chain_id)},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Configuration service unreachable for chain {chain_id}: {e}")
            raise ChainNotConfiguredError(details=str(e), chain_id=chain_id)

        if not response.is_success:
            raise ChainNotConfiguredError(details=f"HTTP {response.status_code}", chain_id=chain_id)

        try:
            payload = ChainConfigResponse.model_validate(response.json())
            if not payload.success:
                raise ValueError(payload.error or "success=false")
            profile = payload.to_profile(chain_id)
        except ValueError as e:
            # Covers malformed JSON and schema validation errors
            raise ChainNotConfiguredError(details=str(e), chain_id=chain_id)

        logger.info(f"Resolved chain {chain_id} ({profile.network_name}) via configuration service")
        return profile


class ChainSession:
    """
    Current chain context for one caller session.

    Holds one profile and its gateway. Requests pin a `snapshot()` for their
    whole lifetime, so switching chains never affects a request in flight.
    """

    def __init__(
        self,
        resolver: ChainEndpointResolver,
        gateway_factory: Optional[GatewayFactory] = None,
    ):
        self.resolver = resolver
        self.gateway_factory = gateway_factory or (lambda profile: EthereumGateway(profile, resolver.settings))
        self._profile: Optional[ChainProfile] = None
        self._gateway: Optional[EthereumGateway] = None

    @property
    def current(self) -> ChainProfile:
        if self._profile is None:
            raise ChainNotConfiguredError("No chain is active for this session")
        return self._profile

    async def activate(self, chain_id: int) -> ChainProfile:
        """Make `chain_id` current. A different chain drops the cached gateway."""
        if self._profile is not None and self._profile.chain_id == chain_id:
            return self._profile

        profile = await self.resolver.resolve(chain_id)
        if self._profile is not None:
            logger.info(f"Switching chain {self._profile.chain_id} -> {chain_id}")
        self.invalidate()
        self._profile = profile
        return profile

    def invalidate(self) -> None:
        self._profile = None
        self._gateway = None

    def gateway_for(self, profile: ChainProfile) -> EthereumGateway:
        """Gateway for `profile`, reusing the cached one for the current chain."""
        if self._profile is not None and profile == self._profile:
            if self._gateway is None:
                self._gateway = self.gateway_factory(profile)
            return self._gateway
        return self.gateway_factory(profile)

    def snapshot(self) -> Tuple[ChainProfile, EthereumGateway]:
        """Immutable (profile, gateway) pair for one request."""
        profile = self.current
        return profile, self.gateway_for(profile)

    async def pin(self, chain_id: int) -> Tuple[ChainProfile, EthereumGateway]:
        """Activate `chain_id` and return the snapshot a request works against."""
        profile = await self.activate(chain_id)
        return profile, self.gateway_for(profile)


class ChainSessionStore:
    """
    Chain contexts of recent caller sessions, keyed by the forwarded session
    credential. Least recently used sessions are dropped beyond `max_sessions`.
    """

    def __init__(
        self,
        resolver: ChainEndpointResolver,
        gateway_factory: Optional[GatewayFactory] = None,
        max_sessions: int = 1024,
    ):
        self.resolver = resolver
        self.gateway_factory = gateway_factory
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, ChainSession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def session_for(self, key: str) -> ChainSession:
        session = self._sessions.get(key)
        if session is None:
            session = ChainSession(self.resolver, self.gateway_factory)
            self._sessions[key] = session
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
        else:
            self._sessions.move_to_end(key)
        return session

    def drop(self, key: str) -> None:
        session = self._sessions.pop(key, None)
        if session is not None:
            session.invalidate()
