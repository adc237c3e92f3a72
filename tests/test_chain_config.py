"""Tests for chain profile resolution and the session chain context."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from zkaccount.config import Settings
from zkaccount.exceptions import ChainNotConfiguredError, ErrorKind
from zkaccount.schemas.chain import ChainProfile
from zkaccount.services.chain_config import ChainEndpointResolver, ChainSession, ChainSessionStore

from tests.fakes import CHAIN_ID, DIRECTORY, FACTORY, VERIFIER


def _config_body(**overrides) -> dict:
    body = {
        "success": True,
        "rpcUrl": "https://rpc.holesky.test",
        "networkName": "Holesky",
        "chainId": CHAIN_ID,
        "explorerUrl": "https://holesky.etherscan.io/",
        "zkVerifierV3Address": VERIFIER,
        "zkAccountFactoryV3Address": FACTORY,
        "oauthNamingService": DIRECTORY,
    }
    body.update(overrides)
    return body


def _response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("GET", "/"), **kwargs)


class TestChainEndpointResolver:
    """Test configuration service lookups."""

    @pytest.mark.asyncio
    async def test_context_manager(self, settings: Settings) -> None:
        async with ChainEndpointResolver(settings) as resolver:
            assert resolver._client is not None

        assert resolver._client is None

    @pytest.mark.asyncio
    async def test_resolve(self, settings: Settings) -> None:
        async with ChainEndpointResolver(settings) as resolver:
            with patch.object(
                resolver._client, "request", new_callable=AsyncMock
            ) as mock_request:
                mock_request.return_value = _response(200, json=_config_body())

                profile = await resolver.resolve(CHAIN_ID)

                assert mock_request.call_args.kwargs["params"] == {"chainId": str(CHAIN_ID)}
                assert profile.chain_id == CHAIN_ID
                assert profile.rpc_url == "https://rpc.holesky.test"
                assert profile.factory_contract == FACTORY
                assert profile.directory_contract == DIRECTORY
                assert profile.tx_url("0xabc") == "https://holesky.etherscan.io/tx/0xabc"

    @pytest.mark.asyncio
    async def test_directory_is_optional(self, settings: Settings) -> None:
        async with ChainEndpointResolver(settings) as resolver:
            with patch.object(
                resolver._client, "request", new_callable=AsyncMock
            ) as mock_request:
                mock_request.return_value = _response(200, json=_config_body(oauthNamingService=""))

                profile = await resolver.resolve(CHAIN_ID)

                assert profile.directory_contract is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"success": False, "error": "Unsupported chain"},
            _config_body(rpcUrl=None),
            _config_body(zkAccountFactoryV3Address=""),
            _config_body(chainId=1),
            _config_body(isActive=False),
        ],
    )
    async def test_unusable_configuration(self, settings: Settings, body: dict) -> None:
        async with ChainEndpointResolver(settings) as resolver:
            with patch.object(
                resolver._client, "request", new_callable=AsyncMock
            ) as mock_request:
                mock_request.return_value = _response(200, json=body)

                with pytest.raises(ChainNotConfiguredError) as exc_info:
                    await resolver.resolve(CHAIN_ID)

                assert exc_info.value.kind == ErrorKind.CHAIN_NOT_CONFIGURED
                assert str(CHAIN_ID) in exc_info.value.message

    @pytest.mark.asyncio
    async def test_error_status(self, settings: Settings) -> None:
        async with ChainEndpointResolver(settings) as resolver:
            with patch.object(
                resolver._client, "request", new_callable=AsyncMock
            ) as mock_request:
                mock_request.return_value = _response(404, json={"error": "not found"})

                with pytest.raises(ChainNotConfiguredError, match="HTTP 404"):
                    await resolver.resolve(CHAIN_ID)

    @pytest.mark.asyncio
    async def test_malformed_json(self, settings: Settings) -> None:
        async with ChainEndpointResolver(settings) as resolver:
            with patch.object(
                resolver._client, "request", new_callable=AsyncMock
            ) as mock_request:
                mock_request.return_value = _response(200, text="not json")

                with pytest.raises(ChainNotConfiguredError):
                    await resolver.resolve(CHAIN_ID)

    @pytest.mark.asyncio
    async def test_unreachable(self, settings: Settings) -> None:
        async with ChainEndpointResolver(settings) as resolver:
            with patch.object(
                resolver._client, "request", new_callable=AsyncMock
            ) as mock_request:
                mock_request.side_effect = httpx.ConnectError("connection refused")

                with pytest.raises(ChainNotConfiguredError):
                    await resolver.resolve(CHAIN_ID)


class TestChainSession:
    """Session chain switching and per-request snapshots."""

    def _session(self, settings: Settings):
        resolver = ChainEndpointResolver(settings, http_client=AsyncMock())
        calls = []

        async def resolve(chain_id: int):
            calls.append(chain_id)
            return _profile_for(chain_id)

        resolver.resolve = resolve
        built = []

        def factory(profile):
            gateway = object()
            built.append((profile.chain_id, gateway))
            return gateway

        return ChainSession(resolver, gateway_factory=factory), calls, built

    def test_no_active_chain(self, settings: Settings) -> None:
        session, _, _ = self._session(settings)
        with pytest.raises(ChainNotConfiguredError):
            _ = session.current

    @pytest.mark.asyncio
    async def test_activate_same_chain_is_cached(self, settings: Settings) -> None:
        session, calls, built = self._session(settings)

        await session.activate(CHAIN_ID)
        first = session.snapshot()
        await session.activate(CHAIN_ID)
        second = session.snapshot()

        assert calls == [CHAIN_ID]
        assert first[1] is second[1]
        assert len(built) == 1

    @pytest.mark.asyncio
    async def test_switch_invalidates_gateway(self, settings: Settings) -> None:
        session, calls, built = self._session(settings)

        await session.activate(CHAIN_ID)
        old_profile, old_gateway = session.snapshot()
        await session.activate(11155111)
        new_profile, new_gateway = session.snapshot()

        assert calls == [CHAIN_ID, 11155111]
        assert new_profile.chain_id == 11155111
        assert new_gateway is not old_gateway
        # A snapshot taken before the switch keeps its own chain
        assert old_profile.chain_id == CHAIN_ID

    @pytest.mark.asyncio
    async def test_failed_switch_keeps_current_chain(self, settings: Settings) -> None:
        session, _, _ = self._session(settings)
        await session.activate(CHAIN_ID)

        async def broken(chain_id: int):
            raise ChainNotConfiguredError(chain_id=chain_id)

        session.resolver.resolve = broken
        with pytest.raises(ChainNotConfiguredError):
            await session.activate(1)

        assert session.current.chain_id == CHAIN_ID

class TestChainSessionStore:
    """Chain contexts kept across requests of the same caller."""

    def _store(self, settings: Settings, max_sessions: int = 8):
        resolver = ChainEndpointResolver(settings, http_client=AsyncMock())
        calls = []

        async def resolve(chain_id: int):
            calls.append(chain_id)
            return _profile_for(chain_id)

        resolver.resolve = resolve
        store = ChainSessionStore(resolver, gateway_factory=lambda profile: object(), max_sessions=max_sessions)
        return store, calls

    @pytest.mark.asyncio
    async def test_same_caller_reuses_profile_and_gateway(self, settings: Settings) -> None:
        store, calls = self._store(settings)

        first = await store.session_for("alice").pin(CHAIN_ID)
        second = await store.session_for("alice").pin(CHAIN_ID)

        assert calls == [CHAIN_ID]
        assert first[1] is second[1]

    @pytest.mark.asyncio
    async def test_callers_have_separate_contexts(self, settings: Settings) -> None:
        store, calls = self._store(settings)

        alice = await store.session_for("alice").pin(CHAIN_ID)
        bob = await store.session_for("bob").pin(11155111)

        assert calls == [CHAIN_ID, 11155111]
        assert store.session_for("alice").current.chain_id == CHAIN_ID
        assert alice[1] is not bob[1]

    @pytest.mark.asyncio
    async def test_least_recently_used_session_is_dropped(self, settings: Settings) -> None:
        store, calls = self._store(settings, max_sessions=2)

        await store.session_for("alice").pin(CHAIN_ID)
        await store.session_for("bob").pin(CHAIN_ID)
        store.session_for("alice")
        await store.session_for("carol").pin(CHAIN_ID)

        assert len(store) == 2
        await store.session_for("alice").pin(CHAIN_ID)
        assert calls == [CHAIN_ID] * 3
        await store.session_for("bob").pin(CHAIN_ID)
        assert calls == [CHAIN_ID] * 4

    @pytest.mark.asyncio
    async def test_drop_forgets_the_chain(self, settings: Settings) -> None:
        store, calls = self._store(settings)
        session = store.session_for("alice")
        await session.pin(CHAIN_ID)

        store.drop("alice")

        with pytest.raises(ChainNotConfiguredError):
            _ = session.current
        await store.session_for("alice").pin(CHAIN_ID)
        assert calls == [CHAIN_ID, CHAIN_ID]



def _profile_for(chain_id: int):
    return ChainProfile(chain_id=chain_id, rpc_url=f"http://rpc/{chain_id}", factory_contract=FACTORY)
