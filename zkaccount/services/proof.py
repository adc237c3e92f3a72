"""Client for the proof issuing service."""
import logging
from typing import Optional, Tuple

import httpx

from zkaccount.config import Settings, get_settings
from zkaccount.exceptions import ProofGenerationFailedError, UnauthenticatedError
from zkaccount.schemas.proof import ProofPayload, ProofResponse, SessionContext

logger = logging.getLogger(__name__)


class ProofProvider:
    """Async client for the proof issuing endpoint.

    Every call issues a fresh single-use proof. Nothing is cached or retried.

    Usage:
        async with ProofProvider(settings) as provider:
            proof = await provider.fetch_proof(session)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "ProofProvider":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.proof_timeout_seconds),
            )
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
                "Client not initialized. Use 'async with ProofProvider() as provider:'"
            )
        return self._client

    @property
    def endpoint(self) -> str:
        return f"{self.settings.proof_service_url}{self.settings.proof_endpoint_path}"

    def _handle_error(self, response: httpx.Response) -> None:
        """Raise appropriate exception for error response.

        Raises:
            UnauthenticatedError: For 401/403 responses.
            ProofGenerationFailedError: For any other error status.
        """
        if response.is_success:
            return

        try:
            details = response.json()
        except Exception:
            details = response.text

        status = response.status_code
        if status in (401, 403):
            raise UnauthenticatedError(details=details)
        raise ProofGenerationFailedError(details=f"HTTP {status}: {details}")

    async def fetch_proof(self, session: SessionContext) -> ProofPayload:
        """
        Request one proof and reshape it for the verifying contract.

        Raises:
            UnauthenticatedError: No session credentials, or the service rejected them
            ProofGenerationFailedError: Transport error, error status, success=false,
                or a malformed proof body
        """
        if session.is_empty:
            raise UnauthenticatedError(details="no session credentials")

        try:
            response = await self.client.request(
                method="POST",
                url=self.endpoint,
                headers=session.headers(),
                json={},
                timeout=self.settings.proof_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Proof service request failed: {e}")
            raise ProofGenerationFailedError(details=str(e))

        self._handle_error(response)

        try:
            body = ProofResponse.model_validate(response.json())
        except ValueError as e:
            raise ProofGenerationFailedError(details=f"malformed response: {e}")

        if not body.success:
            raise ProofGenerationFailedError(details=body.error or "success=false")

        try:
            payload = body.to_payload()
        except ValueError as e:
            raise ProofGenerationFailedError(details=f"malformed proof: {e}")

        logger.info("Proof issued")
        return payload

    async def fetch_identity_hashes(self, session: SessionContext) -> Tuple[int, int]:
        """(email_hash, domain_hash) the circuit binds for this session."""
        proof = await self.fetch_proof(session)
        return proof.email_hash, proof.domain_hash
