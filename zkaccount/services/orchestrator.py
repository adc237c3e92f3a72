"""Transfer Orchestrator - state machine for spending from a ZK Account.

Flow: Validate → Resolve recipient → Check balances → Proof (conditional)
→ Estimate gas → Submit → hand off to confirmation tracking

The proof is fetched at most once per attempt and always before gas
estimation, which always precedes submission. A failed estimate never
causes a proof to be reused.
"""
import asyncio
import logging
from typing import Optional
from uuid import uuid4

from zkaccount.config import Settings, get_settings
from zkaccount.exceptions import (
    ChainNotConfiguredError,
    EstimationInfrastructureError,
    InsufficientGasReserveError,
    InsufficientTransferBalanceError,
    InvalidInputError,
    NodeUnavailableError,
    ProofMismatchError,
    SubmissionError,
    TransferCancelledError,
    ZKAccountError,
)
from zkaccount.schemas.account import AccountRecord
from zkaccount.schemas.proof import EMPTY_PROOF, ProofPayload, SessionContext
from zkaccount.schemas.transfer import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    TransferOutcome,
    TransferRequest,
    TransferState,
)
from zkaccount.services.account_factory import AccountFactoryClient
from zkaccount.services.balance import BalanceReader
from zkaccount.services.confirmation import ConfirmationTracker, SettledCallback
from zkaccount.services.ethereum import EthereumGateway, checksum
from zkaccount.services.key_vault import KeyVault
from zkaccount.services.proof import ProofProvider
from zkaccount.services.recipient import RecipientResolver
from zkaccount.services.revert_classifier import classify_error, error_for_kind, revert_reason
from zkaccount.services.submission import estimate_call, submit_call
from zkaccount.units import NATIVE_DECIMALS, format_units, parse_units, validate_positive_amount

logger = logging.getLogger(__name__)


class TransferAttempt:
    """Mutable bookkeeping for one pass through the state machine."""

    def __init__(self, request: TransferRequest):
        self.id = uuid4().hex[:12]
        self.request = request
        self.state = TransferState.VALIDATING
        self.account: Optional[AccountRecord] = None
        self.proof_fetches = 0

    @property
    def stage(self) -> str:
        return self.state.value.lower()


class TransferOrchestrator:
    """
    Orchestrates a single spend from a ZK Account:
    VALIDATING -> RESOLVING_RECIPIENT -> CHECKING_BALANCE -> RESOLVING_PROOF (conditional)
    -> ESTIMATING_GAS -> SUBMITTING -> SUBMITTED

    All collaborators are bound to the same pinned chain profile (through the
    gateway) for the lifetime of the orchestrator. No lock is held across
    network calls and nothing is shared between concurrent transfers.
    """

    def __init__(
        self,
        gateway: EthereumGateway,
        recipients: RecipientResolver,
        balances: BalanceReader,
        proofs: ProofProvider,
        factory: AccountFactoryClient,
        tracker: Optional[ConfirmationTracker] = None,
        settings: Optional[Settings] = None,
    ):
        self.gateway = gateway
        self.recipients = recipients
        self.balances = balances
        self.proofs = proofs
        self.factory = factory
        self.tracker = tracker
        self.settings = settings or get_settings()

    @property
    def profile(self):
        return self.gateway.profile

    def _transition(
        self,
        attempt: TransferAttempt,
        new_state: TransferState,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> bool:
        """Move the attempt to `new_state` if the transition is valid."""
        # Cancellation is honoured only while nothing has been sent
        if (
            cancel_event is not None
            and cancel_event.is_set()
            and TransferState.CANCELLED in VALID_TRANSITIONS[attempt.state]
            and new_state not in TERMINAL_STATES
        ):
            raise TransferCancelledError(stage=attempt.stage)

        if new_state not in VALID_TRANSITIONS[attempt.state]:
            logger.warning(
                f"Invalid transition for transfer {attempt.id}: {attempt.state.value} -> {new_state.value}"
            )
            return False

        logger.info(f"Transfer {attempt.id}: {attempt.state.value} -> {new_state.value}")
        attempt.state = new_state
        return True

    def _validate(self, request: TransferRequest, vault: Optional[KeyVault]) -> None:
        """Local checks only. Runs before any network call."""
        if vault is None or vault.is_cleared:
            raise InvalidInputError("Private key is required")

        recipient = (request.to_address or "").strip()
        if not recipient:
            raise InvalidInputError("Recipient is required")

        validate_positive_amount(request.amount)

        if not self.profile.is_active:
            raise ChainNotConfiguredError(details="chain is disabled", chain_id=self.profile.chain_id)
        if request.chain_id != self.profile.chain_id:
            raise InvalidInputError(
                f"Request is for chain {request.chain_id} but the session is pinned to {self.profile.chain_id}"
            )

        if request.token_address is not None:
            checksum(request.token_address, "token address")

        account = checksum(request.from_zk_account, "ZK Account address")
        if recipient.lower() in (vault.address.lower(), account.lower()):
            raise InvalidInputError("Cannot send to your own wallet or ZK Account")

    async def _resolve_account(self, request: TransferRequest, vault: KeyVault) -> AccountRecord:
        """The sending account, which must be owned by the vault's key."""
        account = await self.factory.get_account(request.from_zk_account)
        if not vault.controls(account.owner_address):
            raise InvalidInputError("Private key does not match ZK Account owner")
        return account

    async def _check_balances(
        self,
        request: TransferRequest,
        account: AccountRecord,
        owner: str,
    ) -> int:
        """Convert the amount and verify both balances. Returns the amount in smallest units."""
        decimals = await self.balances.get_decimals(request.token_address)
        amount_raw = parse_units(request.amount, decimals)

        account_balance, owner_balance = await asyncio.gather(
            self.balances.get_balance(account.zk_account_address, request.token_address),
            self.balances.get_balance(owner),
        )

        if account_balance.raw < amount_raw:
            raise InsufficientTransferBalanceError(
                asset="ETH" if request.is_native else "token",
                available=account_balance.formatted,
                available_raw=account_balance.raw,
                required=format_units(amount_raw, decimals),
                required_raw=amount_raw,
            )

        reserve = self.settings.min_gas_reserve_wei
        if owner_balance.raw < reserve:
            raise InsufficientGasReserveError(
                available=owner_balance.formatted,
                available_raw=owner_balance.raw,
                required=format_units(reserve, NATIVE_DECIMALS),
                required_raw=reserve,
            )
        return amount_raw

    def _check_proof_identity(self, proof: ProofPayload, account: AccountRecord) -> None:
        """The proof must attest the identity the account was created with."""
        if account.email_hash and proof.email_hash != account.email_hash:
            raise ProofMismatchError(field="email", details="publicSignals[0] != account email hash")
        if account.domain_hash and proof.domain_hash != account.domain_hash:
            raise ProofMismatchError(field="domain", details="publicSignals[1] != account domain hash")

    def _build_call(
        self,
        request: TransferRequest,
        account: AccountRecord,
        recipient: str,
        amount_raw: int,
        proof: ProofPayload,
    ) -> dict:
        if request.is_native:
            return self.gateway.build_execute_call(
                account.zk_account_address, proof, recipient, amount_raw
            )
        data = self.gateway.encode_token_transfer(request.token_address, recipient, amount_raw)
        return self.gateway.build_execute_call(
            account.zk_account_address, proof, request.token_address, 0, data
        )

    async def _gas_limit(self, owner: str, call: dict, proof_required: bool) -> int:
        """
        Gas for submission: the doubled estimate, or the fallback limit when
        estimation is unavailable and no proof is at stake.
        """
        estimate = await estimate_call(self.gateway, owner, call, self.settings)
        if estimate is not None:
            return estimate * self.settings.gas_multiplier

        if proof_required:
            # A fixed limit could burn the single-use proof on a failing transaction
            raise EstimationInfrastructureError(stage=TransferState.ESTIMATING_GAS.value.lower())

        gas = self.settings.fallback_gas_limit
        if self.settings.simulate_before_fallback:
            try:
                await self.gateway.simulate(owner, call, gas)
            except Exception as e:
                kind = classify_error(e)
                if kind is not None:
                    raise error_for_kind(kind, revert_reason(e), "estimating_gas")
                logger.warning(f"Dry run unavailable, proceeding with fallback gas: {e}")
        logger.warning(f"Using fallback gas limit {gas} for {owner}")
        return gas

    async def transfer(
        self,
        request: TransferRequest,
        vault: Optional[KeyVault],
        session: Optional[SessionContext] = None,
        on_settled: Optional[SettledCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransferOutcome:
        """
        Run one transfer attempt to a terminal state.

        Returns success only with a node-issued transaction hash. Confirmation
        is reported later through `on_settled`.
        """
        attempt = TransferAttempt(request)
        session = session or SessionContext()
        logger.info(
            f"Transfer {attempt.id} started: {request.amount} "
            f"{'ETH' if request.is_native else request.token_address} -> {request.to_address}"
        )

        try:
            self._validate(request, vault)
            account = await self._resolve_account(request, vault)
            attempt.account = account
            owner = vault.address

            self._transition(attempt, TransferState.RESOLVING_RECIPIENT, cancel_event)
            recipient = await self.recipients.resolve(request.to_address)
            if recipient.lower() in (owner.lower(), account.zk_account_address.lower()):
                raise InvalidInputError("Cannot send to your own wallet or ZK Account")

            self._transition(attempt, TransferState.CHECKING_BALANCE, cancel_event)
            amount_raw = await self._check_balances(request, account, owner)

            proof = EMPTY_PROOF
            if account.requires_proof:
                self._transition(attempt, TransferState.RESOLVING_PROOF, cancel_event)
                attempt.proof_fetches += 1
                proof = await self.proofs.fetch_proof(session)
                self._check_proof_identity(proof, account)

            self._transition(attempt, TransferState.ESTIMATING_GAS, cancel_event)
            call = self._build_call(request, account, recipient, amount_raw, proof)
            gas = await self._gas_limit(owner, call, account.requires_proof)

            self._transition(attempt, TransferState.SUBMITTING, cancel_event)
            tx_hash = await submit_call(self.gateway, vault, call, gas)
            self._transition(attempt, TransferState.SUBMITTED)

        except TransferCancelledError as e:
            logger.info(f"Transfer {attempt.id} cancelled at {attempt.stage}")
            stage = attempt.stage
            self._transition(attempt, TransferState.CANCELLED)
            return self._failure(attempt, e, stage)
        except ZKAccountError as e:
            logger.warning(f"Transfer {attempt.id} failed at {attempt.stage}: {e}")
            stage = attempt.stage
            self._transition(attempt, TransferState.FAILED)
            return self._failure(attempt, e, stage)
        except Exception as e:
            logger.error(f"Transfer {attempt.id} failed at {attempt.stage}: {e}", exc_info=True)
            stage = attempt.stage
            if attempt.state == TransferState.SUBMITTING:
                error = SubmissionError(details=str(e), reason=str(e))
            else:
                error = NodeUnavailableError(details=str(e))
            self._transition(attempt, TransferState.FAILED)
            return self._failure(attempt, error, stage)

        logger.info(f"Transfer {attempt.id} submitted: {tx_hash}")
        if self.tracker is not None:
            self.tracker.track(tx_hash, self.profile, on_settled, gateway=self.gateway)

        return TransferOutcome(
            success=True,
            tx_hash=tx_hash,
            explorer_url=self.profile.tx_url(tx_hash),
            zk_account_address=account.zk_account_address,
        )

    def _failure(self, attempt: TransferAttempt, error: ZKAccountError, stage: str) -> TransferOutcome:
        account = attempt.account.zk_account_address if attempt.account else None
        return TransferOutcome.from_error(error, stage, zk_account_address=account)

    async def send_native(
        self,
        vault: KeyVault,
        to: str,
        amount: str,
        from_zk_account: str,
        session: Optional[SessionContext] = None,
        on_settled: Optional[SettledCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransferOutcome:
        """Send the chain's native asset."""
        request = TransferRequest(
            from_zk_account=from_zk_account,
            to_address=to,
            amount=amount,
            chain_id=self.profile.chain_id,
        )
        return await self.transfer(request, vault, session, on_settled, cancel_event)

    async def send_token(
        self,
        vault: KeyVault,
        token_address: str,
        to: str,
        amount: str,
        from_zk_account: str,
        session: Optional[SessionContext] = None,
        on_settled: Optional[SettledCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransferOutcome:
        """Send an ERC-20 token held by the ZK Account."""
        request = TransferRequest(
            from_zk_account=from_zk_account,
            to_address=to,
            token_address=token_address,
            amount=amount,
            chain_id=self.profile.chain_id,
        )
        return await self.transfer(request, vault, session, on_settled, cancel_event)
