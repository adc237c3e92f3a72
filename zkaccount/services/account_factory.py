"""ZK Account factory client: prediction, lookup and creation."""
import logging
from typing import Optional

from web3 import Web3

from zkaccount.config import Settings, get_settings
from zkaccount.exceptions import (
    AccountNotFoundError,
    InsufficientGasReserveError,
    NodeUnavailableError,
    SubmissionError,
    ZKAccountError,
)
from zkaccount.schemas.account import AccountRecord
from zkaccount.schemas.proof import SessionContext
from zkaccount.schemas.transfer import TransferOutcome
from zkaccount.services.balance import BalanceReader
from zkaccount.services.confirmation import ConfirmationTracker, SettledCallback
from zkaccount.services.ethereum import EthereumGateway, checksum
from zkaccount.services.key_vault import KeyVault
from zkaccount.services.proof import ProofProvider
from zkaccount.services.submission import estimate_call, submit_call
from zkaccount.units import NATIVE_DECIMALS, format_units

logger = logging.getLogger(__name__)


class AccountFactoryClient:
    """
    Client for the ZK Account factory on one chain.

    Account addresses are deterministic in (owner, salt), so a record exists
    before deployment and `predict_address` matches the deployed address.
    """

    def __init__(
        self,
        gateway: EthereumGateway,
        settings: Optional[Settings] = None,
        tracker: Optional[ConfirmationTracker] = None,
        balances: Optional[BalanceReader] = None,
    ):
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.tracker = tracker
        self.balances = balances or BalanceReader(gateway, self.settings)

    @property
    def profile(self):
        return self.gateway.profile

    @staticmethod
    def generate_salt(email: str, owner: str) -> bytes:
        """keccak256(utf8(email + owner)) with the checksummed owner address."""
        return bytes(Web3.keccak(text=email + checksum(owner, "owner address")))

    async def predict_address(self, owner: str, salt: bytes) -> str:
        """Counterfactual account address. Pure read, no gas."""
        return await self.gateway.predict_account_address(checksum(owner, "owner address"), salt)

    async def get_account(self, address: str) -> AccountRecord:
        """Read the on-chain account record for a deployed account."""
        info = await self.gateway.get_account_info(checksum(address, "account address"))
        return AccountRecord(
            owner_address=info["owner"],
            zk_account_address=Web3.to_checksum_address(address),
            deployed=True,
            requires_proof=info["requires_proof"],
            email_hash=info["email_hash"],
            domain_hash=info["domain_hash"],
            nonce=info["nonce"],
            verifier_address=info.get("verifier"),
        )

    async def exists(self, owner: str) -> Optional[AccountRecord]:
        """First account bound to `owner`, or None."""
        accounts = await self.gateway.get_user_accounts(checksum(owner, "owner address"))
        if not accounts:
            return None
        return await self.get_account(accounts[0])

    async def require_account(self, owner: str) -> AccountRecord:
        record = await self.exists(owner)
        if record is None:
            raise AccountNotFoundError(owner=owner)
        return record

    async def _creation_gas(self, owner: str, call: dict) -> int:
        """Gas limit for creation: the larger of the doubled estimate and the chain ceiling."""
        ceiling = self.settings.creation_gas_ceiling(self.profile.chain_id)
        estimate = await estimate_call(self.gateway, owner, call, self.settings)
        if estimate is None:
            logger.warning(f"Proceeding with fixed gas limit {ceiling} for account creation")
            return ceiling

        gas_price = await self.gateway.gas_price()
        required = estimate * gas_price
        balance = await self.balances.get_balance(owner)
        if balance.raw < required:
            raise InsufficientGasReserveError(
                available=balance.formatted,
                available_raw=balance.raw,
                required=format_units(required, NATIVE_DECIMALS),
                required_raw=required,
            )
        return max(estimate * self.settings.gas_multiplier, ceiling)

    async def create(
        self,
        owner: str,
        vault: KeyVault,
        email_hash: int,
        domain_hash: int,
        salt: bytes,
        requires_proof: bool = True,
        on_settled: Optional[SettledCallback] = None,
    ) -> TransferOutcome:
        """
        Deploy a ZK Account for `owner`.

        Idempotent: when the owner already has an account, returns success
        with the existing address and no transaction hash.
        """
        stage = "validating"
        try:
            vault.ensure_owner(owner)
            owner = checksum(owner, "owner address")

            stage = "checking_existing"
            existing = await self.exists(owner)
            if existing is not None:
                logger.info(f"Account already exists for {owner}: {existing.zk_account_address}")
                return TransferOutcome(
                    success=True,
                    zk_account_address=existing.zk_account_address,
                    explorer_url=self.profile.address_url(existing.zk_account_address),
                    already_existed=True,
                )

            stage = "predicting_address"
            predicted = await self.predict_address(owner, salt)
            call = self.gateway.build_create_call(requires_proof, email_hash, domain_hash, salt)

            stage = "estimating_gas"
            gas = await self._creation_gas(owner, call)

            stage = "submitting"
            tx_hash = await submit_call(self.gateway, vault, call, gas)
        except ZKAccountError as e:
            logger.warning(f"Account creation for {owner} failed at {stage}: {e}")
            return TransferOutcome.from_error(e, stage)
        except Exception as e:
            logger.error(f"Account creation for {owner} failed at {stage}: {e}", exc_info=True)
            error_cls = SubmissionError if stage == "submitting" else NodeUnavailableError
            return TransferOutcome.from_error(error_cls(details=str(e), reason=str(e)), stage)

        logger.info(f"Account creation submitted for {owner}: {tx_hash} -> {predicted}")
        if self.tracker is not None:
            self.tracker.track(tx_hash, self.profile, on_settled, gateway=self.gateway)

        return TransferOutcome(
            success=True,
            tx_hash=tx_hash,
            explorer_url=self.profile.tx_url(tx_hash),
            zk_account_address=predicted,
        )

    async def create_for_session(
        self,
        owner: str,
        vault: KeyVault,
        email: str,
        session: SessionContext,
        proofs: ProofProvider,
        requires_proof: bool = True,
        on_settled: Optional[SettledCallback] = None,
    ) -> TransferOutcome:
        """Create an account bound to the identity hashes of the caller's session."""
        try:
            vault.ensure_owner(owner)
            existing = await self.exists(owner)
            if existing is not None:
                return TransferOutcome(
                    success=True,
                    zk_account_address=existing.zk_account_address,
                    explorer_url=self.profile.address_url(existing.zk_account_address),
                    already_existed=True,
                )
            email_hash, domain_hash = await proofs.fetch_identity_hashes(session)
        except ZKAccountError as e:
            logger.warning(f"Identity lookup for {owner} failed: {e}")
            return TransferOutcome.from_error(e, "resolving_identity")
        except Exception as e:
            logger.error(f"Identity lookup for {owner} failed: {e}", exc_info=True)
            return TransferOutcome.from_error(NodeUnavailableError(details=str(e)), "resolving_identity")

        salt = self.generate_salt(email.strip(), owner)
        return await self.create(
            owner,
            vault,
            email_hash,
            domain_hash,
            salt,
            requires_proof=requires_proof,
            on_settled=on_settled,
        )
