"""Orchestration services."""
from zkaccount.services.account_factory import AccountFactoryClient
from zkaccount.services.balance import BalanceReader
from zkaccount.services.chain_config import ChainEndpointResolver, ChainSession
from zkaccount.services.confirmation import ConfirmationTracker, SettlementBoard
from zkaccount.services.ethereum import EthereumGateway
from zkaccount.services.key_vault import KeyVault
from zkaccount.services.orchestrator import TransferOrchestrator
from zkaccount.services.proof import ProofProvider
from zkaccount.services.recipient import RecipientResolver

__all__ = [
    "AccountFactoryClient",
    "BalanceReader",
    "ChainEndpointResolver",
    "ChainSession",
    "ConfirmationTracker",
    "SettlementBoard",
    "EthereumGateway",
    "KeyVault",
    "TransferOrchestrator",
    "ProofProvider",
    "RecipientResolver",
]
