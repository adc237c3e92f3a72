"""Ethereum node access bound to one chain profile."""
import logging
from typing import Any, Dict, List, Optional

from aiohttp import ClientTimeout
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from zkaccount.config import Settings, get_settings
from zkaccount.contracts import (
    DIRECTORY_ABI,
    ERC20_ABI,
    ZERO_ADDRESS,
    ZK_ACCOUNT_ABI,
    ZK_ACCOUNT_FACTORY_ABI,
)
from zkaccount.exceptions import InvalidInputError
from zkaccount.schemas.chain import ChainProfile
from zkaccount.schemas.proof import ProofPayload
from zkaccount.services.key_vault import KeyVault

logger = logging.getLogger(__name__)


def is_valid_address(address: str) -> bool:
    """Hex address check. Mixed-case input must also carry a valid EIP-55 checksum."""
    if not Web3.is_address(address):
        return False
    body = address[2:] if address[:2].lower() == "0x" else address
    if body.lower() != body and body.upper() != body:
        return Web3.is_checksum_address(address)
    return True


def checksum(address: Optional[str], field: str = "address") -> str:
    """Validate and checksum an address, raising InvalidInputError when malformed."""
    if not address or not is_valid_address(address):
        raise InvalidInputError(f"invalid {field}")
    return Web3.to_checksum_address(address)


class EthereumGateway:
    """Async web3 wrapper for the reads, encoders and writes the orchestrator needs."""

    def __init__(
        self,
        profile: ChainProfile,
        settings: Optional[Settings] = None,
        web3: Optional[AsyncWeb3] = None,
    ):
        self.profile = profile
        self.settings = settings or get_settings()
        self._web3 = web3

    @property
    def web3(self) -> AsyncWeb3:
        """Get AsyncWeb3 instance (lazy loaded)."""
        if self._web3 is None:
            self._web3 = AsyncWeb3(
                AsyncWeb3.AsyncHTTPProvider(
                    self.profile.rpc_url,
                    request_kwargs={
                        "timeout": ClientTimeout(total=self.settings.rpc_request_timeout_seconds)
                    },
                )
            )
        return self._web3

    @property
    def chain_id(self) -> int:
        return self.profile.chain_id

    def _contract(self, address: str, abi: List[Dict[str, Any]]):
        return self.web3.eth.contract(address=checksum(address), abi=abi)

    # Reads

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        return await self.web3.eth.get_balance(checksum(address))

    async def get_token_balance(self, token_address: str, owner: str) -> int:
        """ERC-20 balance in the token's smallest unit."""
        token = self._contract(checksum(token_address, "token address"), ERC20_ABI)
        return await token.functions.balanceOf(checksum(owner)).call()

    async def get_token_decimals(self, token_address: str) -> int:
        token = self._contract(checksum(token_address, "token address"), ERC20_ABI)
        return int(await token.functions.decimals().call())

    async def lookup_email(self, email_hash: bytes) -> str:
        """Directory lookup. Returns the zero address when nothing is bound."""
        directory = self._contract(self.profile.directory_contract, DIRECTORY_ABI)
        address = await directory.functions.lookup(email_hash).call()
        return address or ZERO_ADDRESS

    async def predict_account_address(self, owner: str, salt: bytes) -> str:
        factory = self._contract(self.profile.factory_contract, ZK_ACCOUNT_FACTORY_ABI)
        address = await factory.functions.predictZKAccountAddress(checksum(owner), salt).call()
        return Web3.to_checksum_address(address)

    async def get_user_accounts(self, owner: str) -> List[str]:
        factory = self._contract(self.profile.factory_contract, ZK_ACCOUNT_FACTORY_ABI)
        accounts = await factory.functions.getUserAccounts(checksum(owner)).call()
        return [Web3.to_checksum_address(a) for a in accounts]

    async def get_account_info(self, account_address: str) -> Dict[str, Any]:
        account = self._contract(account_address, ZK_ACCOUNT_ABI)
        owner, verifier, requires_proof, email_hash, domain_hash, nonce = (
            await account.functions.getAccountInfo().call()
        )
        return {
            "owner": Web3.to_checksum_address(owner),
            "verifier": verifier,
            "requires_proof": bool(requires_proof),
            "email_hash": int(email_hash),
            "domain_hash": int(domain_hash),
            "nonce": int(nonce),
        }

    # Encoders (no I/O)

    def encode_token_transfer(self, token_address: str, to_address: str, amount: int) -> str:
        token = self._contract(checksum(token_address, "token address"), ERC20_ABI)
        return token.encode_abi("transfer", args=[checksum(to_address), amount])

    def build_execute_call(
        self,
        account_address: str,
        proof: ProofPayload,
        target: str,
        value: int,
        data: str = "0x",
    ) -> Dict[str, Any]:
        """Call dict for `execute(proof, target, value, data)` on a ZK Account."""
        account = self._contract(account_address, ZK_ACCOUNT_ABI)
        encoded = account.encode_abi(
            "execute",
            args=[proof.as_contract_arg(), checksum(target), value, Web3.to_bytes(hexstr=data)],
        )
        return {"to": checksum(account_address), "data": encoded, "value": 0}

    def build_create_call(
        self,
        requires_proof: bool,
        email_hash: int,
        domain_hash: int,
        salt: bytes,
    ) -> Dict[str, Any]:
        """Call dict for the factory's account creation."""
        factory = self._contract(self.profile.factory_contract, ZK_ACCOUNT_FACTORY_ABI)
        encoded = factory.encode_abi(
            "createZKAccount",
            args=[requires_proof, email_hash, domain_hash, salt],
        )
        return {"to": checksum(self.profile.factory_contract), "data": encoded, "value": 0}

    # Writes

    async def estimate_gas(self, sender: str, call: Dict[str, Any]) -> int:
        tx = dict(call)
        tx["from"] = checksum(sender)
        return await self.web3.eth.estimate_gas(tx)

    async def simulate(self, sender: str, call: Dict[str, Any], gas: int) -> None:
        """Dry-run the call with eth_call. Raises on revert."""
        tx = dict(call)
        tx["from"] = checksum(sender)
        tx["gas"] = gas
        await self.web3.eth.call(tx)

    async def gas_price(self) -> int:
        return await self.web3.eth.gas_price

    async def get_fee_params(self) -> Dict[str, int]:
        """EIP-1559 fee params, or a legacy gas price when the chain has no base fee."""
        try:
            block = await self.web3.eth.get_block("latest")
            base_fee = block.get("baseFeePerGas")
            if base_fee is not None:
                priority_fee = await self.web3.eth.max_priority_fee
                return {
                    "maxFeePerGas": base_fee * 2 + priority_fee,
                    "maxPriorityFeePerGas": priority_fee,
                }
        except Exception as e:
            logger.warning(f"Failed to get EIP-1559 fees: {e}, falling back to legacy")
        return {"gasPrice": await self.web3.eth.gas_price}

    async def send(self, vault: KeyVault, call: Dict[str, Any], gas: int) -> str:
        """Sign with the vault and broadcast. Returns the transaction hash."""
        sender = vault.address
        nonce = await self.web3.eth.get_transaction_count(sender, "pending")
        tx = {
            "to": call["to"],
            "data": call.get("data", "0x"),
            "value": call.get("value", 0),
            "gas": gas,
            "nonce": nonce,
            "chainId": self.chain_id,
        }
        tx.update(await self.get_fee_params())

        raw_tx, expected_hash = vault.sign_transaction(tx)
        tx_hash = Web3.to_hex(await self.web3.eth.send_raw_transaction(raw_tx))
        logger.info(f"Broadcast {tx_hash} from {sender} (nonce {nonce}, gas {gas})")
        if tx_hash.lower() != expected_hash.lower():
            logger.warning(f"Node returned {tx_hash}, locally computed {expected_hash}")
        return tx_hash

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float,
        poll_interval: float,
    ) -> Optional[Dict[str, Any]]:
        """Wait for a receipt. Returns None when the wait times out."""
        try:
            receipt = await self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=poll_interval
            )
        except TimeExhausted:
            return None
        return dict(receipt)
