"""Tests for the web3 gateway with a mocked AsyncWeb3."""
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from web3 import Web3
from web3.exceptions import TimeExhausted

from zkaccount.config import Settings
from zkaccount.contracts import ZERO_ADDRESS, ZK_ACCOUNT_ABI
from zkaccount.exceptions import InvalidInputError
from zkaccount.schemas.chain import ChainProfile
from zkaccount.schemas.proof import EMPTY_PROOF
from zkaccount.services.ethereum import EthereumGateway, checksum, is_valid_address
from zkaccount.services.key_vault import KeyVault

from tests.fakes import CHAIN_ID, GWEI, OWNER, OWNER_KEY, RECIPIENT, TOKEN, ZK_ACCOUNT

# Hardhat account #0 with the case of its first letter flipped
BAD_CHECKSUM = "0xF39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

CALL = {"to": ZK_ACCOUNT, "data": "0x", "value": 0}


async def _value(value):
    return value


def _web3() -> MagicMock:
    web3 = MagicMock()
    web3.eth.get_block = AsyncMock(return_value={"baseFeePerGas": 10 * GWEI})
    web3.eth.get_transaction_count = AsyncMock(return_value=7)
    web3.eth.send_raw_transaction = AsyncMock(side_effect=lambda raw: Web3.keccak(raw))
    web3.eth.wait_for_transaction_receipt = AsyncMock()
    web3.eth.get_balance = AsyncMock(return_value=0)
    return web3


@pytest.fixture
def web3() -> MagicMock:
    return _web3()


@pytest.fixture
def node(profile: ChainProfile, settings: Settings, web3: MagicMock) -> EthereumGateway:
    return EthereumGateway(profile, settings, web3=web3)


class TestAddressValidation:
    """Address checks run before any RPC call."""

    def test_checksummed_and_single_case_addresses(self):
        assert checksum(OWNER) == OWNER
        assert checksum(OWNER.lower()) == OWNER
        assert checksum("0x" + OWNER[2:].upper()) == OWNER

    def test_mixed_case_with_wrong_checksum(self):
        assert not is_valid_address(BAD_CHECKSUM)
        with pytest.raises(InvalidInputError) as exc_info:
            checksum(BAD_CHECKSUM, "recipient address")
        assert exc_info.value.message == "Invalid input: invalid recipient address"

    @pytest.mark.parametrize("value", [None, "", "0x1234", "not-an-address"])
    def test_malformed(self, value):
        with pytest.raises(InvalidInputError):
            checksum(value)

    @pytest.mark.asyncio
    async def test_bad_address_never_reaches_node(self, node: EthereumGateway, web3: MagicMock):
        with pytest.raises(InvalidInputError):
            await node.get_balance(BAD_CHECKSUM)

        web3.eth.get_balance.assert_not_awaited()


class TestFees:
    """Fee parameters for outgoing transactions."""

    @pytest.mark.asyncio
    async def test_eip1559_fees(self, node: EthereumGateway, web3: MagicMock):
        web3.eth.max_priority_fee = _value(2 * GWEI)

        fees = await node.get_fee_params()

        assert fees == {"maxFeePerGas": 22 * GWEI, "maxPriorityFeePerGas": 2 * GWEI}

    @pytest.mark.asyncio
    async def test_legacy_chain_uses_gas_price(self, node: EthereumGateway, web3: MagicMock):
        web3.eth.get_block.return_value = {"number": 1}
        web3.eth.gas_price = _value(3 * GWEI)

        assert await node.get_fee_params() == {"gasPrice": 3 * GWEI}

    @pytest.mark.asyncio
    async def test_block_read_failure_falls_back_to_gas_price(self, node: EthereumGateway, web3: MagicMock, caplog):
        web3.eth.get_block.side_effect = ValueError("method not found")
        web3.eth.gas_price = _value(4 * GWEI)

        with caplog.at_level(logging.WARNING, logger="zkaccount.services.ethereum"):
            fees = await node.get_fee_params()

        assert fees == {"gasPrice": 4 * GWEI}
        assert "falling back to legacy" in caplog.text


class TestSend:
    """Signing and broadcast."""

    @pytest.mark.asyncio
    async def test_send_uses_pending_nonce(self, node: EthereumGateway, web3: MagicMock):
        web3.eth.max_priority_fee = _value(2 * GWEI)
        vault = KeyVault.from_private_key(OWNER_KEY)

        with patch.object(vault, "sign_transaction", wraps=vault.sign_transaction) as sign:
            tx_hash = await node.send(vault, CALL, 90_000)

        web3.eth.get_transaction_count.assert_awaited_once_with(OWNER, "pending")
        tx = sign.call_args.args[0]
        assert tx["nonce"] == 7
        assert tx["gas"] == 90_000
        assert tx["chainId"] == CHAIN_ID
        assert tx["maxFeePerGas"] == 22 * GWEI
        assert "gasPrice" not in tx

        raw = web3.eth.send_raw_transaction.call_args.args[0]
        assert tx_hash == Web3.to_hex(Web3.keccak(raw))

    @pytest.mark.asyncio
    async def test_node_hash_is_returned_on_mismatch(self, node: EthereumGateway, web3: MagicMock, caplog):
        web3.eth.max_priority_fee = _value(2 * GWEI)
        node_hash = bytes.fromhex("ab" * 32)
        web3.eth.send_raw_transaction.side_effect = None
        web3.eth.send_raw_transaction.return_value = node_hash

        with caplog.at_level(logging.WARNING, logger="zkaccount.services.ethereum"):
            tx_hash = await node.send(KeyVault.from_private_key(OWNER_KEY), CALL, 90_000)

        assert tx_hash == "0x" + "ab" * 32
        assert "locally computed" in caplog.text


class TestReceipts:
    """Receipt waits."""

    @pytest.mark.asyncio
    async def test_receipt(self, node: EthereumGateway, web3: MagicMock):
        web3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 12}

        receipt = await node.wait_for_receipt("0x" + "cd" * 32, timeout=5, poll_interval=0.5)

        assert receipt == {"status": 1, "blockNumber": 12}
        web3.eth.wait_for_transaction_receipt.assert_awaited_once_with(
            "0x" + "cd" * 32, timeout=5, poll_latency=0.5
        )

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, node: EthereumGateway, web3: MagicMock):
        web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not in chain after 5 seconds")

        assert await node.wait_for_receipt("0x" + "cd" * 32, timeout=5, poll_interval=0.5) is None


class TestReads:
    """Contract reads."""

    @pytest.mark.asyncio
    async def test_unbound_email_is_zero_address(self, node: EthereumGateway, web3: MagicMock):
        web3.eth.contract.return_value.functions.lookup.return_value.call = AsyncMock(return_value=None)

        assert await node.lookup_email(b"\x01" * 32) == ZERO_ADDRESS

    @pytest.mark.asyncio
    async def test_bound_email(self, node: EthereumGateway, web3: MagicMock):
        web3.eth.contract.return_value.functions.lookup.return_value.call = AsyncMock(return_value=RECIPIENT)

        assert await node.lookup_email(b"\x01" * 32) == RECIPIENT

    @pytest.mark.asyncio
    async def test_account_info(self, node: EthereumGateway, web3: MagicMock):
        web3.eth.contract.return_value.functions.getAccountInfo.return_value.call = AsyncMock(
            return_value=[OWNER.lower(), RECIPIENT, True, 11, 22, 3]
        )

        info = await node.get_account_info(ZK_ACCOUNT)

        assert info == {
            "owner": OWNER,
            "verifier": RECIPIENT,
            "requires_proof": True,
            "email_hash": 11,
            "domain_hash": 22,
            "nonce": 3,
        }


class TestEncoders:
    """Call encoding against the real ABI, without a node."""

    def test_execute_call(self, profile: ChainProfile, settings: Settings):
        node = EthereumGateway(profile, settings)

        call = node.build_execute_call(ZK_ACCOUNT, EMPTY_PROOF, RECIPIENT.lower(), 5)

        assert call["to"] == ZK_ACCOUNT
        assert call["value"] == 0
        _, params = node.web3.eth.contract(abi=ZK_ACCOUNT_ABI).decode_function_input(call["data"])
        assert params["target"] == RECIPIENT
        assert params["value"] == 5

    def test_token_transfer_selector(self, profile: ChainProfile, settings: Settings):
        node = EthereumGateway(profile, settings)

        data = node.encode_token_transfer(TOKEN, RECIPIENT, 5)

        assert data.startswith("0xa9059cbb")
