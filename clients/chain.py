"""Async EVM client for the Pharos testnet.

Wraps :class:`web3.AsyncWeb3` for the handful of transactions the task
catalog needs: native transfer, wrapped-native deposit, router multicall
swap, ERC-20 approval and position-manager mint.  Transactions are signed
locally with :mod:`eth_account` and sent raw.

Error translation:
    * host resolution failures -> :class:`ConnectivityError`
    * contract reverts / failed receipts -> :class:`BusinessRejection`
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
from aiohttp_socks import ProxyConnector
from eth_abi import encode as abi_encode
from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError
from web3.logs import DISCARD

from clients.contracts import (
    APPROVE_GAS_LIMIT,
    ERC20_ABI,
    EXACT_INPUT_SINGLE_SELECTOR,
    MINT_GAS_LIMIT,
    POSITION_MANAGER_ABI,
    ROUTER_ABI,
    SWAP_GAS_LIMIT,
    SWAP_ROUTER_ADDRESS,
    TOKENS,
    TRANSFER_GAS_LIMIT,
    WRAP_GAS_LIMIT,
    WRAPPED_NATIVE_ABI,
)
from core.errors import BusinessRejection, PharosError, translate_transport_error

logger = logging.getLogger(__name__)


def encode_exact_input_single(
    token_in: str,
    token_out: str,
    fee: int,
    recipient: str,
    amount_in: int,
    amount_out_min: int = 0,
    sqrt_price_limit: int = 0,
) -> bytes:
    """Calldata for the router's ``exactInputSingle`` inside a multicall."""
    args = [
        AsyncWeb3.to_checksum_address(token_in),
        AsyncWeb3.to_checksum_address(token_out),
        fee,
        AsyncWeb3.to_checksum_address(recipient),
        amount_in,
        amount_out_min,
        sqrt_price_limit,
    ]
    types = ["address", "address", "uint24", "address", "uint256", "uint256", "uint160"]
    return EXACT_INPUT_SINGLE_SELECTOR + abi_encode(types, args)


class ChainClient:
    """Signing EVM client bound to one private key and one egress path.

    Args:
        rpc_url: JSON-RPC endpoint.
        chain_id: Expected chain id; checked by :meth:`connect`.
        private_key: Hex private key used to sign transactions.
        proxy: Optional proxy URI (http or socks).
        timeout: Per-request timeout in seconds.
        receipt_timeout: Seconds to wait for a transaction receipt.
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        private_key: str,
        proxy: Optional[str] = None,
        timeout: float = 30.0,
        receipt_timeout: float = 600.0,
    ) -> None:
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.proxy = proxy
        self.timeout = timeout
        self.receipt_timeout = receipt_timeout
        self.account = Account.from_key(private_key)
        self.address: str = self.account.address
        self._session: Optional[aiohttp.ClientSession] = None
        self.w3: Optional[AsyncWeb3] = None

    @asynccontextmanager
    async def _translate_errors(self) -> AsyncIterator[None]:
        try:
            yield
        except PharosError:
            raise
        except ContractLogicError as e:
            raise BusinessRejection(f"Contract reverted: {e}") from e
        except Exception as e:
            translated = translate_transport_error(e)
            if translated is e:
                raise
            raise translated from e

    async def connect(self) -> None:
        """Create the provider and check the chain id.

        Raises:
            ConnectivityError: If the RPC host cannot be resolved.
            BusinessRejection: If the endpoint reports a different chain.
        """
        if self.w3 is None:
            connector = ProxyConnector.from_url(self.proxy) if self.proxy else None
            client_timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(connector=connector, timeout=client_timeout)
            provider = AsyncWeb3.AsyncHTTPProvider(
                self.rpc_url, request_kwargs={"timeout": client_timeout}
            )
            await provider.cache_async_session(self._session)
            self.w3 = AsyncWeb3(provider)
        async with self._translate_errors():
            remote_chain_id = await self.w3.eth.chain_id
        if remote_chain_id != self.chain_id:
            raise BusinessRejection(
                f"RPC reports chain id {remote_chain_id}, expected {self.chain_id}"
            )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _require_w3(self) -> AsyncWeb3:
        if self.w3 is None:
            raise RuntimeError("ChainClient.connect() must be awaited first")
        return self.w3

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self) -> int:
        """Native balance in wei."""
        w3 = self._require_w3()
        async with self._translate_errors():
            return await w3.eth.get_balance(self.address)

    async def token_balance(self, token: str) -> int:
        """ERC-20 balance of *token* (symbol or address) in base units."""
        w3 = self._require_w3()
        contract = w3.eth.contract(address=self._token_address(token), abi=ERC20_ABI)
        async with self._translate_errors():
            return await contract.functions.balanceOf(self.address).call()

    async def fee_params(self) -> Dict[str, int]:
        """EIP-1559 fee fields, or a legacy ``gasPrice`` when unsupported."""
        w3 = self._require_w3()
        async with self._translate_errors():
            block = await w3.eth.get_block("latest")
            base_fee = block.get("baseFeePerGas")
            if base_fee is None:
                return {"gasPrice": await w3.eth.gas_price}
            priority = await w3.eth.max_priority_fee
        return {"maxFeePerGas": base_fee * 2 + priority, "maxPriorityFeePerGas": priority}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _send(self, tx: Dict[str, Any]) -> Dict[str, Any]:
        """Sign, send and wait for *tx*; returns the receipt.

        Raises:
            BusinessRejection: If the receipt reports ``status == 0``.
        """
        w3 = self._require_w3()
        async with self._translate_errors():
            tx.setdefault("from", self.address)
            tx.setdefault("chainId", self.chain_id)
            if "nonce" not in tx:
                tx["nonce"] = await w3.eth.get_transaction_count(self.address, "pending")
            signed = self.account.sign_transaction(tx)
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info(f"Tx sent: {w3.to_hex(tx_hash)}, waiting for confirmation...")
            receipt = await w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        if receipt.get("status") == 0:
            raise BusinessRejection(f"Transaction {w3.to_hex(tx_hash)} reverted")
        return dict(receipt)

    async def send_native(self, to: str, value_wei: int) -> str:
        """Plain value transfer; returns the transaction hash."""
        receipt = await self._send({
            "to": AsyncWeb3.to_checksum_address(to),
            "value": value_wei,
            "gas": TRANSFER_GAS_LIMIT,
            "gasPrice": 0,
        })
        return AsyncWeb3.to_hex(receipt["transactionHash"])

    async def wrap_native(self, value_wei: int) -> Dict[str, Any]:
        """Deposit native currency into the wrapped token.

        Returns:
            ``{"tx_hash": str, "wrapped": Optional[int]}`` where *wrapped* is
            the ``Deposit`` event amount when the event was emitted.
        """
        w3 = self._require_w3()
        contract = w3.eth.contract(address=self._token_address("WPHRS"), abi=WRAPPED_NATIVE_ABI)
        async with self._translate_errors():
            tx = await contract.functions.deposit().build_transaction({
                "from": self.address,
                "value": value_wei,
                "gas": WRAP_GAS_LIMIT,
                "gasPrice": AsyncWeb3.to_wei(1, "gwei"),
                "nonce": await w3.eth.get_transaction_count(self.address, "pending"),
            })
        receipt = await self._send(tx)
        wrapped = None
        events = contract.events.Deposit().process_receipt(receipt, errors=DISCARD)
        if events:
            wrapped = events[0]["args"]["wad"]
        return {"tx_hash": AsyncWeb3.to_hex(receipt["transactionHash"]), "wrapped": wrapped}

    async def swap_exact_input(self, token_in: str, token_out: str, amount_in: int, fee: int) -> Dict[str, Any]:
        """Router multicall with a single ``exactInputSingle`` leg."""
        w3 = self._require_w3()
        router = w3.eth.contract(address=AsyncWeb3.to_checksum_address(SWAP_ROUTER_ADDRESS), abi=ROUTER_ABI)
        payload = encode_exact_input_single(
            self._token_address(token_in),
            self._token_address(token_out),
            fee,
            self.address,
            amount_in,
        )
        deadline = int(time.time()) + 120
        fees = await self.fee_params()
        async with self._translate_errors():
            tx = await router.functions.multicall(deadline, [payload]).build_transaction({
                "from": self.address,
                "gas": SWAP_GAS_LIMIT,
                "nonce": await w3.eth.get_transaction_count(self.address, "pending"),
                **fees,
            })
        receipt = await self._send(tx)
        return {
            "tx_hash": AsyncWeb3.to_hex(receipt["transactionHash"]),
            "block": receipt.get("blockNumber"),
        }

    async def approve(self, token: str, spender: str, amount: int) -> str:
        """ERC-20 ``approve``; returns the transaction hash."""
        w3 = self._require_w3()
        contract = w3.eth.contract(address=self._token_address(token), abi=ERC20_ABI)
        async with self._translate_errors():
            tx = await contract.functions.approve(
                AsyncWeb3.to_checksum_address(spender), amount
            ).build_transaction({
                "from": self.address,
                "gas": APPROVE_GAS_LIMIT,
                "nonce": await w3.eth.get_transaction_count(self.address, "pending"),
            })
        receipt = await self._send(tx)
        return AsyncWeb3.to_hex(receipt["transactionHash"])

    async def mint_position(self, manager: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Position-manager ``mint``.

        Args:
            manager: Position manager address.
            params: ``MintParams`` fields; token and recipient addresses are
                checksummed here.

        Returns:
            ``{"tx_hash": str, "liquidity": Optional[int]}``.
        """
        w3 = self._require_w3()
        contract = w3.eth.contract(address=AsyncWeb3.to_checksum_address(manager), abi=POSITION_MANAGER_ABI)
        mint_params = dict(params)
        for key in ("token0", "token1", "recipient"):
            mint_params[key] = AsyncWeb3.to_checksum_address(mint_params[key])
        async with self._translate_errors():
            tx = await contract.functions.mint(mint_params).build_transaction({
                "from": self.address,
                "gas": MINT_GAS_LIMIT,
                "nonce": await w3.eth.get_transaction_count(self.address, "pending"),
            })
        receipt = await self._send(tx)
        liquidity = None
        events = contract.events.IncreaseLiquidity().process_receipt(receipt, errors=DISCARD)
        if events:
            liquidity = events[0]["args"]["liquidity"]
        return {"tx_hash": AsyncWeb3.to_hex(receipt["transactionHash"]), "liquidity": liquidity}

    @staticmethod
    def _token_address(token: str) -> str:
        return AsyncWeb3.to_checksum_address(TOKENS.get(token, token))
