"""
On-chain access for the trading wallet: USDC balance/allowance and CTF (ERC-1155)
operator approval on Polygon. The executor only talks to the ChainClient protocol,
so tests can run against an in-memory fake.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Protocol, runtime_checkable

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

logger = logging.getLogger(__name__)

# Polygon mainnet contracts
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
CTF_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
EXCHANGE_ADDRESS = "0x4bFB41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"

USDC_DECIMALS = 6
MAX_UINT256 = 2**256 - 1
_RECEIPT_TIMEOUT_SEC = 120

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

ERC1155_ABI = [
    {
        "constant": True,
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "operator", "type": "address"},
        ],
        "name": "isApprovedForAll",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "operator", "type": "address"},
            {"name": "approved", "type": "bool"},
        ],
        "name": "setApprovalForAll",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class ChainCallFailed(Exception):
    """Raised when an RPC read or a transaction fails. Treated as transient by callers."""
    pass


@runtime_checkable
class ChainClient(Protocol):
    """
    Minimal on-chain capability needed by the executor.
    Amounts are raw USDC base units (6 decimals).
    """

    def balance_of(self, owner: str) -> int:
        ...

    def allowance(self, owner: str, spender: str) -> int:
        ...

    def approve(self, spender: str, amount: int) -> str:
        """Send an approve transaction from the signing account. Returns the tx hash."""
        ...

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        ...

    def set_approval_for_all(self, operator: str, approved: bool) -> str:
        """Send a setApprovalForAll transaction from the signing account. Returns the tx hash."""
        ...

    def has_code(self, address: str) -> bool:
        """True when the address is a contract (e.g. a Safe) rather than a key-held account."""
        ...


def to_base_units(amount_usd: Decimal) -> int:
    """Dollar amount -> USDC base units, truncated."""
    return int(amount_usd * 10**USDC_DECIMALS)


def from_base_units(units: int) -> Decimal:
    return Decimal(units) / (10**USDC_DECIMALS)


class Web3ChainClient:
    """
    ChainClient backed by web3.py over HTTP RPC. Transactions are signed locally
    with the EOA key and waited on until mined.
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str = "",
        chain_id: int = 137,
        usdc_address: str = USDC_ADDRESS,
        ctf_address: str = CTF_ADDRESS,
        timeout_sec: float = 10.0,
    ) -> None:
        self._w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_sec}))
        # Polygon is a PoA chain
        self._w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self._chain_id = chain_id
        self._private_key = private_key
        self._account = self._w3.eth.account.from_key(private_key) if private_key else None
        self._usdc = self._w3.eth.contract(
            address=Web3.to_checksum_address(usdc_address), abi=ERC20_ABI,
        )
        self._ctf = self._w3.eth.contract(
            address=Web3.to_checksum_address(ctf_address), abi=ERC1155_ABI,
        )

    # -- Reads --

    def balance_of(self, owner: str) -> int:
        return self._call(self._usdc.functions.balanceOf(Web3.to_checksum_address(owner)), "balanceOf")

    def allowance(self, owner: str, spender: str) -> int:
        fn = self._usdc.functions.allowance(
            Web3.to_checksum_address(owner), Web3.to_checksum_address(spender),
        )
        return self._call(fn, "allowance")

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        fn = self._ctf.functions.isApprovedForAll(
            Web3.to_checksum_address(owner), Web3.to_checksum_address(operator),
        )
        return bool(self._call(fn, "isApprovedForAll"))

    def has_code(self, address: str) -> bool:
        try:
            code = self._w3.eth.get_code(Web3.to_checksum_address(address))
        except Exception as e:
            raise ChainCallFailed(f"get_code({address}) failed: {e}") from e
        return len(code) > 0

    # -- Writes --

    def approve(self, spender: str, amount: int) -> str:
        fn = self._usdc.functions.approve(Web3.to_checksum_address(spender), amount)
        return self._transact(fn, "approve")

    def set_approval_for_all(self, operator: str, approved: bool) -> str:
        fn = self._ctf.functions.setApprovalForAll(Web3.to_checksum_address(operator), approved)
        return self._transact(fn, "setApprovalForAll")

    # -- Internals --

    @staticmethod
    def _call(fn, name: str):
        try:
            return fn.call()
        except Exception as e:
            raise ChainCallFailed(f"{name} call failed: {e}") from e

    def _transact(self, fn, name: str) -> str:
        if self._account is None:
            raise ChainCallFailed(f"{name}: no private key configured, cannot send transactions")
        try:
            tx = fn.build_transaction({
                "from": self._account.address,
                "nonce": self._w3.eth.get_transaction_count(self._account.address),
                "chainId": self._chain_id,
            })
            signed = self._w3.eth.account.sign_transaction(tx, self._private_key)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=_RECEIPT_TIMEOUT_SEC)
        except Exception as e:
            raise ChainCallFailed(f"{name} transaction failed: {e}") from e

        if receipt.get("status") != 1:
            raise ChainCallFailed(f"{name} transaction reverted: {tx_hash.hex()}")
        logger.debug("%s mined in block %s: %s", name, receipt.get("blockNumber"), tx_hash.hex())
        return tx_hash.hex()
