"""
EIP-712 order signing for the CTF exchange.

One sign() call builds one order record with a fresh salt and nonce and signs it
with the EOA key. The maker is the funding wallet (proxy or Safe), the signer is
the EOA, the taker is the zero address (open order).
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Any

from eth_account import Account
from web3 import Web3

from client.chain import EXCHANGE_ADDRESS
from scanner.models import Side

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DOMAIN_NAME = "Polymarket CTF Exchange"
DOMAIN_VERSION = "1"
# Signature type 0 = order signed directly by an EOA key
SIGNATURE_TYPE_EOA = 0
MIN_EXPIRATION_SEC = 300
MAX_EXPIRATION_SEC = 3600
_AMOUNT_SCALE = Decimal(10**6)

ORDER_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Order": [
        {"name": "salt", "type": "uint256"},
        {"name": "maker", "type": "address"},
        {"name": "signer", "type": "address"},
        {"name": "taker", "type": "address"},
        {"name": "tokenId", "type": "uint256"},
        {"name": "makerAmount", "type": "uint256"},
        {"name": "takerAmount", "type": "uint256"},
        {"name": "expiration", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "feeRateBps", "type": "uint256"},
        {"name": "side", "type": "uint8"},
        {"name": "signatureType", "type": "uint8"},
    ],
}


class SigningFailure(Exception):
    """Raised when an order cannot be built or signed. Fatal for that leg only."""
    pass


@dataclass(frozen=True)
class OrderRecord:
    salt: int
    maker: str
    signer: str
    taker: str
    token_id: int
    maker_amount: int
    taker_amount: int
    expiration: int
    nonce: int
    fee_rate_bps: int
    side: Side
    signature_type: int = SIGNATURE_TYPE_EOA

    def to_message(self) -> dict[str, Any]:
        """Typed-data message, field names as in the exchange contract."""
        return {
            "salt": self.salt,
            "maker": self.maker,
            "signer": self.signer,
            "taker": self.taker,
            "tokenId": self.token_id,
            "makerAmount": self.maker_amount,
            "takerAmount": self.taker_amount,
            "expiration": self.expiration,
            "nonce": self.nonce,
            "feeRateBps": self.fee_rate_bps,
            "side": self.side.code,
            "signatureType": self.signature_type,
        }


@dataclass(frozen=True)
class SignedOrder:
    order: OrderRecord
    signature: str          # 0x-prefixed, 65 bytes
    asset_id: str = ""      # external token identifier the order was built from

    def to_payload(self) -> dict[str, Any]:
        """JSON body for order submission. Integers as strings, side as BUY/SELL."""
        o = self.order
        return {
            "salt": str(o.salt),
            "maker": o.maker,
            "signer": o.signer,
            "taker": o.taker,
            "tokenId": str(o.token_id),
            "makerAmount": str(o.maker_amount),
            "takerAmount": str(o.taker_amount),
            "side": o.side.value,
            "feeRateBps": str(o.fee_rate_bps),
            "nonce": str(o.nonce),
            "expiration": str(o.expiration),
            "signature": self.signature,
            "signatureType": o.signature_type,
        }


def token_id_to_int(token_id: str) -> int:
    """
    Outcome token identifier -> uint256.
    CLOB token ids are decimal strings; 0x-hex is accepted too. Anything else is hashed.
    """
    token_id = token_id.strip()
    if token_id.isdigit():
        return int(token_id)
    if token_id.lower().startswith("0x"):
        try:
            return int(token_id, 16)
        except ValueError:
            pass
    return int.from_bytes(Web3.keccak(text=token_id), "big")


def order_amounts(side: Side, price: Decimal, size: Decimal) -> tuple[int, int]:
    """
    (maker_amount, taker_amount) in 6-decimal base units.
    BUY: maker gives price*size USDC, receives size shares. SELL is the reverse.
    """
    notional = _to_units(price * size)
    shares = _to_units(size)
    if side is Side.BUY:
        return notional, shares
    return shares, notional


def _to_units(amount: Decimal) -> int:
    return int((amount * _AMOUNT_SCALE).to_integral_value(rounding=ROUND_FLOOR))


class _NonceSource:
    """Millisecond timestamps, bumped so consecutive values never repeat."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(int(time.time() * 1000), self._last + 1)
            return self._last


class OrderSigner:
    """
    Signs exchange orders with an EOA key on behalf of a maker wallet.
    The typed-data domain (name, version, chain id, exchange) is fixed per instance.
    """

    def __init__(
        self,
        private_key: str,
        maker: str,
        chain_id: int = 137,
        exchange_address: str = EXCHANGE_ADDRESS,
        expiration_sec: int = MIN_EXPIRATION_SEC,
        fee_rate_bps: int = 0,
    ) -> None:
        if not MIN_EXPIRATION_SEC <= expiration_sec <= MAX_EXPIRATION_SEC:
            raise ValueError(
                f"expiration_sec must be within {MIN_EXPIRATION_SEC}-{MAX_EXPIRATION_SEC}, "
                f"got {expiration_sec}"
            )
        self._account = Account.from_key(private_key)
        self._maker = Web3.to_checksum_address(maker) if maker else self._account.address
        self._expiration_sec = expiration_sec
        self._fee_rate_bps = fee_rate_bps
        self._nonces = _NonceSource()
        self._domain = {
            "name": DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": Web3.to_checksum_address(exchange_address),
        }

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def maker(self) -> str:
        return self._maker

    def typed_data(self, order: OrderRecord) -> dict[str, Any]:
        return {
            "types": ORDER_TYPES,
            "primaryType": "Order",
            "domain": self._domain,
            "message": order.to_message(),
        }

    def build_order(self, token_id: str, side: Side, price: Decimal, size: Decimal) -> OrderRecord:
        if price <= 0 or price > 1:
            raise SigningFailure(f"price out of range (0, 1]: {price}")
        if size <= 0:
            raise SigningFailure(f"size must be positive: {size}")
        maker_amount, taker_amount = order_amounts(side, price, size)
        if maker_amount <= 0 or taker_amount <= 0:
            raise SigningFailure(f"order amounts round to zero: price={price} size={size}")

        return OrderRecord(
            salt=secrets.randbits(64),
            maker=self._maker,
            signer=self._account.address,
            taker=ZERO_ADDRESS,
            token_id=token_id_to_int(token_id),
            maker_amount=maker_amount,
            taker_amount=taker_amount,
            expiration=int(time.time()) + self._expiration_sec,
            nonce=self._nonces.next(),
            fee_rate_bps=self._fee_rate_bps,
            side=side,
        )

    def sign(self, token_id: str, side: Side, price: Decimal, size: Decimal) -> SignedOrder:
        """Build and sign one order. Raises SigningFailure."""
        order = self.build_order(token_id, side, price, size)
        try:
            signed = Account.sign_typed_data(self._account.key, full_message=self.typed_data(order))
        except Exception as e:
            raise SigningFailure(f"EIP-712 signing failed for {token_id[:16]}: {e}") from e

        signature = "0x" + bytes(signed.signature).hex()
        logger.debug(
            "Signed %s %s @ %s x %s (nonce=%d)",
            side.value, token_id[:16], price, size, order.nonce,
        )
        return SignedOrder(order=order, signature=signature, asset_id=token_id)
