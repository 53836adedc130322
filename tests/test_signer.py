"""
Unit tests for executor/signer.py -- order record construction and EIP-712 signatures.
"""

import time
from decimal import Decimal

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from client.chain import EXCHANGE_ADDRESS
from executor.signer import (
    DOMAIN_NAME,
    OrderSigner,
    SigningFailure,
    ZERO_ADDRESS,
    order_amounts,
    token_id_to_int,
)
from scanner.models import Side

TEST_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
PROXY = "0x2222222222222222222222222222222222222222"
TOKEN = "71321045679252212594626385532706912750332728571942532289631379312455583992563"


def _signer(**kwargs):
    return OrderSigner(TEST_KEY, maker=PROXY, **kwargs)


class TestOrderAmounts:
    def test_buy(self):
        """BUY 10 @ 0.45: pay 4.5 USDC, receive 10 shares (6 decimals)."""
        assert order_amounts(Side.BUY, Decimal("0.45"), Decimal("10")) == (4_500_000, 10_000_000)

    def test_sell_is_reversed(self):
        assert order_amounts(Side.SELL, Decimal("0.45"), Decimal("10")) == (10_000_000, 4_500_000)

    def test_truncates_sub_unit(self):
        assert order_amounts(Side.BUY, Decimal("0.3333333"), Decimal("1")) == (333_333, 1_000_000)


class TestTokenIdToInt:
    def test_decimal_string(self):
        assert token_id_to_int("12345") == 12345

    def test_hex_string(self):
        assert token_id_to_int("0x1f") == 31

    def test_other_strings_hashed(self):
        expected = int.from_bytes(Web3.keccak(text="eth-up"), "big")
        assert token_id_to_int("eth-up") == expected

    def test_deterministic(self):
        assert token_id_to_int(TOKEN) == token_id_to_int(TOKEN)


class TestBuildOrder:
    def test_fields(self):
        signer = _signer(expiration_sec=600, fee_rate_bps=5)
        before = int(time.time())
        order = signer.build_order(TOKEN, Side.BUY, Decimal("0.45"), Decimal("10"))

        assert order.maker == Web3.to_checksum_address(PROXY)
        assert order.signer == Account.from_key(TEST_KEY).address
        assert order.taker == ZERO_ADDRESS
        assert order.token_id == int(TOKEN)
        assert order.maker_amount == 4_500_000
        assert order.taker_amount == 10_000_000
        assert order.fee_rate_bps == 5
        assert order.side is Side.BUY
        assert order.signature_type == 0
        assert before + 600 <= order.expiration <= int(time.time()) + 600
        assert 0 <= order.salt < 2**64

    def test_salt_and_nonce_unique(self):
        signer = _signer()
        orders = [signer.build_order(TOKEN, Side.BUY, Decimal("0.5"), Decimal("2")) for _ in range(20)]
        assert len({o.salt for o in orders}) == 20
        nonces = [o.nonce for o in orders]
        assert nonces == sorted(nonces)
        assert len(set(nonces)) == 20

    def test_maker_defaults_to_signer(self):
        signer = OrderSigner(TEST_KEY, maker="")
        assert signer.maker == signer.address

    def test_invalid_price(self):
        with pytest.raises(SigningFailure):
            _signer().build_order(TOKEN, Side.BUY, Decimal("0"), Decimal("10"))
        with pytest.raises(SigningFailure):
            _signer().build_order(TOKEN, Side.BUY, Decimal("1.01"), Decimal("10"))

    def test_invalid_size(self):
        with pytest.raises(SigningFailure):
            _signer().build_order(TOKEN, Side.BUY, Decimal("0.5"), Decimal("0"))

    def test_expiration_bounds(self):
        with pytest.raises(ValueError):
            _signer(expiration_sec=60)
        with pytest.raises(ValueError):
            _signer(expiration_sec=7200)


class TestSign:
    def test_signature_recovers_signer(self):
        signer = _signer()
        signed = signer.sign(TOKEN, Side.BUY, Decimal("0.45"), Decimal("10"))

        message = encode_typed_data(full_message=signer.typed_data(signed.order))
        recovered = Account.recover_message(message, signature=signed.signature)
        assert recovered == signer.address

    def test_signature_is_65_bytes_hex(self):
        signed = _signer().sign(TOKEN, Side.BUY, Decimal("0.45"), Decimal("10"))
        assert signed.signature.startswith("0x")
        assert len(bytes.fromhex(signed.signature[2:])) == 65

    def test_domain(self):
        signer = _signer(chain_id=137)
        order = signer.build_order(TOKEN, Side.BUY, Decimal("0.45"), Decimal("10"))
        domain = signer.typed_data(order)["domain"]
        assert domain["name"] == DOMAIN_NAME
        assert domain["version"] == "1"
        assert domain["chainId"] == 137
        assert domain["verifyingContract"] == Web3.to_checksum_address(EXCHANGE_ADDRESS)

    def test_different_chain_changes_signature_domain(self):
        """Same order under another chain id does not recover to the signer."""
        polygon = _signer(chain_id=137)
        other = _signer(chain_id=80002)
        signed = polygon.sign(TOKEN, Side.BUY, Decimal("0.45"), Decimal("10"))
        message = encode_typed_data(full_message=other.typed_data(signed.order))
        assert Account.recover_message(message, signature=signed.signature) != polygon.address

    def test_each_call_is_fresh(self):
        signer = _signer()
        a = signer.sign(TOKEN, Side.BUY, Decimal("0.45"), Decimal("10"))
        b = signer.sign(TOKEN, Side.BUY, Decimal("0.45"), Decimal("10"))
        assert a.order.salt != b.order.salt
        assert a.signature != b.signature


class TestPayload:
    def test_wire_format(self):
        signed = _signer().sign(TOKEN, Side.BUY, Decimal("0.45"), Decimal("10"))
        payload = signed.to_payload()
        assert payload["side"] == "BUY"
        assert payload["tokenId"] == TOKEN
        assert payload["makerAmount"] == "4500000"
        assert payload["takerAmount"] == "10000000"
        assert payload["taker"] == ZERO_ADDRESS
        assert payload["feeRateBps"] == "0"
        assert payload["signatureType"] == 0
        assert payload["signature"] == signed.signature
        for key in ("salt", "nonce", "expiration"):
            assert isinstance(payload[key], str)
            assert payload[key].isdigit()
