"""
Authentication: API credentials (L2) and per-request HMAC headers for the CLOB.
"""

from __future__ import annotations

import logging
import time

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds
from py_clob_client.headers.headers import (
    POLY_ADDRESS,
    POLY_API_KEY,
    POLY_PASSPHRASE,
    POLY_SIGNATURE,
    POLY_TIMESTAMP,
)
from py_clob_client.signing.hmac import build_hmac_signature

from config import Config

logger = logging.getLogger(__name__)


def build_public_clob_client(cfg: Config) -> ClobClient:
    """Level-0 client: order books and prices only, no key needed."""
    return ClobClient(host=cfg.clob_host, chain_id=cfg.chain_id)


def resolve_api_creds(cfg: Config) -> ApiCreds:
    """
    API credentials for authenticated endpoints.
    Uses POLY_API_* from config when all three are set, otherwise derives them
    with the private key (creates on first use, derives afterwards).
    """
    if cfg.has_api_creds:
        return ApiCreds(
            api_key=cfg.poly_api_key,
            api_secret=cfg.poly_api_secret,
            api_passphrase=cfg.poly_api_passphrase,
        )
    if not cfg.private_key:
        raise ValueError("PRIVATE_KEY or POLY_API_KEY/SECRET/PASSPHRASE required for order submission")

    client = ClobClient(host=cfg.clob_host, chain_id=cfg.chain_id, key=cfg.private_key)
    creds: ApiCreds = client.create_or_derive_api_creds()
    logger.info("Derived CLOB API credentials for key %s...", creds.api_key[:8])
    return creds


def l2_headers(
    creds: ApiCreds,
    address: str,
    method: str,
    path: str,
    body: str | None = None,
    timestamp: int | None = None,
) -> dict[str, str]:
    """
    Headers for an authenticated CLOB request.
    Signature = HMAC-SHA256(base64-decoded secret, timestamp + method + path + body).
    The body must be the exact string sent on the wire.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    signature = build_hmac_signature(creds.api_secret, ts, method, path, body)
    return {
        POLY_ADDRESS: address,
        POLY_SIGNATURE: signature,
        POLY_TIMESTAMP: str(ts),
        POLY_API_KEY: creds.api_key,
        POLY_PASSPHRASE: creds.api_passphrase,
    }
