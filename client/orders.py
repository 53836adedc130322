"""
Order submission to the CLOB REST endpoint (POST /order, L2-authenticated).

No retries: each leg gets exactly one submission attempt. In read-only mode the
signed payload is logged and never sent.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from py_clob_client.clob_types import ApiCreds

from client.auth import l2_headers

logger = logging.getLogger(__name__)

ORDER_PATH = "/order"
DEFAULT_TIMEOUT = 10.0


class OrderRejected(Exception):
    """The exchange answered and refused the order (non-2xx or success=false)."""

    def __init__(self, reason: str, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class OrderNetworkError(Exception):
    """Transport failure: the order may or may not have reached the exchange."""
    pass


@dataclass(frozen=True)
class OrderAck:
    order_id: str
    simulated: bool = False
    status: str = ""


class OrderGateway:
    """
    Sends signed order payloads. One instance per process; the httpx.Client
    connection pool is reused across legs.
    """

    def __init__(
        self,
        host: str,
        creds: ApiCreds | None,
        address: str,
        read_only: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        http: httpx.Client | None = None,
    ) -> None:
        if not read_only and creds is None:
            raise ValueError("API credentials required when read_only is disabled")
        self._host = host.rstrip("/")
        self._creds = creds
        self._address = address
        self._read_only = read_only
        self._http = http or httpx.Client(timeout=timeout)

    @property
    def read_only(self) -> bool:
        return self._read_only

    def submit(self, payload: dict[str, Any]) -> OrderAck:
        """
        Submit one signed order. Returns the ack on acceptance.
        Raises OrderRejected or OrderNetworkError.
        """
        body = json.dumps(payload, separators=(",", ":"))

        if self._read_only:
            logger.info("[READ-ONLY] Would POST %s: %s", ORDER_PATH, body)
            return OrderAck(order_id=f"sim-{payload.get('salt', '')}", simulated=True, status="simulated")

        headers = l2_headers(self._creds, self._address, "POST", ORDER_PATH, body)
        headers["Content-Type"] = "application/json"

        try:
            resp = self._http.post(f"{self._host}{ORDER_PATH}", content=body, headers=headers)
        except httpx.HTTPError as e:
            raise OrderNetworkError(f"POST {ORDER_PATH} failed: {e}") from e

        data = _json_or_empty(resp)
        if not resp.is_success:
            reason = data.get("error") or data.get("errorMsg") or resp.text or resp.reason_phrase
            raise OrderRejected(f"HTTP {resp.status_code}: {reason}", status_code=resp.status_code)
        if data.get("success") is False:
            raise OrderRejected(data.get("errorMsg") or "success=false", status_code=resp.status_code)

        order_id = data.get("orderID") or data.get("orderId") or data.get("id") or ""
        return OrderAck(order_id=order_id, status=data.get("status", ""))

    def close(self) -> None:
        self._http.close()


def _json_or_empty(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
