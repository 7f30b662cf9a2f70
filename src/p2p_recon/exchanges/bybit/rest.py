# src/p2p_recon/exchanges/bybit/rest.py
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Any, Mapping

import requests

from p2p_recon.core.errors import ConfigurationError, RemoteError, TransportError

BASE_URL = "https://api.bybit.com"
TESTNET_URL = "https://api-testnet.bybit.com"

P2P_ORDER_PATH = "/v5/p2p/order"
P2P_ORDER_DETAIL_PATH = "/v5/p2p/order-detail"

RECV_WINDOW = "5000"

log = logging.getLogger("p2p_recon.exchanges.bybit.rest")


def _ts_ms() -> int:
    return int(time.time() * 1000)


def canonical_query(params: Mapping[str, Any] | None) -> str:
    """Sorted `key=value` pairs joined with `&`. Values are NOT url-encoded."""
    p = params or {}
    return "&".join(f"{k}={p[k]}" for k in sorted(p))


def sign(
    *,
    api_key: str,
    api_secret: str,
    timestamp: int,
    params: Mapping[str, Any] | None = None,
    recv_window: str = RECV_WINDOW,
) -> str:
    """
    signature = HMAC_SHA256(secret, timestamp + api_key + recv_window + canonical_query)
    """
    payload = f"{timestamp}{api_key}{recv_window}{canonical_query(params)}"
    return hmac.new(api_secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


class BybitP2PREST:
    """
    Bybit P2P REST client (signed GET only), with fixed-delay retry.

    Credentials are validated here, not on first use.
    """

    def __init__(
        self,
        api_key: str | None,
        api_secret: str | None,
        *,
        testnet: bool = False,
        base_url: str | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 5.0,
    ):
        if not api_key or not api_secret:
            raise ConfigurationError("API key and secret are required")

        self.api_key = str(api_key)
        self.api_secret = str(api_secret)
        self.base_url = (base_url or (TESTNET_URL if testnet else BASE_URL)).rstrip("/")

        self.timeout = float(timeout)
        self.max_retries = max(0, int(max_retries))
        self.retry_delay = max(0.0, float(retry_delay))

        self.sess = requests.Session()

    # ---------------------------------------------------------------------
    # SIGN
    # ---------------------------------------------------------------------

    def _headers(self, params: Mapping[str, Any]) -> dict[str, str]:
        ts = _ts_ms()
        return {
            "X-BAPI-API-KEY": self.api_key,
            "X-BAPI-TIMESTAMP": str(ts),
            "X-BAPI-SIGN": sign(
                api_key=self.api_key,
                api_secret=self.api_secret,
                timestamp=ts,
                params=params,
            ),
            "X-BAPI-RECV-WINDOW": RECV_WINDOW,
            "Content-Type": "application/json",
        }

    # ---------------------------------------------------------------------
    # CORE REQUEST (WITH RETRY)
    # ---------------------------------------------------------------------

    def _request_once(self, path: str, params: dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self.sess.get(url, params=params, headers=self._headers(params), timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Bybit GET {path}: {e!r}") from e

        if r.status_code >= 400:
            raise TransportError(f"Bybit HTTP {r.status_code} GET {path}: {r.text[:500]}")

        try:
            payload = r.json()
        except ValueError as e:
            raise TransportError(f"Bybit GET {path}: non-JSON body {r.text[:200]!r}") from e

        if not isinstance(payload, dict):
            raise TransportError(f"Bybit GET {path}: unexpected payload type {type(payload).__name__}")

        code = payload.get("ret_code", payload.get("retCode"))
        if code not in (0, "0"):
            raise RemoteError(code, payload.get("ret_msg", payload.get("retMsg")), path=path)

        result = payload.get("result")
        if result is None:
            return {}
        if not isinstance(result, dict):
            raise TransportError(f"Bybit GET {path}: unexpected result type {type(result).__name__}")
        return result

    def _get(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        req_params = dict(params or {})
        attempts = self.max_retries + 1
        last_err: TransportError | None = None

        for attempt in range(1, attempts + 1):
            try:
                return self._request_once(path, req_params)
            except TransportError as e:
                last_err = e
                if attempt >= attempts:
                    break
                log.warning(
                    "Bybit request error (GET %s), retry %d/%d, sleep %.1fs | %s",
                    path, attempt, self.max_retries, self.retry_delay, e,
                )
                time.sleep(self.retry_delay)

        log.error("Bybit request failed after %d retries: GET %s | last_err=%r", self.max_retries, path, last_err)
        assert last_err is not None
        raise last_err

    # ---------------------------------------------------------------------
    # API METHODS
    # ---------------------------------------------------------------------

    def orders(self, *, page: int = 1, size: int = 20) -> dict:
        """One page of P2P orders: {"items": [...], "count"|"total": N}."""
        return self._get(P2P_ORDER_PATH, params={"page": int(page), "size": int(size)})

    def order_detail(self, order_id: str) -> dict:
        return self._get(P2P_ORDER_DETAIL_PATH, params={"orderId": str(order_id)})
