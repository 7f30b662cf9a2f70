# src/p2p_recon/core/errors.py
from __future__ import annotations


class ReconError(Exception):
    """Base class for every error raised by the reconciliation backend."""


class ConfigurationError(ReconError):
    """Missing or invalid credentials / settings. Recoverable: triggers demo mode."""


class TransportError(ReconError):
    """Network or HTTP level failure talking to the exchange."""


class RemoteError(TransportError):
    """
    Exchange answered, but with a non-zero application return code.
    Retried exactly like TransportError.
    """

    def __init__(self, ret_code: int | None, ret_msg: str | None, *, path: str = ""):
        self.ret_code = ret_code
        self.ret_msg = ret_msg or ""
        self.path = path
        super().__init__(f"Bybit {path} ret_code={ret_code} ret_msg={self.ret_msg}")


class OrderImportError(ReconError):
    """CSV payload produced zero valid orders."""


class NotFoundError(ReconError):
    """Requested order id is absent from every source."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")
