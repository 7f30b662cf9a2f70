# src/p2p_recon/config.py
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol

import yaml
from dotenv import load_dotenv

log = logging.getLogger("p2p_recon.config")

DEFAULT_CONFIG_PATH = Path("config") / "recon.yaml"

Listener = Callable[[str, "AppConfig"], None]


# =============================================================================
# Small utils
# =============================================================================

def _get_env(env: Mapping[str, str], name: str) -> Optional[str]:
    v = env.get(name)
    if v is None:
        return None
    v = v.strip()
    return v if v else None


def _as_bool(v: Any, default: bool = False) -> bool:
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Config root must be a mapping (dict).")
    return data


# =============================================================================
# Config sections
# =============================================================================

@dataclass(frozen=True)
class Credentials:
    use_api: bool = False
    api_key: Optional[str] = None
    api_secret: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.use_api and self.api_key and self.api_secret)

    @property
    def status(self) -> str:
        if self.is_configured:
            return "configured"
        if self.use_api and self.api_key:
            return "partial"
        return "not_configured"

    @property
    def status_text(self) -> str:
        return {
            "configured": "API Key configured",
            "partial": "API Key saved (Secret needed)",
        }.get(self.status, "Not connected")


@dataclass(frozen=True)
class BybitSettings:
    testnet: bool = False
    timeout_sec: float = 10.0
    max_retries: int = 3
    retry_delay_sec: float = 5.0


@dataclass(frozen=True)
class SyncSettings:
    pages: int = 1
    page_size: int = 20
    detail_workers: int = 4
    # display path refreshes from the API before every query
    refresh_on_fetch: bool = True


# =============================================================================
# AppConfig
# =============================================================================

class AppConfig:
    """
    Single settings object for the whole backend.

    Every mutation goes through one notification channel: subscribers get
    (topic, config) after the change is applied.
    """

    def __init__(
        self,
        *,
        credentials: Credentials | None = None,
        bybit: BybitSettings | None = None,
        sync: SyncSettings | None = None,
        pg_dsn: Optional[str] = None,
        operator: str = "operator",
        log_level: str = "INFO",
    ):
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

        self._credentials = credentials or Credentials()
        self.bybit = bybit or BybitSettings()
        self.sync = sync or SyncSettings()
        self.pg_dsn = pg_dsn
        self.operator = operator
        self.log_level = log_level

    # ------------------------------------------------------------------
    # observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, topic: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            try:
                cb(topic, self)
            except Exception:
                log.exception("Config listener failed (topic=%s)", topic)

    # ------------------------------------------------------------------
    # credentials
    # ------------------------------------------------------------------

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    def set_credentials(
        self,
        *,
        use_api: Optional[bool] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
    ) -> Credentials:
        """Only provided values change."""
        cur = self._credentials
        self._credentials = Credentials(
            use_api=cur.use_api if use_api is None else bool(use_api),
            api_key=cur.api_key if api_key is None else (api_key or None),
            api_secret=cur.api_secret if api_secret is None else (api_secret or None),
        )
        log.info("Credentials updated: %s", self._credentials.status)
        self._notify("credentials")
        return self._credentials

    def clear_credentials(self) -> None:
        self._credentials = Credentials()
        log.info("Credentials cleared")
        self._notify("credentials")

    def update_bybit(self, **changes: Any) -> BybitSettings:
        self.bybit = replace(self.bybit, **changes)
        self._notify("bybit")
        return self.bybit

    def update_sync(self, **changes: Any) -> SyncSettings:
        self.sync = replace(self.sync, **changes)
        self._notify("sync")
        return self.sync

    def set_operator(self, operator: str) -> None:
        self.operator = operator
        self._notify("operator")


# =============================================================================
# Providers (collaborator interfaces)
# =============================================================================

class CredentialsProvider(Protocol):
    def get_credentials(self) -> Credentials: ...


class IdentityProvider(Protocol):
    def current_identity(self) -> str: ...


@dataclass
class ConfigCredentialsProvider:
    config: AppConfig

    def get_credentials(self) -> Credentials:
        return self.config.credentials


@dataclass
class ConfigIdentityProvider:
    config: AppConfig

    def current_identity(self) -> str:
        return self.config.operator


@dataclass
class StaticIdentityProvider:
    identity: str = field(default="operator")

    def current_identity(self) -> str:
        return self.identity


# =============================================================================
# Loading
# =============================================================================

def load_config(
    path: str | Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    dotenv: bool = True,
) -> AppConfig:
    """
    YAML file (optional) + environment overrides.

    Env: BYBIT_USE_API, BYBIT_API_KEY, BYBIT_API_SECRET, BYBIT_TESTNET,
         PG_DSN, RECON_OPERATOR, LOG_LEVEL.
    """
    if dotenv and env is None:
        load_dotenv()
    env = os.environ if env is None else env

    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    raw: dict[str, Any] = {}
    if cfg_path.exists():
        raw = _load_yaml(cfg_path)
        log.info("Config loaded: %s", cfg_path)
    elif path:
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    b = raw.get("bybit", {}) or {}
    s = raw.get("sync", {}) or {}

    use_api = _get_env(env, "BYBIT_USE_API")
    testnet = _get_env(env, "BYBIT_TESTNET")

    credentials = Credentials(
        use_api=_as_bool(use_api if use_api is not None else b.get("use_api"), False),
        api_key=_get_env(env, "BYBIT_API_KEY") or b.get("api_key") or None,
        api_secret=_get_env(env, "BYBIT_API_SECRET") or b.get("api_secret") or None,
    )

    bybit = BybitSettings(
        testnet=_as_bool(testnet if testnet is not None else b.get("testnet"), False),
        timeout_sec=float(b.get("timeout_sec", 10.0)),
        max_retries=int(b.get("max_retries", 3)),
        retry_delay_sec=float(b.get("retry_delay_sec", 5.0)),
    )

    sync = SyncSettings(
        pages=int(s.get("pages", 1)),
        page_size=int(s.get("page_size", 20)),
        detail_workers=int(s.get("detail_workers", 4)),
        refresh_on_fetch=_as_bool(s.get("refresh_on_fetch"), True),
    )

    return AppConfig(
        credentials=credentials,
        bybit=bybit,
        sync=sync,
        pg_dsn=_get_env(env, "PG_DSN") or raw.get("pg_dsn") or None,
        operator=_get_env(env, "RECON_OPERATOR") or str(raw.get("operator") or "operator"),
        log_level=_get_env(env, "LOG_LEVEL") or str(raw.get("log_level") or "INFO"),
    )
