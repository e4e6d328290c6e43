"""
Settings for the exchange client, read from HL_* environment variables.

A .env file in the working directory is loaded first; real environment
variables win over it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass

from dotenv import load_dotenv
from eth_account import Account
from eth_account.signers.local import LocalAccount

from hlexchange.core.utils import API_BASES, infer_environment, is_hex
from hlexchange.execution.actions import TIME_IN_FORCE
from hlexchange.infra.logging_cfg import log_event

load_dotenv()

log = logging.getLogger("hlexchange")

ENVIRONMENTS = ("mainnet", "testnet")
_SECRETS = ("private_key", "agent_key")


def env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    return default if raw is None or raw == "" else int(raw)


def env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    return default if raw is None or raw == "" else float(raw)


def env_str(key: str) -> str | None:
    return os.getenv(key) or None


@dataclass(frozen=True)
class Settings:
    environment: str
    base_url: str

    # credentials: agent_key signs on behalf of user_address when set
    private_key: str | None
    agent_key: str | None
    user_address: str | None
    vault_address: str | None

    http_timeout: float
    meta_ttl_sec: float
    expires_after_ms: int  # 0 = no expiry attached to L1 actions
    default_tif: str
    serialize_submissions: bool

    log_level: str
    log_file: str | None
    metrics_port: int  # 0 = no metrics server

    @property
    def is_mainnet(self) -> bool:
        return self.environment == "mainnet"

    def dump(self) -> dict:
        """Settings as a dict with secrets masked, for logging."""
        data = asdict(self)
        for name in _SECRETS:
            if data[name]:
                data[name] = "***"
        return data

    @classmethod
    def load(cls) -> "Settings":
        base_url = env_str("HL_BASE_URL")
        environment = env_str("HL_ENVIRONMENT") or (infer_environment(base_url) if base_url else "testnet")
        if not base_url:
            base_url = API_BASES.get(environment, API_BASES["testnet"])

        cfg = cls(
            environment=environment,
            base_url=base_url.rstrip("/"),
            private_key=env_str("HL_PRIVATE_KEY"),
            agent_key=env_str("HL_AGENT_KEY"),
            user_address=env_str("HL_USER_ADDRESS"),
            vault_address=env_str("HL_VAULT_ADDRESS"),
            http_timeout=env_float("HL_HTTP_TIMEOUT", 10.0),
            meta_ttl_sec=env_float("HL_META_TTL_SEC", 300.0),
            expires_after_ms=env_int("HL_EXPIRES_AFTER_MS", 0),
            default_tif=os.getenv("HL_DEFAULT_TIF", "Ioc"),
            serialize_submissions=env_bool("HL_SERIALIZE_SUBMISSIONS", False),
            log_level=os.getenv("HL_LOG_LEVEL", "INFO"),
            log_file=env_str("HL_LOG_FILE"),
            metrics_port=env_int("HL_METRICS_PORT", 0),
        )
        cfg._validate()
        log_event(
            log, "config_loaded",
            environment=cfg.environment, base_url=cfg.base_url, vault_address=cfg.vault_address,
            expires_after_ms=cfg.expires_after_ms, meta_ttl_sec=cfg.meta_ttl_sec,
            signer="agent" if cfg.agent_key else ("master" if cfg.private_key else None),
        )
        return cfg

    def resolve_signer(self) -> LocalAccount:
        """The wallet that signs actions: the agent key if set, else the master key."""
        key = self.agent_key or self.private_key
        if not key:
            raise RuntimeError("No signing key: set HL_AGENT_KEY or HL_PRIVATE_KEY")
        return Account.from_key(key)

    def resolve_user_signer(self) -> LocalAccount:
        """The master wallet. Withdrawals and transfers are never accepted from an agent."""
        if not self.private_key:
            raise RuntimeError("Transfers and withdrawals are signed by the master account: set HL_PRIVATE_KEY")
        return Account.from_key(self.private_key)

    def resolve_account(self) -> str:
        """The account actions apply to. An agent key is never the account itself."""
        if self.user_address:
            return self.user_address
        if self.private_key:
            return Account.from_key(self.private_key).address
        raise RuntimeError("No account address: set HL_USER_ADDRESS or HL_PRIVATE_KEY")

    def _validate(self) -> None:
        if self.environment not in ENVIRONMENTS:
            raise ValueError(f"HL_ENVIRONMENT must be one of {ENVIRONMENTS}, got {self.environment!r}")
        if self.http_timeout <= 0:
            raise ValueError("HL_HTTP_TIMEOUT must be > 0")
        if self.meta_ttl_sec <= 0:
            raise ValueError("HL_META_TTL_SEC must be > 0")
        if self.expires_after_ms < 0:
            raise ValueError("HL_EXPIRES_AFTER_MS must be >= 0")
        if self.default_tif not in TIME_IN_FORCE:
            raise ValueError(f"HL_DEFAULT_TIF must be one of {TIME_IN_FORCE}, got {self.default_tif!r}")
        for name in ("vault_address", "user_address"):
            value = getattr(self, name)
            if value and not is_hex(value, 20):
                raise ValueError(f"HL_{name.upper()} must be a 20-byte hex address")
        if self.agent_key and not self.user_address and not self.private_key:
            raise ValueError("HL_AGENT_KEY needs HL_USER_ADDRESS (or HL_PRIVATE_KEY) for the master account")
        if infer_environment(self.base_url) != self.environment:
            log_event(
                log, "config_environment_mismatch", level=logging.WARNING,
                base_url=self.base_url, environment=self.environment,
            )
