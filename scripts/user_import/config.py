"""Run configuration from environment variables and command-line overrides.

Every option can come from the environment (or a .env file); values given
on the command line win. The client secret may be a cloud secret reference
(aws-secret://name#key, gcp-secret://name), resolved at load time.
"""

from __future__ import annotations

import codecs
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from scripts.user_import.secrets import SecretResolutionError, resolve_client_secret

DEFAULT_REJECTS_FILE = "rejects.csv"
DEFAULT_AUTH_HOST = "auth.pingone.com"
DEFAULT_PLATFORM_HOST = "api.pingone.com"
DEFAULT_NUM_THREADS = 20
MIN_NUM_THREADS = 1
MAX_NUM_THREADS = 2000
DEFAULT_RATE_PER_SECOND = 100
DEFAULT_REQUEST_TIMEOUT = 30.0

# config field -> environment variable
ENV_VARS: dict[str, str] = {
    "csv_file": "USER_IMPORT_CSV_FILE",
    "rejects_file": "USER_IMPORT_REJECTS_FILE",
    "environment_id": "PINGONE_ENVIRONMENT_ID",
    "population_id": "PINGONE_POPULATION_ID",
    "client_id": "PINGONE_CLIENT_ID",
    "client_secret": "PINGONE_CLIENT_SECRET",
    "auth_host": "PINGONE_AUTH_HOST",
    "platform_host": "PINGONE_PLATFORM_HOST",
    "force_password_change": "USER_IMPORT_FORCE_PASSWORD_CHANGE",
    "num_threads": "USER_IMPORT_NUM_THREADS",
    "rate_per_second": "USER_IMPORT_RATE_PER_SECOND",
    "request_timeout": "USER_IMPORT_REQUEST_TIMEOUT",
    "encoding": "USER_IMPORT_ENCODING",
}


class ConfigError(ValueError):
    """Invalid or incomplete run configuration. Fatal for the run."""


@dataclass(frozen=True)
class ImportConfig:
    csv_file: Path
    environment_id: str
    population_id: str
    client_id: str = ""
    client_secret: str = ""
    rejects_file: Path = Path(DEFAULT_REJECTS_FILE)
    auth_host: str = DEFAULT_AUTH_HOST
    platform_host: str = DEFAULT_PLATFORM_HOST
    force_password_change: bool = False
    num_threads: int = DEFAULT_NUM_THREADS
    rate_per_second: int = DEFAULT_RATE_PER_SECOND
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    encoding: str = "utf-8"
    dry_run: bool = False

    @property
    def token_url(self) -> str:
        return f"https://{self.auth_host}/{self.environment_id}/as/token"

    @property
    def users_url(self) -> str:
        return f"https://{self.platform_host}/v1/environments/{self.environment_id}/users"

    def __repr__(self) -> str:
        # Keep the secret out of logs and tracebacks
        return (
            f"ImportConfig(csv_file={str(self.csv_file)!r}, "
            f"environment_id={self.environment_id!r}, "
            f"population_id={self.population_id!r}, "
            f"num_threads={self.num_threads}, "
            f"rate_per_second={self.rate_per_second}, "
            f"dry_run={self.dry_run})"
        )

    def validate(self) -> None:
        missing = [
            name for name in ("environment_id", "population_id")
            if not getattr(self, name)
        ]
        if not self.dry_run:
            missing += [
                name for name in ("client_id", "client_secret")
                if not getattr(self, name)
            ]
        if str(self.csv_file) in ("", "."):
            missing.insert(0, "csv_file")
        if missing:
            raise ConfigError(
                "Missing required settings: "
                + ", ".join(f"{m} ({ENV_VARS[m]})" for m in missing)
            )
        if not MIN_NUM_THREADS <= self.num_threads <= MAX_NUM_THREADS:
            raise ConfigError(
                f"num_threads must be between {MIN_NUM_THREADS} and "
                f"{MAX_NUM_THREADS}, got {self.num_threads}"
            )
        if self.rate_per_second < 1:
            raise ConfigError(f"rate_per_second must be at least 1, got {self.rate_per_second}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise ConfigError(
                f"Unknown encoding {self.encoding!r} ({ENV_VARS['encoding']})"
            ) from None


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _parse_number(name: str, raw: Any, kind: type) -> Any:
    try:
        return kind(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def load_config(overrides: Optional[Mapping[str, Any]] = None) -> ImportConfig:
    """Build and validate the run configuration.

    ``overrides`` holds command-line values keyed by config field name;
    None values fall back to the environment, then to the defaults.
    """
    load_dotenv()
    overrides = dict(overrides or {})

    def pick(name: str, default: Any = None) -> Any:
        value = overrides.get(name)
        if value is not None:
            return value
        env_value = os.environ.get(ENV_VARS[name], "")
        return env_value if env_value else default

    force = pick("force_password_change", False)
    if isinstance(force, str):
        force = _parse_bool(force)

    client_secret = pick("client_secret", "")
    if client_secret:
        try:
            client_secret = resolve_client_secret(client_secret)
        except SecretResolutionError as exc:
            raise ConfigError(
                f"Could not resolve client_secret ({ENV_VARS['client_secret']}): {exc}"
            ) from exc

    config = ImportConfig(
        csv_file=Path(pick("csv_file", "")),
        rejects_file=Path(pick("rejects_file", DEFAULT_REJECTS_FILE)),
        environment_id=pick("environment_id", ""),
        population_id=pick("population_id", ""),
        client_id=pick("client_id", ""),
        client_secret=client_secret,
        auth_host=pick("auth_host", DEFAULT_AUTH_HOST),
        platform_host=pick("platform_host", DEFAULT_PLATFORM_HOST),
        force_password_change=bool(force),
        num_threads=_parse_number("num_threads", pick("num_threads", DEFAULT_NUM_THREADS), int),
        rate_per_second=_parse_number(
            "rate_per_second", pick("rate_per_second", DEFAULT_RATE_PER_SECOND), int
        ),
        request_timeout=_parse_number(
            "request_timeout", pick("request_timeout", DEFAULT_REQUEST_TIMEOUT), float
        ),
        encoding=pick("encoding", "utf-8"),
        dry_run=bool(overrides.get("dry_run", False)),
    )
    config.validate()
    return config
