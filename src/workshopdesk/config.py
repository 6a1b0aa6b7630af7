from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"
    connect_timeout: int = 10
    statement_timeout_ms: int = 10_000


@dataclass(frozen=True)
class PaymentsConfig:
    mode: str = "simulated"
    gateway_url: str | None = None
    timeout: float = 15.0
    max_retries: int = 0
    retry_backoff: float = 1.0
    decline_rate: float = 0.0
    pending_rate: float = 0.0


@dataclass(frozen=True)
class NotificationsConfig:
    dedupe_window_seconds: int = 0


@dataclass(frozen=True)
class WebConfig:
    host: str = "127.0.0.1"
    port: int = 5000
    secret_key: str = "change-this-secret-key-in-production"


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    db: DbConfig | None
    payments: PaymentsConfig = field(default_factory=PaymentsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    web: WebConfig = field(default_factory=WebConfig)


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    if tomllib is None:
        raise ConfigError("tomllib not available. Use Python 3.11+.")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    return parse_config(data)


def parse_config(data: dict) -> AppConfig:
    try:
        app = data.get("app", {})
        db = data.get("db")
        payments = data.get("payments", {})
        notifications = data.get("notifications", {})
        web = data.get("web", {})

        mode = str(payments.get("mode", "simulated"))
        if mode not in {"simulated", "http"}:
            raise ConfigError(f"Unknown payments.mode: {mode}")
        if mode == "http" and not payments.get("gateway_url"):
            raise ConfigError("payments.gateway_url is required when payments.mode = 'http'")

        return AppConfig(
            name=str(app.get("name", "WorkshopDesk")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            db=(
                DbConfig(
                    host=str(db["host"]),
                    port=int(db.get("port", 5432)),
                    name=str(db["name"]),
                    user=str(db["user"]),
                    password=str(db["password"]),
                    sslmode=str(db.get("sslmode", "disable")),
                    connect_timeout=int(db.get("connect_timeout", 10)),
                    statement_timeout_ms=int(db.get("statement_timeout_ms", 10_000)),
                )
                if db is not None
                else None
            ),
            payments=PaymentsConfig(
                mode=mode,
                gateway_url=payments.get("gateway_url"),
                timeout=float(payments.get("timeout", 15.0)),
                max_retries=int(payments.get("max_retries", 0)),
                retry_backoff=float(payments.get("retry_backoff", 1.0)),
                decline_rate=float(payments.get("decline_rate", 0.0)),
                pending_rate=float(payments.get("pending_rate", 0.0)),
            ),
            notifications=NotificationsConfig(
                dedupe_window_seconds=int(notifications.get("dedupe_window_seconds", 0)),
            ),
            web=WebConfig(
                host=str(web.get("host", "127.0.0.1")),
                port=int(web.get("port", 5000)),
                secret_key=str(web.get("secret_key", "change-this-secret-key-in-production")),
            ),
        )
    except ConfigError:
        raise
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except Exception as e:
        raise ConfigError(f"Invalid config values: {e}") from e
