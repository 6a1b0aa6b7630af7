from __future__ import annotations

import pytest

from workshopdesk.config import ConfigError, load_config, parse_config

FULL = """
[app]
name = "Desk"
log_level = "debug"

[db]
host = "db.local"
name = "workshopdesk"
user = "desk"
password = "secret"

[payments]
mode = "http"
gateway_url = "https://pay.example.test/charge"
max_retries = 2

[notifications]
dedupe_window_seconds = 30
"""


def test_load_full_config(tmp_path):
    p = tmp_path / "config.toml"
    p.write_text(FULL, encoding="utf-8")

    cfg = load_config(p)

    assert cfg.name == "Desk"
    assert cfg.log_level == "DEBUG"
    assert cfg.db.host == "db.local"
    assert cfg.db.port == 5432
    assert cfg.db.statement_timeout_ms == 10_000
    assert cfg.db.connect_timeout == 10
    assert cfg.payments.mode == "http"
    assert cfg.payments.max_retries == 2
    assert cfg.payments.timeout == 15.0
    assert cfg.notifications.dedupe_window_seconds == 30
    assert cfg.web.port == 5000


def test_defaults_without_db_section():
    cfg = parse_config({})
    assert cfg.db is None
    assert cfg.payments.mode == "simulated"
    assert cfg.notifications.dedupe_window_seconds == 0


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.toml")


def test_broken_toml(tmp_path):
    p = tmp_path / "config.toml"
    p.write_text("[app\nname=", encoding="utf-8")
    with pytest.raises(ConfigError, match="TOML"):
        load_config(p)


def test_db_section_needs_credentials():
    with pytest.raises(ConfigError, match="Missing config key"):
        parse_config({"db": {"host": "localhost"}})


@pytest.mark.parametrize(
    "payments",
    [{"mode": "stripe"}, {"mode": "http"}, {"timeout": "soon"}],
)
def test_bad_payments_section(payments):
    with pytest.raises(ConfigError):
        parse_config({"payments": payments})
