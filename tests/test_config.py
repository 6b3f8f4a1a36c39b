"""Tests for config loading. Secrets from env; file holds non-secrets only."""

from pathlib import Path

import pytest

from config import load_config
from strategy_core.errors import ConfigError


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


def test_load_config_from_example() -> None:
    root = Path(__file__).resolve().parent.parent
    cfg = load_config(root / "config.example.yaml")
    assert cfg.owner == "default"
    assert cfg.broker.provider == "paper"
    assert cfg.execution.timeout_seconds == 10.0
    assert cfg.execution.split_order_min_interval_minutes == 10
    assert cfg.scheduler.interval_minutes == 10
    assert cfg.alerting.structured_logs is True


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    cfg = load_config(_write(tmp_path, ""))
    assert cfg.store.path == "data/autotrade.db"
    assert cfg.execution.max_workers == 4
    assert cfg.journal.echo_stdout is False


def test_sections_override_defaults(tmp_path: Path) -> None:
    cfg = load_config(
        _write(
            tmp_path,
            """
owner: alice
broker:
  provider: ALPACA
  alpaca_paper: false
execution:
  timeout_seconds: 3.5
  max_workers: 2
scheduler:
  interval_minutes: 5
  sync_orders: false
""",
        )
    )
    assert cfg.owner == "alice"
    assert cfg.broker.provider == "alpaca"
    assert cfg.broker.alpaca_paper is False
    assert cfg.execution.timeout_seconds == 3.5
    assert cfg.execution.max_workers == 2
    assert cfg.scheduler.interval_minutes == 5
    assert cfg.scheduler.sync_orders is False


def test_secrets_from_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("APCA_API_KEY_ID", "key-123")
    monkeypatch.setenv("APCA_API_SECRET_KEY", "secret-456")
    cfg = load_config(_write(tmp_path, "broker:\n  provider: alpaca\n"))
    assert cfg.broker.api_key == "key-123"
    assert cfg.broker.api_secret == "secret-456"


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "text, fragment",
    [
        ("broker: [1, 2\n", "not valid YAML"),
        ("- a\n- b\n", "YAML mapping"),
        ("broker: 5\n", "'broker' must be a mapping"),
        ("broker:\n  provider: ibkr\n", "Unknown broker provider"),
        ("execution:\n  timeout_seconds: 0\n", "timeout_seconds"),
        ("execution:\n  max_workers: 0\n", "max_workers"),
    ],
)
def test_invalid_config_raises(tmp_path: Path, text: str, fragment: str) -> None:
    with pytest.raises(ConfigError, match=fragment):
        load_config(_write(tmp_path, text))
