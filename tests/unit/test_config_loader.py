"""Tests for the config_loader module."""

import json
from pathlib import Path
from tempfile import NamedTemporaryFile

import pytest
import yaml
from solders.keypair import Keypair

from roundtrip_arbitrage.config_loader import (
    apply_env_fallbacks,
    load_keypair,
    load_runtime_config,
    load_yaml_config,
)
from roundtrip_arbitrage.config_schema import validate_settings
from roundtrip_arbitrage.constants import SOL_MINT, USDC_MINT
from roundtrip_arbitrage.cost_model import RelayFeeMode
from roundtrip_arbitrage.exceptions import ConfigurationError, ValidationError

NONCE = "NonceAcc1111111111111111111111111111111111"


def base_settings(**overrides):
    settings = {
        "connection": {
            "signer_keypair_path": "/keys/id.json",
            "rpc_endpoint": "https://node.example",
            "nonce_account": NONCE,
            "geyser_endpoint": "wss://stream.example",
            "submission_services": "jito, Helius",
        },
        "dex_api": {"endpoint": "https://quote.example/swap/v1/", "jito_api_key": "jito-secret"},
        "tx_cost": {
            "compute_unit_limit": 300_000,
            "priority_fee_lamports": 1_000,
            "relay_tip_sol": 0.001,
        },
        "strategy": {"big_trades": True, "continuous_polling": True, "polling_interval_ms": 750},
        "base_tokens": [
            {
                "mint": SOL_MINT,
                "amount_range": [1, 10],
                "steps": 4,
                "min_profit": 0.001,
                "big_trade_threshold": 250,
            }
        ],
    }
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(settings.get(section), dict):
            settings[section].update(values)
        else:
            settings[section] = values
    return settings


def write_yaml(data):
    f = NamedTemporaryFile(mode="w", suffix=".yaml", delete=False)
    yaml.dump(data, f)
    f.close()
    return f.name


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GEYSER_AUTH_TOKEN", "GEYSER_ENDPOINT", "JUPITER_API_KEY", "JITO_AUTH_KEY", "HELIUS_AUTH_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_load_yaml_config_file_not_found():
    with pytest.raises(ConfigurationError, match="Configuration file not found"):
        load_yaml_config("/non/existent/file.yaml")


def test_load_yaml_config_empty_file():
    with NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write("")

    with pytest.raises(ConfigurationError, match="Empty configuration file"):
        load_yaml_config(f.name)

    Path(f.name).unlink()


def test_load_yaml_config_invalid_yaml():
    with NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write("invalid: yaml: content: [")

    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_yaml_config(f.name)

    Path(f.name).unlink()


def test_load_yaml_config_non_mapping():
    with NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write("- a\n- b\n")

    with pytest.raises(ConfigurationError, match="mapping"):
        load_yaml_config(f.name)

    Path(f.name).unlink()


def test_aliases_are_normalized(tmp_path):
    path = write_yaml(base_settings())

    config = load_runtime_config(path, env_file=tmp_path / "missing.env")

    assert config.node.rpc_url == "https://node.example"
    assert config.node.submit_url == "https://node.example"
    assert config.node.keypair_path == "/keys/id.json"
    assert config.node.submission_services == ("jito", "Helius")
    assert config.swap_api.base_url == "https://quote.example/swap/v1"
    assert config.swap_api.credentials["jito"] == "jito-secret"
    assert config.fee_model.compute_units == 300_000
    assert config.fee_model.priority_fee == 1_000
    assert config.fee_model.fixed_fee == 0.001
    assert config.strategy.watch_flows is True
    assert config.strategy.poll_quotes is True
    assert config.strategy.poll_interval_ms == 750

    Path(path).unlink()


def test_base_token_entry_is_normalized(tmp_path):
    path = write_yaml(base_settings())

    config = load_runtime_config(path, env_file=tmp_path / "missing.env")

    token = config.watch_token(SOL_MINT)
    assert token.amount_range == (1.0, 10.0)
    assert token.flow_threshold == 250
    assert token.extended_amount_range is None
    assert config.watch_token(USDC_MINT) is None

    Path(path).unlink()


@pytest.mark.parametrize("share", [0.0, 1.5, -0.3])
def test_out_of_range_profit_share_is_accepted_and_fixed(tmp_path, share):
    path = write_yaml(base_settings(tx_cost={"third_party_fee_profit_pct": share}))

    config = load_runtime_config(path, env_file=tmp_path / "missing.env")

    assert config.fee_model.profit_share == share
    assert config.fee_model.relay_fee_mode is RelayFeeMode.FIXED

    Path(path).unlink()


def test_profit_share_in_range(tmp_path):
    path = write_yaml(base_settings(tx_cost={"third_party_fee_profit_pct": 0.4}))

    config = load_runtime_config(path, env_file=tmp_path / "missing.env")

    assert config.fee_model.relay_fee_mode is RelayFeeMode.PROFIT_SHARE

    Path(path).unlink()


def test_empty_secrets_fall_back_to_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("GEYSER_AUTH_TOKEN", "stream-token")
    monkeypatch.setenv("HELIUS_AUTH_KEY", "helius-from-env")
    monkeypatch.setenv("JITO_AUTH_KEY", "ignored-because-yaml-has-one")
    path = write_yaml(base_settings())

    config = load_runtime_config(path, env_file=tmp_path / "missing.env")

    assert config.node.geyser_token == "stream-token"
    assert config.swap_api.credentials["helius"] == "helius-from-env"
    assert config.swap_api.credentials["jito"] == "jito-secret"

    Path(path).unlink()


def test_env_file_is_loaded(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("JUPITER_API_KEY=from-dotenv\n")
    path = write_yaml(base_settings())

    config = load_runtime_config(path, env_file=env_file)

    assert config.swap_api.api_key == "from-dotenv"

    Path(path).unlink()


def test_apply_env_fallbacks_without_env_is_identity():
    settings = validate_settings(base_settings())
    assert apply_env_fallbacks(settings) is settings


@pytest.mark.parametrize(
    "overrides",
    [
        {"base_tokens": [{"mint": SOL_MINT, "amount_range": [0, 1], "steps": 3, "min_profit": 0.1}]},
        {"base_tokens": [{"mint": SOL_MINT, "amount_range": [1], "steps": 3, "min_profit": 0.1}]},
        {"base_tokens": [{"mint": "short", "amount_range": [1, 2], "steps": 3, "min_profit": 0.1}]},
        {"base_tokens": []},
        {"tx_cost": {"compute_unit_limit": 0}},
    ],
)
def test_invalid_settings_raise_validation_error(tmp_path, overrides):
    path = write_yaml(base_settings(**overrides))

    with pytest.raises(ValidationError) as exc_info:
        load_runtime_config(path, env_file=tmp_path / "missing.env")

    assert exc_info.value.details["errors"]

    Path(path).unlink()


def test_duplicate_mints_are_rejected():
    entry = {"mint": SOL_MINT, "amount_range": [1, 2], "steps": 3, "min_profit": 0.1}
    with pytest.raises(Exception, match="duplicate"):
        validate_settings(base_settings(base_tokens=[entry, dict(entry)]))


class TestLoadKeypair:
    def test_valid_keypair(self, tmp_path):
        keypair = Keypair()
        path = tmp_path / "id.json"
        path.write_text(json.dumps(list(bytes(keypair))))

        assert load_keypair(path).pubkey() == keypair.pubkey()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_keypair(tmp_path / "nope.json")

    def test_wrong_length(self, tmp_path):
        path = tmp_path / "id.json"
        path.write_text(json.dumps([1, 2, 3]))

        with pytest.raises(ConfigurationError, match="64-byte"):
            load_keypair(path)
