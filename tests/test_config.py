"""
tests/test_config.py - Configuration loading tests.
"""

import pytest

from chainstate.config import (
    DEFAULTS,
    load_config,
    normalize_config,
    parse_addr,
    resolve_config,
)


def test_defaults():
    config = normalize_config({})
    assert config == DEFAULTS
    assert config["eth1"] == "http://127.0.0.1:8545"
    assert config["gaps_method"] == "parity_chainStatus"


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "eth1: http://node:8545\n"
        "recent_blocks: '5'\n"
        "methods:\n"
        "  receipts: parity_getBlockReceipts\n"
        "log_format: json\n"
    )
    config = load_config(str(path))
    assert config["eth1"] == "http://node:8545"
    assert config["recent_blocks"] == 5
    assert config["receipts_method"] == "parity_getBlockReceipts"
    assert config["gaps_method"] == "parity_chainStatus"
    assert config["log_format"] == "json"


def test_empty_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(str(path)) == DEFAULTS


def test_invalid_recent_blocks():
    with pytest.raises(ValueError):
        normalize_config({"recent_blocks": 0})


def test_not_a_mapping():
    with pytest.raises(ValueError):
        normalize_config(["eth1"])


def test_precedence(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("eth1: http://file:8545\naddr: 127.0.0.1:9000\nstatic_dir: /srv/www\n")
    environ = {"ETHEREUM_RPC_ENDPOINT": "http://env:8545", "LISTEN": "0.0.0.0:7000"}

    config = resolve_config(
        str(path), overrides={"eth1": "http://flag:8545", "addr": None}, environ=environ
    )
    assert config["eth1"] == "http://flag:8545"
    assert config["addr"] == "0.0.0.0:7000"
    assert config["static_dir"] == "/srv/www"


def test_parse_addr():
    assert parse_addr("0.0.0.0:8000") == ("0.0.0.0", 8000)
    assert parse_addr(":8000") == ("0.0.0.0", 8000)
    with pytest.raises(ValueError):
        parse_addr("8000")
