import os
import yaml
import logging

from chainstate.blocks import DEFAULT_RECEIPTS_METHOD
from chainstate.status import DEFAULT_GAPS_METHOD

logger = logging.getLogger(__name__)

DEFAULTS = {
    "eth1": "http://127.0.0.1:8545",
    "addr": "0.0.0.0:8000",
    "static_dir": "./dist",
    "metrics_port": 0,
    "recent_blocks": 10,
    "receipts_method": DEFAULT_RECEIPTS_METHOD,
    "gaps_method": DEFAULT_GAPS_METHOD,
    "log_format": "text",
    "log_level": "INFO",
}

# setting -> environment variable
ENVIRONMENT = {
    "eth1": "ETHEREUM_RPC_ENDPOINT",
    "addr": "LISTEN",
    "static_dir": "STATIC_DIR",
}


def load_config(path):
    with open(path, "r") as f:
        raw_config = yaml.safe_load(f)
    return normalize_config(raw_config or {})


def normalize_config(config):
    """
    Fill in defaults and coerce types.

    Method names may be given flat or grouped:

      receipts_method: eth_getBlockReceipts
      gaps_method: parity_chainStatus

    or

      methods:
        receipts: eth_getBlockReceipts
        gaps: parity_chainStatus
    """
    if not isinstance(config, dict):
        raise ValueError(f"config must be a mapping, got {type(config).__name__}")
    methods = config.get("methods") or {}
    normalized = dict(DEFAULTS)
    for key in DEFAULTS:
        if config.get(key) is not None:
            normalized[key] = config[key]
    if methods.get("receipts"):
        normalized["receipts_method"] = methods["receipts"]
    if methods.get("gaps"):
        normalized["gaps_method"] = methods["gaps"]

    normalized["metrics_port"] = int(normalized["metrics_port"])
    normalized["recent_blocks"] = int(normalized["recent_blocks"])
    if normalized["recent_blocks"] < 1:
        raise ValueError("recent_blocks must be at least 1")
    return normalized


def apply_environment(config, environ=None):
    environ = os.environ if environ is None else environ
    merged = dict(config)
    for key, name in ENVIRONMENT.items():
        value = environ.get(name)
        if value:
            merged[key] = value
    return merged


def resolve_config(path=None, overrides=None, environ=None):
    """Defaults, then the YAML file, then the environment, then overrides."""
    config = load_config(path) if path else normalize_config({})
    config = apply_environment(config, environ)
    for key, value in (overrides or {}).items():
        if value is not None:
            config[key] = value
    return config


def parse_addr(addr):
    """Split "host:port" into (host, port)."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"listen address must be host:port, got {addr!r}")
    return host or "0.0.0.0", int(port)
