# entrylog_node/config.py
import copy
import os
from typing import Any, Dict, List, Optional

import yaml

from .errors import ProfileError

CONFIG_FILENAME = "entrylog_config.yaml"

# -------- Defaults (non-secret) --------
_DEFAULT: Dict[str, Any] = {
    "server": {
        "org": "org1",  # which organization this process serves
        "host": "0.0.0.0",
        "port": 3000,
    },
    "cors": {"origins": ["*"]},
    "logging": {"level": "INFO"},
    "fabric": {
        "channel": "dmcchannel",
        "chaincode": "entryLog",
        "identity": "user1",
        "wallet_dir": "wallet",
        "peer_bin": "peer",
        # FABRIC_CFG_PATH for the peer CLI (directory holding core.yaml)
        "fabric_cfg_path": "",
        "timeout_sec": 60,
        "discovery": {"enabled": True, "as_localhost": True},
        # Used when the connection profile carries no "orderers" section
        "orderer": {
            "address": "localhost:7050",
            "tls_ca_path": "",
            "hostname_override": "orderer.example.com",
        },
        # Extra endorsing peers per org: [{"address": ..., "tls_ca_path": ...}]
        "endorsing_peers": {},
    },
    "orgs": {
        "org1": {"profile": "first-network/connection-org1.json"},
        "org2": {"profile": "first-network/connection-org2.json"},
        "org3": {"profile": "first-network/connection-org3.json"},
    },
    "allocator": {
        "path": "entryLogIndex.json",
        "start": 0,
        "keep_backups": 2,
    },
}

# -------- ENV overrides --------
_ENV_MAP = {
    ("server", "org"): ("ENTRYLOG_ORG", str),
    ("server", "host"): ("ENTRYLOG_HOST", str),
    ("server", "port"): ("ENTRYLOG_PORT", int),
    ("logging", "level"): ("ENTRYLOG_LOG_LEVEL", str),
    ("fabric", "channel"): ("ENTRYLOG_CHANNEL", str),
    ("fabric", "chaincode"): ("ENTRYLOG_CHAINCODE", str),
    ("fabric", "identity"): ("ENTRYLOG_IDENTITY", str),
    ("fabric", "wallet_dir"): ("ENTRYLOG_WALLET_DIR", str),
    ("fabric", "peer_bin"): ("ENTRYLOG_PEER_BIN", str),
    ("fabric", "fabric_cfg_path"): ("FABRIC_CFG_PATH", str),
    ("fabric", "timeout_sec"): ("ENTRYLOG_TIMEOUT_SEC", float),
    ("allocator", "path"): ("ENTRYLOG_INDEX_FILE", str),
}


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (overlay or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for (section, key), (env_name, cast) in _ENV_MAP.items():
        val = os.getenv(env_name)
        if val is None or val == "":
            continue
        try:
            casted = cast(val)
        except ValueError:
            casted = val
        cfg.setdefault(section, {})
        cfg[section][key] = casted
    return cfg


def _resolve_paths(cfg: Dict[str, Any], base_dir: str) -> Dict[str, Any]:
    # Relative paths in the config are relative to the config directory
    def _abs(p: str) -> str:
        if not p or os.path.isabs(p):
            return p
        return os.path.normpath(os.path.join(base_dir, p))

    fab = cfg["fabric"]
    fab["wallet_dir"] = _abs(fab.get("wallet_dir", ""))
    fab["fabric_cfg_path"] = _abs(fab.get("fabric_cfg_path", ""))
    orderer = fab.get("orderer") or {}
    orderer["tls_ca_path"] = _abs(orderer.get("tls_ca_path", ""))
    for peers in (fab.get("endorsing_peers") or {}).values():
        for peer in peers or []:
            peer["tls_ca_path"] = _abs(peer.get("tls_ca_path", ""))
    for org in (cfg.get("orgs") or {}).values():
        org["profile"] = _abs(org.get("profile", ""))
    cfg["allocator"]["path"] = _abs(cfg["allocator"].get("path", ""))
    return cfg


def load_config(repo_root: str, path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads the YAML config from repo_root/entrylog_config.yaml (or `path`).
    Returns defaults if the file doesn't exist.
    Then applies ENV overrides and resolves relative paths against the
    directory holding the config file.
    """
    path = path or os.path.join(repo_root, CONFIG_FILENAME)
    cfg = copy.deepcopy(_DEFAULT)

    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: top level must be a mapping")
        cfg = _deep_merge(cfg, data)

    cfg = _apply_env_overrides(cfg)

    origins = cfg.get("cors", {}).get("origins")
    if isinstance(origins, str):
        cfg["cors"]["origins"] = [origins]

    base_dir = os.path.dirname(os.path.abspath(path))
    return _resolve_paths(cfg, base_dir)


# -------- Small helpers used by the app --------
def get_org(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("server", {}).get("org", "org1"))


def get_bind_host(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("server", {}).get("host", "0.0.0.0"))


def get_bind_port(cfg: Dict[str, Any]) -> int:
    return int(cfg.get("server", {}).get("port", 3000))


def get_cors_origins(cfg: Dict[str, Any]) -> List[str]:
    return list(cfg.get("cors", {}).get("origins", []))


def get_log_level(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("logging", {}).get("level", "INFO")).upper()


def get_profile_path(cfg: Dict[str, Any], org: str) -> str:
    orgs = cfg.get("orgs", {})
    if org not in orgs:
        raise ProfileError(f"unknown org {org!r}; configured: {sorted(orgs)}")
    return str(orgs[org]["profile"])
