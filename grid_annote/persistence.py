# grid_annote/persistence.py
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, Optional

from .domain import GridShape, clamp_grid_scale

logger = logging.getLogger(__name__)


CONFIG_FILENAME = "config.json"
ENDPOINT_ENV_VAR = "GRID_ANNOTE_ENDPOINT"
CONFIG_DIR_ENV_VAR = "GRID_ANNOTE_CONFIG_DIR"

DEFAULT_ENDPOINT = ""
DEFAULT_SUBPROTOCOL = "consequence.1"
DEFAULT_REQUEST_TIMEOUT_S = 8.0
# Well-known key whose graph lists the videos of the feed.
DEFAULT_CATALOG_KEY = "0000000000000000000000000000000000000000000="
ADDRESSING_SCHEMES = ("grid", "explicit", "auto")


# -----------------------------
# Config payload
# -----------------------------

@dataclass
class AppConfig:
    """
    Stored in <config_dir>/config.json

    Only connection and grid settings live here; annotation points are never
    written to disk.
    """
    endpoint: str = DEFAULT_ENDPOINT
    subprotocol: str = DEFAULT_SUBPROTOCOL
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    grid_scale: int = 1
    catalog_key: str = DEFAULT_CATALOG_KEY
    addressing_scheme: str = "auto"
    extra: Dict = field(default_factory=dict)

    def grid_shape(self) -> GridShape:
        return GridShape.from_scale(self.grid_scale)

    def to_dict(self) -> Dict:
        d = dict(self.extra)
        d.update({
            "endpoint": self.endpoint,
            "subprotocol": self.subprotocol,
            "request_timeout_s": float(self.request_timeout_s),
            "grid_scale": int(self.grid_scale),
            "catalog_key": self.catalog_key,
            "addressing_scheme": self.addressing_scheme,
            "config_version": 1,
        })
        return d

    @staticmethod
    def from_dict(d: Dict) -> "AppConfig":
        known = {
            "endpoint", "subprotocol", "request_timeout_s", "grid_scale",
            "catalog_key", "addressing_scheme", "config_version",
        }
        try:
            timeout = float(d.get("request_timeout_s", DEFAULT_REQUEST_TIMEOUT_S))
        except Exception:
            timeout = DEFAULT_REQUEST_TIMEOUT_S
        if timeout <= 0:
            timeout = DEFAULT_REQUEST_TIMEOUT_S

        scheme = str(d.get("addressing_scheme") or "auto").strip().lower()
        if scheme not in ADDRESSING_SCHEMES:
            scheme = "auto"

        return AppConfig(
            endpoint=str(d.get("endpoint") or DEFAULT_ENDPOINT),
            subprotocol=str(d.get("subprotocol") or DEFAULT_SUBPROTOCOL),
            request_timeout_s=timeout,
            grid_scale=clamp_grid_scale(d.get("grid_scale", 1)),
            catalog_key=str(d.get("catalog_key") or DEFAULT_CATALOG_KEY),
            addressing_scheme=scheme,
            extra={k: v for k, v in d.items() if k not in known},
        )


# -----------------------------
# Atomic file helpers
# -----------------------------

def _atomic_write_text(path: str, text: str, encoding: str = "utf-8") -> None:
    d = os.path.dirname(path) or "."
    os.makedirs(d, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=d)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def _atomic_write_json(path: str, payload: Dict) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    _atomic_write_text(path, text + "\n")


def _read_json(path: str) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


# -----------------------------
# Config (config_dir/config.json)
# -----------------------------

def default_config_dir() -> str:
    env = os.environ.get(CONFIG_DIR_ENV_VAR)
    if env:
        return env
    return os.path.join(os.path.expanduser("~"), ".grid_annote")


def config_path(config_dir: str) -> str:
    return os.path.join(config_dir, CONFIG_FILENAME)


def _apply_env_overrides(cfg: AppConfig) -> AppConfig:
    endpoint = os.environ.get(ENDPOINT_ENV_VAR)
    if endpoint:
        cfg.endpoint = endpoint.strip()
    return cfg


def load_app_config(config_dir: Optional[str] = None) -> AppConfig:
    """
    Loads <config_dir>/config.json.

    Missing or invalid files give defaults. GRID_ANNOTE_ENDPOINT, when set,
    overrides the stored endpoint.
    """
    d = config_dir or default_config_dir()
    path = config_path(d)
    cfg = AppConfig()
    if os.path.exists(path):
        try:
            data = _read_json(path)
            if isinstance(data, dict):
                cfg = AppConfig.from_dict(data)
            else:
                logger.warning(f"Ignoring config {path}: top level is not an object")
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable config {path}: {e}")
    return _apply_env_overrides(cfg)


def save_app_config(cfg: AppConfig, config_dir: Optional[str] = None) -> str:
    """Saves config atomically. Returns the written path."""
    path = config_path(config_dir or default_config_dir())
    _atomic_write_json(path, cfg.to_dict())
    return path
