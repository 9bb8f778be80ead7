# -*- coding: utf-8 -*-
"""
Runtime defaults and the persisted user config.

Persisted keys in .ttl_knight.json:
  baud_rate, last_port, log_path, quiet_rx, tx_echo

Interpreter variables are never written here.
"""

import json
import os
from typing import Any, Dict, Optional

# ================== Runtime defaults =====================================
DEFAULT_BAUD            = 9600
SUPPORTED_BAUD_RATES    = (300, 1200, 2400, 4800, 9600, 14400, 19200, 28800,
                           38400, 57600, 115200, 230400, 250000, 500000, 1000000)
DATA_BITS               = 8
STOP_BITS               = 1
PARITY_NAME             = "none"
ENCODING                = "utf-8"
READ_TIMEOUT            = 0.05      # reader poll period (s)
WRITE_TIMEOUT           = 1
LINE_ENDING             = "\r\n"
JOIN_TIMEOUT            = 2.0
MAX_LINE                = 4096      # reader buffer cap (bytes)

USER_CONFIG_FILE        = ".ttl_knight.json"


def is_supported_baud(rate: Any) -> bool:
    try:
        return int(rate) in SUPPORTED_BAUD_RATES
    except (TypeError, ValueError):
        return False


def default_config() -> Dict[str, Any]:
    return {
        "baud_rate": DEFAULT_BAUD,
        "last_port": None,
        "log_path": None,
        "quiet_rx": False,
        "tx_echo": True,
    }


def _say(console, tag: str, msg: str) -> None:
    if console is not None:
        console.emit(tag, msg)
    else:
        print(f"[{tag}] {msg}")


def load_user_config(path: str = USER_CONFIG_FILE, console=None) -> Dict[str, Any]:
    cfg = default_config()
    if not path or not os.path.isfile(path):
        return cfg
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        _say(console, "cfg", f"load failed: {e}")
        return cfg
    if not isinstance(data, dict):
        _say(console, "cfg", f"ignored {path}: not an object")
        return cfg

    if "baud_rate" in data:
        if is_supported_baud(data["baud_rate"]):
            cfg["baud_rate"] = int(data["baud_rate"])
        else:
            _say(console, "cfg", f"ignored unsupported baud_rate {data['baud_rate']!r}")
    for k in ("last_port", "log_path"):
        v = data.get(k)
        if isinstance(v, str) and v.strip():
            cfg[k] = v.strip()
    for k in ("quiet_rx", "tx_echo"):
        if k in data:
            cfg[k] = bool(data[k])
    return cfg


def save_user_config(cfg: Dict[str, Any], path: str = USER_CONFIG_FILE, console=None) -> bool:
    out = {k: cfg.get(k) for k in default_config()}
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(out, f, ensure_ascii=False, indent=2)
    except OSError as e:
        _say(console, "cfg", f"save failed: {e}")
        return False
    return True


def parse_baud(text: Optional[str]) -> Optional[int]:
    """Return the rate as int when `text` names a supported baud rate, else None."""
    if text is None:
        return None
    text = str(text).strip()
    if not text.isdigit():
        return None
    rate = int(text)
    return rate if rate in SUPPORTED_BAUD_RATES else None
