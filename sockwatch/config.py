import os
import threading

import yaml

from .debuglog import debug_log

# ═══════════════════════════════════════════════════════════════
# Persistent config – ~/.config/sockwatch/config.yaml
# ═══════════════════════════════════════════════════════════════
CONFIG_DIR = os.path.expanduser("~/.config/sockwatch")
CONFIG_PATH = os.path.join(CONFIG_DIR, "config.yaml")

DEFAULTS = {
    "proc_root": "/proc",
    "index_workers": 8,
    "resolve_timeout": 0.2,        # seconds per reverse lookup
    "resolve_concurrency": 32,     # in-flight lookups during pre-warm
    "no_cache": False,
    "attribute_unix_sockets": False,
    "watch_interval": 2.0,
}

CONFIG = dict(DEFAULTS)
CONFIG_LOCK = threading.Lock()


def load_config(path=CONFIG_PATH):
    """Return DEFAULTS merged with the YAML file at `path` (missing file -> defaults)."""
    data = dict(DEFAULTS)
    try:
        with open(path, "r") as f:
            saved = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return data
    except (OSError, yaml.YAMLError) as e:
        debug_log(f"CONFIG: Error loading {path}: {e}")
        return data
    if not isinstance(saved, dict):
        debug_log(f"CONFIG: Ignoring {path}, top level is not a mapping")
        return data
    for key, value in saved.items():
        if key in DEFAULTS:
            data[key] = value
        else:
            debug_log(f"CONFIG: Unknown key '{key}' ignored")
    return data


def init_config(path=CONFIG_PATH):
    """Load the config file into CONFIG, writing a default one if none exists."""
    loaded = load_config(path)
    with CONFIG_LOCK:
        CONFIG.clear()
        CONFIG.update(loaded)
    if not os.path.exists(path):
        save_config(path)
    return CONFIG


def save_config(path=CONFIG_PATH):
    with CONFIG_LOCK:
        snapshot = dict(CONFIG)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(snapshot, f, default_flow_style=False)
    except OSError as e:
        debug_log(f"CONFIG: Error saving: {e}")
