"""
Configuration management for git-provenance.

Global config:  ~/.git-provenance/config.json
Project config: .git-provenance/config.json   (at the repository root)

Each setting resolves, in order: ``GIT_PROVENANCE_<KEY>`` environment
variable, project config, global config, built-in default.

No external dependencies — stdlib only.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Paths and defaults
# -------------------------------------------------------------------

GLOBAL_CONFIG_DIR = Path.home() / ".git-provenance"
GLOBAL_CONFIG_FILE = GLOBAL_CONFIG_DIR / "config.json"

PROJECT_CONFIG_DIR_NAME = ".git-provenance"
PROJECT_CONFIG_FILE_NAME = "config.json"

ENV_PREFIX = "GIT_PROVENANCE_"

DEFAULTS: dict[str, Any] = {
    "notes_ref": "refs/notes/provenance",
    "git_bin": "git",
    "debug": False,
    "mark_unknown": False,
}

_TRUTHY = ("1", "true", "yes", "on")


# -------------------------------------------------------------------
# Config files
# -------------------------------------------------------------------

def _read_config(path: Path) -> dict:
    """JSON object stored at ``path``.

    A missing, unreadable or non-object file reads as ``{}`` so that
    resolution can test ``key in config`` at every level without a None check.
    """
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, OSError) as e:
        logger.debug("ignoring unreadable config %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _write_config(path: Path, config: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2, sort_keys=True) + "\n")


def _project_config_file(project_dir: str | None) -> Path:
    return Path(project_dir or os.getcwd()) / PROJECT_CONFIG_DIR_NAME / PROJECT_CONFIG_FILE_NAME


def get_global_config() -> dict:
    return _read_config(GLOBAL_CONFIG_FILE)


def save_global_config(config: dict) -> None:
    _write_config(GLOBAL_CONFIG_FILE, config)


def get_project_config(project_dir: str | None = None) -> dict:
    return _read_config(_project_config_file(project_dir))


def save_project_config(config: dict, project_dir: str | None = None) -> None:
    """Write the project config; its directory is kept out of the repository via .gitignore."""
    path = _project_config_file(project_dir)
    _write_config(path, config)

    gitignore = path.parent.parent / ".gitignore"
    entry = f"{PROJECT_CONFIG_DIR_NAME}/"
    try:
        content = gitignore.read_text()
    except FileNotFoundError:
        content = ""
    if entry in content.splitlines():
        return
    if content and not content.endswith("\n"):
        content += "\n"
    gitignore.write_text(content + entry + "\n")


# -------------------------------------------------------------------
# Setting resolution
# -------------------------------------------------------------------

def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, bool) and isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return value


def get_setting(key: str, project_dir: str | None = None) -> Any:
    """Resolve one setting: env var, project config, global config, default."""
    default = DEFAULTS.get(key)

    env = os.environ.get(ENV_PREFIX + key.upper())
    if env is not None and env != "":
        return _coerce(env, default)

    project = get_project_config(project_dir)
    if key in project:
        return _coerce(project[key], default)

    global_cfg = get_global_config()
    if key in global_cfg:
        return _coerce(global_cfg[key], default)

    return default


def get_notes_ref(project_dir: str | None = None) -> str:
    ref = str(get_setting("notes_ref", project_dir))
    if not ref.startswith("refs/"):
        ref = f"refs/notes/{ref}"
    return ref


def get_git_bin(project_dir: str | None = None) -> str:
    return str(get_setting("git_bin", project_dir))


# -------------------------------------------------------------------
# Logging
# -------------------------------------------------------------------

def configure_logging(project_dir: str | None = None) -> None:
    """Send diagnostics to stderr; DEBUG when the ``debug`` setting is on."""
    root = logging.getLogger("git_provenance")
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("git-provenance: %(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if get_setting("debug", project_dir) else logging.WARNING)
    root.propagate = False
