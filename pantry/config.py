from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import streamlit as st

CONFIG_FILE_NAME = "settings.json"
ENV_DATA_DIR = "PANTRY_LEDGER_DATA_DIR"
ENV_LOG_LEVEL = "PANTRY_LEDGER_LOG_LEVEL"

BRANCHES = [
    "Koramangala",
    "BG Road",
    "HSR Layout",
    "Electronic City",
    "Whitefield",
    "Manyata Tech Park",
    "Coimbatore",
    "Cochin",
]


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    log_level: str = "INFO"


def _default_data_dir() -> Path:
    return Path.home() / ".pantry_ledger"


def _load_persisted_settings(data_dir: Path) -> dict:
    cfg = data_dir / CONFIG_FILE_NAME
    if cfg.exists():
        try:
            return json.loads(cfg.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
    return {}


def persist_data_dir(data_dir_str: str) -> None:
    data_dir = Path(data_dir_str).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    cfg = data_dir / CONFIG_FILE_NAME
    payload = {"data_dir": str(data_dir)}
    cfg.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # Also remember it in the default folder so the next start finds it
    default_dir = _default_data_dir()
    if default_dir != data_dir:
        default_dir.mkdir(parents=True, exist_ok=True)
        (default_dir / CONFIG_FILE_NAME).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # Update session for immediate effect
    st.session_state["pantry_ledger_data_dir"] = str(data_dir)


def resolve_settings(session_state=None, environ=None) -> Settings:
    # Priority order:
    # 1) Session state (set via Data Management page)
    # 2) Environment variable
    # 3) Persisted settings in default folder
    # 4) Default folder
    session_state = {} if session_state is None else session_state
    environ = os.environ if environ is None else environ

    if "pantry_ledger_data_dir" in session_state:
        data_dir = Path(session_state["pantry_ledger_data_dir"]).expanduser().resolve()
    elif environ.get(ENV_DATA_DIR):
        data_dir = Path(environ[ENV_DATA_DIR]).expanduser().resolve()
    else:
        default_dir = _default_data_dir()
        persisted = _load_persisted_settings(default_dir)
        data_dir = Path(persisted.get("data_dir", default_dir)).expanduser().resolve()

    data_dir.mkdir(parents=True, exist_ok=True)
    db_path = data_dir / "ledger.db"
    log_level = str(environ.get(ENV_LOG_LEVEL, "INFO")).upper()
    return Settings(data_dir=data_dir, db_path=db_path, log_level=log_level)


@st.cache_resource
def get_settings() -> Settings:
    return resolve_settings(st.session_state, os.environ)


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("pantry").setLevel(level)
