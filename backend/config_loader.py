from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml

from attention.config import Settings

# remote backend location and credentials may come from the environment
ENV_OVERRIDES = (
    ("base_url", "FOCUS_BACKEND_BASE"),
    ("user_id", "FOCUS_USER_ID"),
    ("auth_token", "FOCUS_AUTH_TOKEN"),
)


def load_raw(path: str) -> Dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        return {}
    with cfg_path.open("r") as fh:
        return yaml.safe_load(fh) or {}


def env_overrides() -> Dict[str, str]:
    return {key: os.environ[env] for key, env in ENV_OVERRIDES if os.getenv(env)}


def load_settings(path: str) -> Settings:
    data = load_raw(path)
    backend = dict(data.get("backend", {}) or {})
    backend.update(env_overrides())
    data["backend"] = backend
    return Settings.from_dict(data)


def persist_settings(path: str, payload: Dict[str, Any]) -> None:
    """
    Writes settings back to YAML. Backend values that came from the
    environment are not written; the value already on disk is kept instead.
    """
    overrides = env_overrides()
    if overrides:
        stored = dict(load_raw(path).get("backend", {}) or {})
        backend = dict(payload.get("backend", {}) or {})
        for key, value in overrides.items():
            if backend.get(key) != value:
                continue
            if key in stored:
                backend[key] = stored[key]
            else:
                backend.pop(key, None)
        payload = {**payload, "backend": backend}

    cfg_path = Path(path)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    with cfg_path.open("w") as fh:
        yaml.safe_dump(payload, fh)
