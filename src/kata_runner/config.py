"""Runtime settings for the kata runner."""

from __future__ import annotations

import os
import tempfile
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

CONFIG_ENV = "KATA_RUNNER_CONFIG"

DEFAULT_CONFIG: dict[str, Any] = {
    "docker": "docker",
    "lock_dir": str(Path(tempfile.gettempdir()) / "kata-runner" / "locks"),
    "log_dir": None,
    "output": {
        "max_kb": 10,
    },
    "classifier": {
        "timeout_s": 10,
    },
}

_ENV_KEYS: dict[str, tuple[str, ...]] = {
    "KATA_RUNNER_DOCKER": ("docker",),
    "KATA_RUNNER_LOCK_DIR": ("lock_dir",),
    "KATA_RUNNER_LOG_DIR": ("log_dir",),
    "KATA_RUNNER_MAX_OUTPUT_KB": ("output", "max_kb"),
    "KATA_RUNNER_CLASSIFIER_TIMEOUT_S": ("classifier", "timeout_s"),
}


@dataclass(frozen=True)
class RunnerSettings:
    docker: str = "docker"
    lock_dir: Path = Path(tempfile.gettempdir()) / "kata-runner" / "locks"
    log_dir: Path | None = None
    max_output_kb: int = 10
    classifier_timeout_s: float = 10.0


def deep_merge(base: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    merged = deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise RuntimeError(f"讀取設定檔失敗：{path}") from exc
    if not isinstance(loaded, dict):
        raise RuntimeError(f"設定檔格式錯誤，頂層必須是 mapping：{path}")
    return loaded


def load_settings(config_path: Path | None = None, environ: Mapping[str, str] | None = None) -> RunnerSettings:
    """Resolve settings: defaults, then the YAML file, then environment overrides."""
    env = os.environ if environ is None else environ
    effective = deepcopy(DEFAULT_CONFIG)

    path = config_path or (Path(env[CONFIG_ENV]).expanduser() if env.get(CONFIG_ENV) else None)
    if path is not None:
        effective = deep_merge(effective, read_yaml(path))

    for env_name, key_path in _ENV_KEYS.items():
        if env.get(env_name):
            effective = deep_merge(effective, _nest(key_path, env[env_name]))

    log_dir = effective.get("log_dir")
    return RunnerSettings(
        docker=str(effective["docker"]),
        lock_dir=Path(str(effective["lock_dir"])).expanduser(),
        log_dir=Path(str(log_dir)).expanduser() if log_dir else None,
        max_output_kb=int(effective["output"]["max_kb"]),
        classifier_timeout_s=float(effective["classifier"]["timeout_s"]),
    )


def _nest(key_path: tuple[str, ...], value: Any) -> dict[str, Any]:
    nested: dict[str, Any] = {key_path[-1]: value}
    for key in reversed(key_path[:-1]):
        nested = {key: nested}
    return nested
