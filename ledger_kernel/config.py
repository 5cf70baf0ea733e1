"""
Kernel settings (``ledger_kernel.config``).

Settings are resolved in three layers, later layers winning:

1. dataclass defaults,
2. an optional YAML file (``LEDGER_CONFIG_FILE`` or an explicit path),
3. ``LEDGER_*`` environment variables.

Failure modes
-------------
* Missing YAML file (explicit path)  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key in the YAML file  -> ``ValueError``.
* Non-numeric value for an integer setting  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

ENV_PREFIX = "LEDGER_"
CONFIG_FILE_ENV = "LEDGER_CONFIG_FILE"

_BOOL_TRUE = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class KernelSettings:
    """Process-wide settings. Per-org settings live in ``OrgContext``."""

    database_url: str = "sqlite:///ledger.db"
    database_echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    log_level: str = "INFO"
    log_json: bool = True
    transient_retry_attempts: int = 1
    suggestion_date_window_days: int = 3


def _coerce(name: str, current: Any, raw: Any) -> Any:
    if isinstance(current, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in _BOOL_TRUE
    if isinstance(current, int):
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Setting {name} must be an integer, got {raw!r}") from exc
    return str(raw)


def load_yaml_settings(path: Path) -> dict[str, Any]:
    """Read a YAML settings file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> KernelSettings:
    """
    Build ``KernelSettings`` from defaults, YAML and environment.

    Args:
        path: Optional YAML file. Falls back to ``LEDGER_CONFIG_FILE``.
        environ: Environment mapping (defaults to ``os.environ``).
    """
    env = os.environ if environ is None else environ
    settings = KernelSettings()
    known = {f.name for f in fields(KernelSettings)}

    file_path = path or env.get(CONFIG_FILE_ENV)
    if file_path:
        data = load_yaml_settings(Path(file_path))
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown settings in {file_path}: {sorted(unknown)}")
        settings = replace(
            settings,
            **{k: _coerce(k, getattr(settings, k), v) for k, v in data.items()},
        )

    overrides: dict[str, Any] = {}
    for name in known:
        raw = env.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None:
            overrides[name] = _coerce(name, getattr(settings, name), raw)
    if overrides:
        settings = replace(settings, **overrides)
    return settings
