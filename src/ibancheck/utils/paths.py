from __future__ import annotations

from pathlib import Path

from ibancheck.utils.config import DEFAULT_CONFIG_NAME


def _repo_root() -> Path:
    # src/ibancheck/utils/paths.py -> repo root is three parents up
    return Path(__file__).resolve().parents[3]


def default_config_path() -> Path:
    return _repo_root() / DEFAULT_CONFIG_NAME


def default_log_dir() -> Path:
    # Keep logs inside repo root/LOG by default.
    return _repo_root() / "LOG"


def resolve_log_dir(log_dir: str | None) -> Path:
    ld = Path(log_dir).expanduser() if log_dir else default_log_dir()
    ld.mkdir(parents=True, exist_ok=True)
    return ld
