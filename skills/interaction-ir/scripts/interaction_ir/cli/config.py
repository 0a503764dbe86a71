from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ConfigError
from ..scheduler import AnalysisSettings

CONFIG_FILES = (".interaction-ir.json", "interaction-ir.json")
PYPROJECT_TABLE = "interaction-ir"


def load_repo_config(repo: Path, warnings: List[str]) -> Tuple[Dict[str, Any], Optional[str]]:
    """First config source found wins: JSON files, then [tool.interaction-ir]."""
    for filename in CONFIG_FILES:
        path = repo / filename
        if not path.exists():
            continue
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            warnings.append(f"Failed to parse {filename}: {exc}")
            return {}, filename
        if not isinstance(payload, dict):
            warnings.append(f"Invalid {filename}: expected a JSON object")
            return {}, filename
        return payload, filename
    pyproject = repo / "pyproject.toml"
    if pyproject.exists():
        try:
            with pyproject.open("rb") as handle:
                data = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            warnings.append(f"Failed to parse pyproject.toml: {exc}")
            return {}, None
        table = data.get("tool", {}).get(PYPROJECT_TABLE)
        if isinstance(table, dict):
            return table, "pyproject.toml"
    return {}, None


def load_settings(
    repo: Path,
    warnings: List[str],
    overrides: Optional[Dict[str, Any]] = None,
) -> Tuple[AnalysisSettings, Optional[str]]:
    payload, source = load_repo_config(repo, warnings)
    merged = dict(payload)
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value
    try:
        return AnalysisSettings.from_mapping(merged), source
    except ConfigError as exc:
        where = f" in {source}" if source else ""
        raise ConfigError(f"{exc}{where}") from exc


def resolve_out_dir(repo: Path, out_arg: Optional[str], *, workspace_root: Path) -> Path:
    if out_arg:
        out_path = Path(out_arg)
        if out_path.is_absolute():
            return out_path
        out_str = out_path.as_posix()
        if out_str.startswith("workspace/"):
            out_path = Path(out_str[len("workspace/") :])
        return (workspace_root / out_path).resolve()
    return (workspace_root / "interaction-ir" / repo.resolve().name).resolve()
