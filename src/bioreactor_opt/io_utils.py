"""YAML input and JSON result output helpers."""

from __future__ import annotations

from enum import Enum
import json
import os
from pathlib import Path
import tempfile
from typing import Any, Optional, Type

import numpy as np
import yaml


def read_yaml_payload(
    path: Path,
    *,
    error_message: Optional[str] = None,
    error_cls: Type[Exception] = ValueError,
) -> Any:
    """Parse a YAML (or JSON) document; parse failures become ``error_cls``."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise error_cls(f"{error_message or 'Failed to read'} {path}: {exc}") from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        if error_message:
            raise error_cls(f"{error_message}: {exc}") from exc
        raise


def _json_default(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps_json(payload: Any) -> str:
    return (
        json.dumps(
            payload,
            indent=2,
            sort_keys=True,
            ensure_ascii=True,
            default=_json_default,
        )
        + "\n"
    )


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write ``payload`` next to ``path`` and rename it into place."""
    text = dumps_json(payload)
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        prefix=f".{path.name}.",
        dir=path.parent,
        delete=False,
    )
    try:
        with handle:
            handle.write(text)
        os.replace(handle.name, path)
    except BaseException:
        Path(handle.name).unlink(missing_ok=True)
        raise


__all__ = [
    "dumps_json",
    "read_yaml_payload",
    "write_json_atomic",
]
