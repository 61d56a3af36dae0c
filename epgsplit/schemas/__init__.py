"""
Schema resources bundled with the project.

中文:
    项目内置的 JSON Schema（配置文件与索引文件）。
"""

from __future__ import annotations

__all__ = ["load_schema", "schema_errors"]

from functools import lru_cache
from importlib import resources
from json import load
from typing import Any, Dict, List

from jsonschema import Draft7Validator


@lru_cache(maxsize=None)
def load_schema(name: str) -> Dict[str, Any]:
    """
    Load a JSON schema from the local schema package.

    中文:
        从 schema 包中读取 JSON Schema。
    """

    with resources.files(__name__).joinpath(name).open("r", encoding="utf-8") as fh:
        return load(fh)


def schema_errors(name: str, payload: Any) -> List[str]:
    """Validate ``payload`` against schema ``name`` and return readable error lines."""

    validator = Draft7Validator(load_schema(name))
    errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.path))
    return [f"{'.'.join(str(part) for part in error.path) or '<root>'} -> {error.message}" for error in errors]
