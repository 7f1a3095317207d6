"""
Repository-local configuration store.

Key/value settings for one repository live in <git-dir>/sage/config.json,
separate from the operation history. Keys are dotted paths into SageConfig
(e.g. ``sync.strategy``); values are validated before the file is written.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, get_origin

from pydantic import BaseModel, ValidationError

from sagegit.core.errors import ConfigError, PersistenceError

from .loader import LOCAL_CONFIG_FILENAME, deep_merge, get_default_config
from .models import SageConfig


def parse_value(raw: str) -> Any:
    """Interpret a CLI value as JSON (true, 30, "x", [..]) or fall back to a plain string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _check_key(key: str) -> list[str]:
    """Split a dotted key and verify it names a SageConfig field."""
    parts = key.split(".")
    model: type[BaseModel] | None = SageConfig
    for i, part in enumerate(parts):
        if model is None or part not in model.model_fields:
            raise ConfigError(f"Unknown configuration key: {key}", key=key)
        annotation = model.model_fields[part].annotation
        is_model = (
            get_origin(annotation) is None
            and isinstance(annotation, type)
            and issubclass(annotation, BaseModel)
        )
        if i < len(parts) - 1 and not is_model:
            raise ConfigError(f"Unknown configuration key: {key}", key=key)
        model = annotation if is_model else None
    return parts


def lookup(data: dict[str, Any], key: str) -> Any:
    """Dotted lookup; raises KeyError when any segment is missing."""
    current: Any = data
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            raise KeyError(key)
        current = current[part]
    return current


class LocalConfigStore:
    """
    Read/write access to <git-dir>/sage/config.json.

    Example:
        >>> store = LocalConfigStore.for_control_dir(Path(".git/sage"))
        >>> store.set("sync.strategy", "rebase")
        >>> store.read()
        {'sync': {'strategy': 'rebase'}}
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def for_control_dir(cls, control_dir: Path) -> "LocalConfigStore":
        return cls(control_dir / LOCAL_CONFIG_FILENAME)

    def read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(
                f"Failed to read local config {self.path}: {e}", path=str(self.path)
            ) from e
        if not isinstance(data, dict):
            raise PersistenceError(
                f"Local config {self.path} must contain a JSON object", path=str(self.path)
            )
        return data

    def get(self, key: str) -> Any:
        _check_key(key)
        return lookup(self.read(), key)

    def set(self, key: str, value: Any) -> None:
        """
        Set a dotted key and persist atomically.

        Raises:
            ConfigError: If the key is unknown or the value fails validation
        """
        parts = _check_key(key)
        data = self.read()

        node = data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

        self._validate(data, key)
        self._write(data)

    def unset(self, key: str) -> bool:
        """Remove a key; returns False if it was not set."""
        parts = _check_key(key)
        data = self.read()

        node = data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                return False
            node = child
        if parts[-1] not in node:
            return False
        del node[parts[-1]]
        self._write(data)
        return True

    def _validate(self, data: dict[str, Any], key: str) -> None:
        try:
            SageConfig(**deep_merge(get_default_config(), data))
        except ValidationError as e:
            first = e.errors()[0]
            raise ConfigError(
                f"Invalid value for {key}: {first['msg']}", key=key
            ) from e

    def _write(self, data: dict[str, Any]) -> None:
        """Write the store atomically via temp file + replace."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=".config_",
            suffix=".json.tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise PersistenceError(
                f"Failed to write local config {self.path}: {e}", path=str(self.path)
            ) from e
