"""Key-value storage backends for persisted wallet documents."""

import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

from timecapsule_vault.core.errors import WalletStorageError


class StorageBackend(Protocol):
    """String key-value storage, one string value per key."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """In-process storage, useful for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class JsonFileStorage:
    """
    Key-value storage backed by one JSON object on disk.

    Writes go to a temporary file in the same directory which then replaces the
    target, so readers never see a half-written document. The file is created
    with owner-only permissions since it holds private keys.

    Parameters
    ----------
    path : Path
        JSON file location; parent directories are created on first write

    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()

    def _read_all(self) -> dict[str, str]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except ValueError as e:
            msg = f"{self.path} is not valid JSON: {e}"
            raise WalletStorageError(msg) from e
        if not isinstance(data, dict):
            msg = f"{self.path} does not contain a JSON object"
            raise WalletStorageError(msg)
        return data

    def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, indent=2)
            if os.name == "posix":
                os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
