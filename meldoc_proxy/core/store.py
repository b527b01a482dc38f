"""File-backed stores for credentials and the global workspace default.

Every read goes to disk; nothing is cached between calls. Writes replace the
file atomically so a concurrently running CLI and proxy never see a
half-written file (last writer wins).
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from meldoc_proxy.models.domain.credentials import Credentials

logger = logging.getLogger(__name__)

CREDENTIALS_FILE_MODE = 0o600
CONFIG_FILE_MODE = 0o644
CONFIG_DIR_MODE = 0o700


class StoreError(Exception):
    """Raised when a store cannot be written."""

    def __init__(self, message: str, path: Path | None = None):
        self.message = message
        self.path = path
        super().__init__(message)


class JsonFileStore:
    """A single JSON object persisted in one file."""

    def __init__(self, path: Path, file_mode: int = CONFIG_FILE_MODE):
        self.path = Path(path)
        self.file_mode = file_mode

    def read(self) -> dict[str, Any] | None:
        """Return the stored object, or None if missing or unreadable."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cannot read {self.path}: {e}")
            return None

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring invalid JSON in {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Ignoring {self.path}: expected a JSON object")
            return None
        return data

    def write(self, data: dict[str, Any]) -> None:
        """Replace the file contents atomically."""
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True, mode=CONFIG_DIR_MODE)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
        except OSError as e:
            raise StoreError(f"Cannot write {self.path}: {e}", self.path) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                os.fchmod(f.fileno(), self.file_mode)
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StoreError(f"Cannot write {self.path}: {e}", self.path) from e

    def delete(self) -> bool:
        """Remove the file. Returns False if it did not exist."""
        try:
            self.path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreError(f"Cannot delete {self.path}: {e}", self.path) from e

    def exists(self) -> bool:
        return self.path.exists()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path='{self.path}')"


class CredentialStore:
    """Owner-only credentials file holding the user session."""

    def __init__(self, path: Path):
        self._file = JsonFileStore(path, file_mode=CREDENTIALS_FILE_MODE)

    @property
    def path(self) -> Path:
        return self._file.path

    def load(self) -> Credentials | None:
        data = self._file.read()
        if data is None:
            return None
        try:
            return Credentials.model_validate(data)
        except ValidationError as e:
            logger.warning(
                f"Ignoring malformed credentials in {self.path}: {e.error_count()} error(s)"
            )
            return None

    def save(self, credentials: Credentials) -> None:
        self._file.write(credentials.to_json_dict())
        logger.debug(f"Saved credentials to {self.path}")

    def delete(self) -> bool:
        deleted = self._file.delete()
        if deleted:
            logger.info(f"Deleted credentials at {self.path}")
        return deleted


class GlobalConfigStore:
    """World-readable global config holding the cached workspace alias.

    Unknown keys in the file are preserved on write.
    """

    WORKSPACE_KEY = "workspaceAlias"

    def __init__(self, path: Path):
        self._file = JsonFileStore(path, file_mode=CONFIG_FILE_MODE)

    @property
    def path(self) -> Path:
        return self._file.path

    def read(self) -> dict[str, Any]:
        return self._file.read() or {}

    def get_workspace_alias(self) -> str | None:
        alias = self.read().get(self.WORKSPACE_KEY)
        if isinstance(alias, str) and alias.strip():
            return alias
        return None

    def set_workspace_alias(self, alias: str) -> None:
        config = self.read()
        config[self.WORKSPACE_KEY] = alias
        self._file.write(config)
        logger.info(f"Default workspace set to '{alias}'")


__all__ = [
    "StoreError",
    "JsonFileStore",
    "CredentialStore",
    "GlobalConfigStore",
]
