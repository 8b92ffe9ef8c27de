"""Durable persistence of the live credential.

The file is rewritten atomically (tmp + rename) on every renewal and read
once at startup. Token files written by the browser-extension era of the
bot (camelCase keys, no expiry) are still accepted; they load as already
expired so the first ``obtain_valid`` refreshes them.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

import bittensor as bt
from pydantic import ValidationError

from .models import Credential


@runtime_checkable
class CredentialStore(Protocol):
    """Abstract interface for loading/saving the current credential."""

    def load(self) -> Credential | None:
        """Return the persisted credential, or None if there is none."""
        ...

    def save(self, credential: Credential) -> None:
        """Overwrite the persisted credential."""
        ...


_LEGACY_KEYS = {
    "accessToken": "access_token",
    "idToken": "id_token",
    "refreshToken": "refresh_token",
}


class FileCredentialStore:
    """JSON-file CredentialStore."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Credential | None:
        """Load the credential from disk. Missing or corrupt files yield None."""
        if not self.path.exists():
            bt.logging.info({"credential_store": "no_token_file", "path": str(self.path)})
            return None

        try:
            with open(self.path) as f:
                data = json.load(f)
            if "access_token" not in data and "accessToken" in data:
                data = {new: data.get(old, "") for old, new in _LEGACY_KEYS.items()}
                data["expires_at"] = datetime.fromtimestamp(0, tz=timezone.utc)
            credential = Credential(**data)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            bt.logging.warning({"credential_store": f"token_file_corrupt, ignoring: {e}"})
            return None

        bt.logging.info({
            "credential_store": "loaded",
            "expires_at": credential.expires_at.isoformat(),
        })
        return credential

    def save(self, credential: Credential) -> None:
        """Atomically write the credential to disk (tmp + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(tmp_fd, "w") as f:
                json.dump(credential.model_dump(mode="json"), f, indent=2)
            os.replace(tmp_path, str(self.path))
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


__all__ = ["CredentialStore", "FileCredentialStore"]
