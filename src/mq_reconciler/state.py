"""JSON state file holding the last observed and last applied broker state.

The applied declaration includes write-only secrets (user and LDAP
passwords) because reads cannot return them. The file is written with
owner-only permissions.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .exceptions import ValidationError
from .models import BrokerSpec, LiveState

logger = logging.getLogger(__name__)

STATE_FORMAT_VERSION = 1


@dataclass(frozen=True)
class StateRecord:
    """
    Persisted reconciliation state for one broker.

    Attributes:
        live: Last observed live state
        applied: Last successfully applied declaration
        updated_at: ISO 8601 timestamp of the last write
    """

    live: LiveState
    applied: BrokerSpec
    updated_at: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> StateRecord:
        version = d.get("version", STATE_FORMAT_VERSION)
        if version != STATE_FORMAT_VERSION:
            raise ValidationError(
                "state.version",
                version,
                f"Unsupported state format (expected {STATE_FORMAT_VERSION})",
            )
        return cls(
            live=LiveState.from_dict(d["live"]),
            applied=BrokerSpec.from_dict(d["applied"]),
            updated_at=d.get("updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_FORMAT_VERSION,
            "updated_at": self.updated_at,
            "live": self.live.to_dict(),
            "applied": self.applied.to_dict(),
        }


class StateStore:
    """Reads and writes a :class:`StateRecord` at a fixed path."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @classmethod
    def for_manifest(cls, manifest_path: str | Path) -> StateStore:
        """Default store next to a manifest: ``<manifest>.state.json``."""
        return cls(f"{manifest_path}.state.json")

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> StateRecord | None:
        """
        Load the record, or None if no state has been written yet.

        Raises:
            ValidationError: If the file exists but cannot be parsed
        """
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
            return StateRecord.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValidationError("state_file", str(self.path), f"Unreadable state: {e}") from e

    def save(self, live: LiveState, applied: BrokerSpec) -> StateRecord:
        """Write the record, replacing any previous one."""
        record = StateRecord(
            live=live,
            applied=applied,
            updated_at=datetime.now(UTC).isoformat(),
        )
        tmp = self.path.with_name(self.path.name + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(record.to_dict(), f, indent=2, sort_keys=True)
            f.write("\n")
        os.replace(tmp, self.path)
        logger.debug("Wrote state for broker %s to %s", live.broker_id, self.path)
        return record

    def delete(self) -> None:
        """Remove the state file if it exists."""
        if self.path.exists():
            self.path.unlink()
            logger.debug("Removed state file %s", self.path)
