"""Audit logger: append-only JSON Lines relay trail with size-based rotation."""

from __future__ import annotations

import fcntl
from pathlib import Path

from src.config import RelaySettings
from src.models import AuditEvent


class AuditLogger:
    """Append-only structured audit logger with rotation.

    Records connection lifecycle and relay outcomes. Callers never pass
    message or reply text; only metadata reaches the file.
    """

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> AuditLogger | None:
        """Create an AuditLogger if the settings name an audit log path."""
        if not settings.audit_log_path:
            return None
        return cls(
            log_path=settings.audit_log_path,
            max_bytes=settings.audit_log_max_bytes,
            backup_count=settings.audit_log_backup_count,
        )

    def _maybe_rotate(self) -> None:
        if not self.log_path.exists():
            return
        if self.log_path.stat().st_size < self._max_bytes:
            return

        oldest = self.log_path.parent / f"{self.log_path.name}.{self._backup_count}"
        if oldest.exists():
            oldest.unlink()

        for i in range(self._backup_count - 1, 0, -1):
            src = self.log_path.parent / f"{self.log_path.name}.{i}"
            dst = self.log_path.parent / f"{self.log_path.name}.{i + 1}"
            if src.exists():
                src.rename(dst)

        self.log_path.rename(self.log_path.parent / f"{self.log_path.name}.1")

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        line = event.model_dump_json()

        # Rotation and append share one lock so concurrent writers never
        # rotate a file another writer is appending to.
        lock_file = self.log_path.parent / f".{self.log_path.name}.lock"
        with open(lock_file, "w") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX)
            try:
                self._maybe_rotate()
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lf, fcntl.LOCK_UN)
