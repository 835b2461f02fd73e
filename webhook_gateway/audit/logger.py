"""Gateway audit trail: append-only JSON lines, hash-chained, size-rotated."""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path

from webhook_gateway.models import AuditEvent


@dataclass
class ChainValidationResult:
    valid: bool
    broken_at_line: int | None = None


def _line_hash(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def _last_line_of(path: Path) -> str | None:
    if not path.exists():
        return None
    return path.read_text().strip().split("\n")[-1] or None


def validate_audit_chain(log_path: Path) -> ChainValidationResult:
    """Check that every entry's prev_hash is the hash of the line before it.

    The first line links to the last line of ``<name>.1`` when a rotated
    backup exists, and must have a null prev_hash otherwise.
    """
    text = log_path.read_text().strip()
    if not text:
        return ChainValidationResult(valid=True)

    lines = text.split("\n")
    backup_last = _last_line_of(log_path.with_name(f"{log_path.name}.1"))
    expected_first = _line_hash(backup_last) if backup_last is not None else None
    if json.loads(lines[0]).get("prev_hash") != expected_first:
        return ChainValidationResult(valid=False, broken_at_line=1)

    for lineno in range(2, len(lines) + 1):
        entry = json.loads(lines[lineno - 1])
        if entry.get("prev_hash") != _line_hash(lines[lineno - 2]):
            return ChainValidationResult(valid=False, broken_at_line=lineno)

    return ChainValidationResult(valid=True)


class AuditLogger:
    """Records one event per terminal gateway decision.

    Entries never carry secrets, signatures or request bodies.
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
        self._lock_path = self.log_path.parent / f".{self.log_path.name}.lock"
        self._last_line = self._read_last_line()

    @classmethod
    def from_env(cls, log_path: str) -> AuditLogger:
        return cls(
            log_path=log_path,
            max_bytes=int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760")),
            backup_count=int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5")),
        )

    def _read_last_line(self) -> str | None:
        return _last_line_of(self.log_path)

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _rotate_if_needed(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return
        self._backup(self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            if self._backup(index).exists():
                self._backup(index).rename(self._backup(index + 1))
        self.log_path.rename(self._backup(1))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        entry = event.model_dump(mode="json")
        entry["prev_hash"] = (
            _line_hash(self._last_line) if self._last_line is not None else None
        )
        line = json.dumps(entry, separators=(",", ":"))

        # Lock held across rotate+append so concurrent workers can't interleave
        with open(self._lock_path, "w") as lock:
            fcntl.flock(lock, fcntl.LOCK_EX)
            try:
                self._rotate_if_needed()
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)

        self._last_line = line
