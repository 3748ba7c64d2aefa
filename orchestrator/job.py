"""In-memory handle for the active pricing run and the owner stamp of its process."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import os
import socket
from threading import Event, Lock, Thread
from typing import Optional

from core import JobSnapshot, RunTotals
from core.contracts import RunState


def process_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def owner_process_gone(owner: Optional[str]) -> bool:
    """True when ``owner`` names a process on this host that no longer exists."""
    host, _, pid = str(owner or "").rpartition(":")
    if host != socket.gethostname() or not pid.isdigit() or int(pid) <= 0:
        return False
    try:
        os.kill(int(pid), 0)
    except ProcessLookupError:
        return True
    except PermissionError:
        return False
    except OverflowError:
        return True
    return False


@dataclass
class JobHandle:
    """Live progress of one run. The persisted report stays authoritative."""

    run_id: str
    started_at: datetime
    dry_run: bool = False
    initiated_by: Optional[str] = None
    status: RunState = "running"
    stage: str = "initializing"
    message: str = "Starting AI pricing run"
    processed: int = 0
    total: int = 0
    totals: RunTotals = field(default_factory=RunTotals)
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    thread: Optional[Thread] = None
    cancel_event: Event = field(default_factory=Event)
    _lock: Lock = field(default_factory=Lock, repr=False)

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    def request_cancel(self) -> None:
        self.cancel_event.set()

    def update(self, **fields) -> None:
        with self._lock:
            for key, value in fields.items():
                setattr(self, key, value)

    def snapshot(self) -> JobSnapshot:
        with self._lock:
            return JobSnapshot(
                run_id=self.run_id,
                status=self.status,
                started_at=self.started_at,
                finished_at=self.finished_at,
                dry_run=self.dry_run,
                stage=self.stage,
                message=self.message,
                processed=self.processed,
                total=self.total,
                cancel_requested=self.cancel_event.is_set(),
                totals=self.totals.model_copy(),
                error=self.error,
            )
