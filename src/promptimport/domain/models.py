# src/promptimport/domain/models.py
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidTransition

SHA256_PREFIX = "sha256:"
REGISTRY_VERSION_PREFIX = "registry:version:"
# Prefix written by older exporters that predate the registry-neutral form.
LEGACY_REGISTRY_VERSION_PREFIX = "civitai:version:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DependencyStatus(str, Enum):
    pending = "pending"
    resolved = "resolved"
    download_scheduled = "downloadscheduled"
    downloading = "downloading"
    failed = "failed"


class JobStatus(str, Enum):
    analyzing = "analyzing"
    resolving = "resolving"
    downloading = "downloading"
    completed = "completed"
    partially_completed = "partiallycompleted"
    failed = "failed"


TERMINAL_JOB_STATUSES = frozenset(
    {JobStatus.completed, JobStatus.partially_completed, JobStatus.failed}
)

_ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.analyzing: frozenset({JobStatus.resolving, JobStatus.failed}),
    JobStatus.resolving: frozenset(
        {
            JobStatus.downloading,
            JobStatus.completed,
            JobStatus.partially_completed,
            JobStatus.failed,
        }
    ),
    JobStatus.downloading: frozenset(
        {JobStatus.completed, JobStatus.partially_completed, JobStatus.failed}
    ),
    JobStatus.completed: frozenset(),
    JobStatus.partially_completed: frozenset(),
    JobStatus.failed: frozenset(),
}


@dataclass
class Session:
    """Caller identity handed to the pipeline by the boundary layer."""

    user_id: str
    is_admin: bool = False
    civitai_api_key: Optional[str] = None

    def can_read(self, owner_id: str) -> bool:
        return self.is_admin or self.user_id == owner_id


# ---------- Dependency references ----------


@dataclass(frozen=True)
class DependencyReference:
    kind: str
    raw_reference: str
    sha256: Optional[str] = None
    registry_version_id: Optional[str] = None
    filename: Optional[str] = None


def _strip_prefix(value: str, prefix: str) -> Optional[str]:
    if value.lower().startswith(prefix):
        return value[len(prefix):].strip()
    return None


def create_dependency(kind: str, reference: str) -> DependencyReference:
    """
    Turn a raw reference string into a structured DependencyReference.

    ``sha256:<hex>`` populates sha256, ``registry:version:<id>`` populates
    registry_version_id, anything else is kept whole as a filename.
    """
    ref = (reference or "").strip()

    sha = _strip_prefix(ref, SHA256_PREFIX)
    if sha is not None:
        return DependencyReference(kind=kind, raw_reference=ref, sha256=sha)

    for prefix in (REGISTRY_VERSION_PREFIX, LEGACY_REGISTRY_VERSION_PREFIX):
        version_id = _strip_prefix(ref, prefix)
        if version_id is not None:
            return DependencyReference(
                kind=kind, raw_reference=ref, registry_version_id=version_id
            )

    return DependencyReference(kind=kind, raw_reference=ref, filename=ref)


# ---------- Tier results ----------


class TierOutcome(str, Enum):
    resolved = "resolved"
    scheduled = "scheduled"
    unresolved = "unresolved"
    denied = "denied"


@dataclass(frozen=True)
class TierResult:
    outcome: TierOutcome
    source: Optional[str] = None
    path: Optional[str] = None
    filename: Optional[str] = None
    download_url: Optional[str] = None
    download_job_id: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def resolved(cls, path: str, source: str) -> "TierResult":
        return cls(TierOutcome.resolved, source=source, path=path)

    @classmethod
    def scheduled(
        cls,
        source: str,
        filename: Optional[str],
        download_url: str,
        download_job_id: Optional[str] = None,
    ) -> "TierResult":
        return cls(
            TierOutcome.scheduled,
            source=source,
            filename=filename,
            download_url=download_url,
            download_job_id=download_job_id,
        )

    @classmethod
    def unresolved(cls, reason: Optional[str] = None) -> "TierResult":
        return cls(TierOutcome.unresolved, reason=reason)

    @classmethod
    def denied(cls, reason: str) -> "TierResult":
        return cls(TierOutcome.denied, reason=reason)

    @property
    def is_final(self) -> bool:
        """Anything but UNRESOLVED stops the tier chain."""
        return self.outcome is not TierOutcome.unresolved


# ---------- Dependency records ----------


@dataclass
class DependencyRecord:
    reference: DependencyReference
    status: DependencyStatus = DependencyStatus.pending
    sha256: Optional[str] = None
    filename: Optional[str] = None
    resolved_path: Optional[str] = None
    resolved_source: Optional[str] = None
    error_message: Optional[str] = None
    download_job_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.sha256 is None:
            self.sha256 = self.reference.sha256
        if self.filename is None:
            self.filename = self.reference.filename

    @classmethod
    def from_reference(cls, reference: DependencyReference) -> "DependencyRecord":
        return cls(reference=reference)

    @property
    def kind(self) -> str:
        return self.reference.kind

    @property
    def registry_version_id(self) -> Optional[str]:
        return self.reference.registry_version_id

    @property
    def is_pending(self) -> bool:
        return self.status is DependencyStatus.pending

    def mark_resolved(self, path: str, source: str) -> None:
        if not path:
            raise ValueError("A resolved dependency needs a resolved_path")
        if not source:
            raise ValueError("A resolved dependency needs a resolved_source")
        self.status = DependencyStatus.resolved
        self.resolved_path = path
        self.resolved_source = source
        self.error_message = None

    def mark_scheduled(
        self,
        source: str,
        filename: Optional[str] = None,
        download_job_id: Optional[str] = None,
    ) -> None:
        if not source:
            raise ValueError("A scheduled download needs a resolved_source")
        self.status = DependencyStatus.download_scheduled
        self.resolved_source = source
        if filename:
            self.filename = filename
        self.download_job_id = download_job_id
        self.error_message = None

    def mark_failed(self, message: str) -> None:
        if not message:
            raise ValueError("A failed dependency needs an error_message")
        self.status = DependencyStatus.failed
        self.error_message = message
        self.resolved_source = None

    def apply(self, result: TierResult) -> None:
        if result.outcome is TierOutcome.resolved:
            self.mark_resolved(result.path or "", result.source or "")
        elif result.outcome is TierOutcome.scheduled:
            self.mark_scheduled(
                result.source or "", result.filename, result.download_job_id
            )
        elif result.outcome is TierOutcome.denied:
            self.mark_failed(result.reason or "Dependency rejected")
        # UNRESOLVED leaves the record untouched

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.kind,
            "reference": self.reference.raw_reference,
            "status": self.status.value,
        }
        optional = (
            ("sha256", self.sha256),
            ("civitai_version_id", self.registry_version_id),
            ("filename", self.filename),
            ("resolved_path", self.resolved_path),
            ("resolved_source", self.resolved_source),
            ("error_message", self.error_message),
            ("download_job_id", self.download_job_id),
        )
        for key, value in optional:
            if value:
                data[key] = value
        return data


# ---------- Import jobs ----------


@dataclass
class ImportJob:
    """
    One user-initiated import request.

    Only the job's background worker calls the mutators below; observers use
    snapshot()/to_json(). Every mutator and every read takes the per-job lock,
    so a snapshot never sees a half-applied update.
    """

    owner_id: str
    source_payload: Dict[str, Any]
    format_hint: str = "auto"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.analyzing
    dependencies: List[DependencyRecord] = field(default_factory=list)
    progress: float = 0.0
    created_at: datetime = field(default_factory=_utcnow)
    last_updated: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    revision: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    # -- mutators (worker only) --

    def _touch(self) -> None:
        now = _utcnow()
        # keep last_updated strictly increasing for observers comparing stamps
        if now <= self.last_updated:
            now = self.last_updated + timedelta(microseconds=1)
        self.last_updated = now
        self.revision += 1

    def _transition(self, target: JobStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(self.id, self.status.value, target.value)
        self.status = target

    def begin_resolving(self, references: List[DependencyReference]) -> None:
        with self._lock:
            self._transition(JobStatus.resolving)
            self.dependencies = [DependencyRecord.from_reference(r) for r in references]
            self._touch()

    def apply_result(self, record: DependencyRecord, result: TierResult) -> None:
        with self._lock:
            if self.is_terminal:
                raise InvalidTransition(self.id, self.status.value, "apply_result")
            record.apply(result)
            self._touch()

    def fail_dependency(self, record: DependencyRecord, message: str) -> None:
        with self._lock:
            if self.is_terminal:
                raise InvalidTransition(self.id, self.status.value, "fail_dependency")
            record.mark_failed(message)
            self._touch()

    def record_progress(self, processed: int) -> None:
        with self._lock:
            if self.is_terminal:
                raise InvalidTransition(self.id, self.status.value, "record_progress")
            total = len(self.dependencies)
            progress = processed / total if total else 1.0
            self.progress = max(self.progress, min(progress, 1.0))
            self._touch()

    def complete(self) -> JobStatus:
        with self._lock:
            all_resolved = all(
                d.status is DependencyStatus.resolved for d in self.dependencies
            )
            self._transition(
                JobStatus.completed if all_resolved else JobStatus.partially_completed
            )
            self.progress = 1.0
            self.completed_at = _utcnow()
            self._touch()
            return self.status

    def fail(self, message: str) -> None:
        with self._lock:
            self._transition(JobStatus.failed)
            self.error_message = message or "Import job failed"
            self.completed_at = _utcnow()
            self._touch()

    # -- reads --

    def _to_json_unlocked(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "job_id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "created_at": self.created_at.isoformat(),
            "last_updated": self.last_updated.isoformat(),
        }
        if self.completed_at is not None:
            data["completed_at"] = self.completed_at.isoformat()
        if self.error_message:
            data["error_message"] = self.error_message
        data["dependencies"] = [d.to_json() for d in self.dependencies]
        return data

    def snapshot(self) -> Tuple[int, Dict[str, Any]]:
        """Return (revision, json) taken atomically."""
        with self._lock:
            return self.revision, self._to_json_unlocked()

    def to_json(self) -> Dict[str, Any]:
        return self.snapshot()[1]
