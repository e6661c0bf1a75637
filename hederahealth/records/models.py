"""Value objects of the file registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class UploadFile:
    """A document handed to :meth:`FileRegistry.upload`."""

    name: str
    size: int  # bytes
    type: str  # MIME type


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 upload date; naive values are taken as UTC."""
    if not isinstance(value, str):
        raise ValueError(f"invalid timestamp: {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class FileRecord:
    id: str
    name: str
    size: int
    type: str
    url: str
    uploaded_at: str  # ISO-8601, UTC
    patient_id: Optional[str] = None

    @property
    def uploaded_datetime(self) -> datetime:
        return parse_timestamp(self.uploaded_at)

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "type": self.type,
            "url": self.url,
            "uploadedAt": self.uploaded_at,
        }
        if self.patient_id is not None:
            out["patientId"] = self.patient_id
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FileRecord":
        """Raises ``KeyError`` or ``ValueError`` on malformed documents."""
        parse_timestamp(data["uploadedAt"])
        return cls(
            id=data["id"],
            name=data["name"],
            size=int(data["size"]),
            type=data.get("type") or "",
            url=data.get("url", ""),
            uploaded_at=data["uploadedAt"],
            patient_id=data.get("patientId"),
        )


# UploadProgress.status values
UPLOADING = "uploading"
COMPLETED = "completed"
ERROR = "error"


@dataclass(frozen=True)
class UploadProgress:
    file_id: str
    file_name: str
    progress: float  # 0 - 100
    status: str
    error: Optional[str] = None


@dataclass(frozen=True)
class StorageStats:
    total_files: int = 0
    total_size: int = 0
    files_by_type: Dict[str, int] = field(default_factory=dict)
