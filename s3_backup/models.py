"""Data models for bucket backups."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

DEFAULT_REGION = "us-east-1"


@dataclass(frozen=True)
class Credential:
    """Resolved AWS credentials plus the account-level region.

    With both keys left as ``None`` boto3 falls back to its default chain
    (environment, shared config, instance metadata), or to ``profile`` when set.
    """

    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = field(default=None, repr=False)
    region: str = DEFAULT_REGION
    profile: Optional[str] = None


@dataclass(frozen=True)
class BucketDescriptor:
    name: str
    region: str


@dataclass(frozen=True)
class DirectoryEntry:
    """A key ending in ``/``: an explicit folder with no payload."""

    key: str
    size: int = 0
    is_directory: ClassVar[bool] = True


@dataclass(frozen=True)
class FileEntry:
    key: str
    size: int = 0
    is_directory: ClassVar[bool] = False


ObjectEntry = Union[DirectoryEntry, FileEntry]


def entry_from_listing(obj: Dict[str, Any]) -> ObjectEntry:
    """Classify one ``Contents`` item of a ``list_objects_v2`` response."""
    key = obj["Key"]
    size = int(obj.get("Size") or 0)
    if key.endswith("/"):
        return DirectoryEntry(key=key, size=size)
    return FileEntry(key=key, size=size)


@dataclass
class ListingPage:
    """A single page of a bucket listing."""

    number: int
    entries: List[ObjectEntry] = field(default_factory=list)
    is_truncated: bool = False
    continuation_token: Optional[str] = None


@dataclass
class ProgressState:
    bucket: str = ""
    total_objects: int = 0
    total_bytes: int = 0
    downloaded_objects: int = 0
    downloaded_bytes: int = 0

    @property
    def percentage(self) -> float:
        if self.total_objects <= 0:
            return 100.0
        return 100.0 * self.downloaded_objects / self.total_objects


class BucketStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    SKIPPED_WRONG_REGION = "skipped_wrong_region"
    SKIPPED_UNAVAILABLE = "skipped_unavailable"
    ABORTED = "aborted"


@dataclass
class BucketResult:
    """Terminal outcome of backing up one bucket."""

    bucket: str
    region: Optional[str]
    status: BucketStatus
    progress: Optional[ProgressState] = None
    tree: List[str] = field(default_factory=list)
    downloaded: List[Tuple[str, str]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (BucketStatus.COMPLETED, BucketStatus.SKIPPED_WRONG_REGION)
