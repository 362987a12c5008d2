"""Backup artifacts as seen in a remote store listing."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RemoteArtifact:
    """One backup file in remote storage.

    ``id`` is the opaque handle the store needs to fetch or delete the file
    (the full S3 key); ``name`` is what users see and masks are matched
    against (the key relative to the backup folder).
    """

    id: str
    name: str
    modified_at: datetime
    size: int = 0

