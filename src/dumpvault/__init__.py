"""dumpvault - MySQL backups to S3-compatible storage with tiered retention."""

__version__ = "0.1.0"

from dumpvault.artifacts import RemoteArtifact  # noqa: E402
from dumpvault.backup import BackupRunner  # noqa: E402
from dumpvault.cleanup import CleanupRunner  # noqa: E402
from dumpvault.retention import RetentionPlanner  # noqa: E402
from dumpvault.s3_client import S3Store  # noqa: E402

__all__ = [
    "BackupRunner",
    "CleanupRunner",
    "RemoteArtifact",
    "RetentionPlanner",
    "S3Store",
]
