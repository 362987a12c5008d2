"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from dumpvault.artifacts import RemoteArtifact
from dumpvault.config import DatabaseConfig, S3Config
from dumpvault.exceptions import ImportFailureError, StorageError

SAMPLE_DUMP = """-- MySQL dump 10.13  Distrib 8.0.36, for Linux (x86_64)
--
-- Host: 127.0.0.1    Database: app
-- ------------------------------------------------------
/*!40101 SET NAMES utf8mb4 */;

--
-- Table structure for table `users`
--

DROP TABLE IF EXISTS `users`;
CREATE TABLE `users` (
  `id` int NOT NULL,
  `name` varchar(255) DEFAULT NULL,
  PRIMARY KEY (`id`)
);

--
-- Dumping data for table `users`
--

LOCK TABLES `users` WRITE;
INSERT INTO `users` VALUES (1,'alice'),(2,'bob');
UNLOCK TABLES;

--
-- Table structure for table `posts`
--

DROP TABLE IF EXISTS `posts`;
CREATE TABLE `posts` (
  `id` int NOT NULL,
  `user_id` int NOT NULL,
  PRIMARY KEY (`id`)
);

--
-- Dumping data for table `posts`
--

LOCK TABLES `posts` WRITE;
INSERT INTO `posts` VALUES (1,1),(2,2);
UNLOCK TABLES;
/*!40101 SET CHARACTER_SET_CLIENT=@OLD_CHARACTER_SET_CLIENT */;

-- Dump completed on 2024-01-20 15:00:00
"""


@pytest.fixture
def s3_config() -> S3Config:
    """Create test S3 configuration."""
    return S3Config(bucket="test-bucket", region="us-east-1", prefix="backups/")


@pytest.fixture
def db_config() -> DatabaseConfig:
    """Create test database configuration."""
    return DatabaseConfig(name="app", host="db.local", port=3306, user="backup", password="secret")


@pytest.fixture
def sample_dump() -> str:
    """mysqldump output with a `users` and a `posts` block."""
    return SAMPLE_DUMP


@pytest.fixture
def dump_file(tmp_path: Path, sample_dump: str) -> Path:
    """The sample dump written to disk."""
    path = tmp_path / "backup.sql"
    path.write_text(sample_dump, encoding="utf-8")
    return path


def make_artifact(name: str, modified: str, artifact_id: Optional[str] = None) -> RemoteArtifact:
    """Artifact with an ISO timestamp; naive timestamps are taken as UTC."""
    moment = datetime.fromisoformat(modified)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return RemoteArtifact(id=artifact_id or f"backups/{name}", name=name, modified_at=moment)


class FakeStore:
    """In-memory remote store serving local files as backups."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[RemoteArtifact, bytes]] = {}
        self.deleted: list[str] = []
        self.downloads: list[str] = []
        self.fail_listing = False
        self.fail_delete: set[str] = set()

    def add(self, name: str, modified: str, content: bytes = b"") -> RemoteArtifact:
        artifact = make_artifact(name, modified)
        self.objects[artifact.id] = (artifact, content)
        return artifact

    def list_artifacts(self) -> list[RemoteArtifact]:
        if self.fail_listing:
            raise StorageError("S3 list failed: AccessDenied")
        artifacts = [artifact for artifact, _ in self.objects.values()]
        return sorted(artifacts, key=lambda a: a.modified_at, reverse=True)

    def download(self, artifact_id: str, local_path: Path) -> None:
        self.downloads.append(artifact_id)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(self.objects[artifact_id][1])

    def upload(self, file_path: Path, remote_name: str) -> dict:
        artifact = self.add(remote_name, "2024-01-20T15:00:00", file_path.read_bytes())
        return {"bucket": "fake", "key": artifact.id, "size": file_path.stat().st_size}

    def delete(self, artifact_id: str) -> None:
        if artifact_id in self.fail_delete:
            raise StorageError("S3 delete failed: AccessDenied", context={"key": artifact_id})
        self.deleted.append(artifact_id)


class FakeImporter:
    """Records imported files; can fail on a given file name."""

    def __init__(self, fail_on: Optional[str] = None, exit_code: int = 1) -> None:
        self.fail_on = fail_on
        self.exit_code = exit_code
        self.imported: list[Path] = []
        self.contents: dict[str, str] = {}

    def import_file(self, path: Path) -> None:
        if path.name == self.fail_on:
            raise ImportFailureError(f"mysql import of {path.name} failed", exit_code=self.exit_code)
        self.imported.append(path)
        self.contents[path.name] = path.read_text(encoding="utf-8")


@pytest.fixture
def fake_store() -> FakeStore:
    """Empty in-memory store."""
    return FakeStore()


@pytest.fixture
def fake_importer() -> FakeImporter:
    """Importer that accepts every file."""
    return FakeImporter()


@pytest.fixture
def artifact_factory():
    """Build RemoteArtifact objects from a name and an ISO timestamp."""
    return make_artifact


@pytest.fixture
def importer_factory():
    """Build importers that fail on a chosen file."""
    return FakeImporter
