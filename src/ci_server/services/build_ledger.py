"""File-backed build history.

One builds.json per repository under the ledger root, e.g.
data/repositories/<owner>/<repo>/builds.json, holding a pretty-printed JSON
array of build records in append order.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ci_server.schemas.builds import BuildRecord, BuildSummary
from ci_server.schemas.github import repository_path_parts

logger = logging.getLogger(__name__)

BUILDS_FILENAME = "builds.json"


class LedgerCorruptionError(Exception):
    """Raised when a stored build collection is not a well-formed JSON array of records."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class BuildLedger:
    """
    Append-only store of build records, partitioned by repository.

    A single lock guards every read and read-modify-write, so readers never
    observe a half-written collection and concurrent appends never lose
    updates.
    """

    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir)
        self._lock = threading.Lock()

    def append(self, repository_full_name: str, record: BuildRecord) -> None:
        """
        Append a record to the repository's collection.

        Raises:
            LedgerCorruptionError: If the existing collection is malformed
            ValueError: If the repository name would escape the ledger root
        """
        builds_file = self._builds_file(repository_full_name)
        with self._lock:
            existing = self._read_raw(builds_file)
            existing.append(record.model_dump(mode="json", by_alias=True))
            self._write_raw(builds_file, existing)

        logger.info(
            "Build recorded",
            extra={
                "build_id": record.id,
                "repository": repository_full_name,
                "status": record.status.value,
                "builds_in_repository": len(existing),
            },
        )

    def list_summaries(self) -> list[BuildSummary]:
        """
        Summaries of every stored build, newest buildDate first.

        Builds with the same buildDate keep their scan order: repositories
        in sorted path order, records in append order.
        """
        with self._lock:
            records = self._load_all()
        summaries = [record.to_summary() for record in records]
        summaries.sort(key=lambda s: s.build_date.timestamp(), reverse=True)
        return summaries

    def get_by_id(self, build_id: str) -> BuildRecord | None:
        """Find a build by ID across all repositories."""
        if not build_id:
            return None
        with self._lock:
            for record in self._load_all():
                if record.id == build_id:
                    return record
        return None

    def _builds_file(self, repository_full_name: str) -> Path:
        parts = repository_path_parts(repository_full_name)
        return self.root_dir.joinpath(*parts, BUILDS_FILENAME)

    def _load_all(self) -> list[BuildRecord]:
        if not self.root_dir.is_dir():
            return []

        records: list[BuildRecord] = []
        for builds_file in sorted(self.root_dir.rglob(BUILDS_FILENAME)):
            if not builds_file.is_file():
                continue
            for entry in self._read_raw(builds_file):
                try:
                    records.append(BuildRecord.model_validate(entry))
                except ValidationError as e:
                    raise LedgerCorruptionError(
                        f"Invalid build record in {builds_file.absolute()}: {e}",
                        path=builds_file,
                    ) from e
        return records

    def _read_raw(self, builds_file: Path) -> list[dict[str, Any]]:
        if not builds_file.is_file():
            return []

        content = builds_file.read_text(encoding="utf-8").strip()
        if not content:
            return []

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise LedgerCorruptionError(
                f"Invalid JSON in {builds_file.absolute()}", path=builds_file
            ) from e

        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise LedgerCorruptionError(
                f"Expected a JSON array of objects in {builds_file.absolute()}",
                path=builds_file,
            )
        return data

    def _write_raw(self, builds_file: Path, builds: list[dict[str, Any]]) -> None:
        builds_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=builds_file.parent, prefix=f".{BUILDS_FILENAME}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(builds, fh, indent=2)
                fh.write("\n")
            os.replace(tmp_name, builds_file)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
