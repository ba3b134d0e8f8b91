"""Locates monthly dump files in a local directory."""

import asyncio
import hashlib
import logging
from collections.abc import Sequence
from pathlib import Path

from waxsync.config import CatalogImportSettings
from waxsync.domain.entities import EntityType
from waxsync.domain.exceptions import SourceUnavailableError
from waxsync.domain.ports import DumpFile, IDumpSource

logger = logging.getLogger(__name__)

_HASH_CHUNK = 1024 * 1024


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def parse_checksum_file(path: Path) -> dict[str, str]:
    """Parse a ``<sha256>  <filename>`` listing into filename -> digest."""
    checksums: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        parts = line.split()
        if len(parts) >= 2:
            checksums[parts[-1].lstrip("*")] = parts[0].lower()
    return checksums


# Hey future me, this source does NOT download anything! Fetching the monthly files is someone
# else's job (cron + curl, a sidecar, whatever). We only look in <dump_dir>/<period>/ for files
# named like discogs_20240101_labels.xml.gz (or plain .xml), and if a *CHECKSUM.txt sits next to
# them we verify SHA-256 so a half-downloaded file never reaches the decoder.
class LocalDumpSource(IDumpSource):
    """Dump files under ``<dump_dir>/<period>/``."""

    def __init__(self, dump_dir: Path, verify_checksums: bool = True) -> None:
        self.dump_dir = Path(dump_dir)
        self.verify_checksums = verify_checksums

    @classmethod
    def from_settings(cls, settings: CatalogImportSettings) -> "LocalDumpSource":
        return cls(settings.dump_dir, verify_checksums=settings.verify_checksums)

    def period_dir(self, period: str) -> Path:
        return self.dump_dir / period

    def find_dump(self, period: str, entity_type: EntityType) -> Path:
        """Find the dump of one entity type, preferring the compressed file."""
        directory = self.period_dir(period)
        if not directory.is_dir():
            raise SourceUnavailableError(f"Dump directory {directory} does not exist")

        for pattern in (f"*{entity_type.value}.xml.gz", f"*{entity_type.value}.xml"):
            matches = sorted(directory.glob(pattern))
            if len(matches) > 1:
                raise SourceUnavailableError(
                    f"Ambiguous {entity_type.value} dumps in {directory}: "
                    + ", ".join(match.name for match in matches)
                )
            if matches:
                return matches[0]
        raise SourceUnavailableError(
            f"No {entity_type.value} dump for period {period} in {directory}"
        )

    async def prepare(
        self, period: str, entity_types: Sequence[EntityType]
    ) -> dict[EntityType, DumpFile]:
        """Locate every requested dump and verify checksums when available.

        Raises:
            SourceUnavailableError: Missing, empty, ambiguous or corrupt files.
        """
        checksums = self._load_checksums(period)
        files: dict[EntityType, DumpFile] = {}
        for entity_type in entity_types:
            path = self.find_dump(period, entity_type)
            size = path.stat().st_size
            if size == 0:
                raise SourceUnavailableError(f"Dump {path.name} is empty")

            checksum: str | None = None
            expected = checksums.get(path.name)
            if expected is not None:
                checksum = await asyncio.to_thread(sha256_file, path)
                if checksum != expected:
                    raise SourceUnavailableError(
                        f"Checksum mismatch for {path.name}: expected {expected}, got {checksum}"
                    )
                logger.info("Verified checksum of %s", path.name)

            files[entity_type] = DumpFile(
                entity_type=entity_type, path=path, size_bytes=size, checksum=checksum
            )
            logger.info("Located %s dump %s (%d bytes)", entity_type.value, path.name, size)
        return files

    def _load_checksums(self, period: str) -> dict[str, str]:
        if not self.verify_checksums:
            return {}
        directory = self.period_dir(period)
        if not directory.is_dir():
            return {}
        checksums: dict[str, str] = {}
        for checksum_file in sorted(directory.glob("*CHECKSUM.txt")):
            checksums.update(parse_checksum_file(checksum_file))
        return checksums
