"""Per-repository whitelist records."""

import logging
from collections.abc import Iterator
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from whitelist_discovery.models import WhitelistRecord

logger = logging.getLogger(__name__)


class WhitelistStore:
    """Holds one frozen WhitelistRecord per proxy repository.

    ``get`` is a plain dict lookup and never touches the disk. Writers replace
    whole records, so no lock is needed between repositories and a reader
    always sees either the old or the new record. When ``path`` is set every
    write is also persisted as ``<repository_id>.json``.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._records: dict[str, WhitelistRecord] = {}

    def get(self, repository_id: str) -> WhitelistRecord | None:
        return self._records.get(repository_id)

    def ids(self) -> list[str]:
        return list(self._records)

    def __iter__(self) -> Iterator[WhitelistRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, repository_id: object) -> bool:
        return repository_id in self._records

    async def put(self, record: WhitelistRecord) -> None:
        """Atomically replace the record for its repository.

        The file is written first, so a failed write leaves the previous
        record in place on disk and in memory alike.
        """
        if self.path is not None:
            await self._write(record)
        self._records[record.repository_id] = record

    async def remove(self, repository_id: str) -> WhitelistRecord | None:
        """Drop a repository's record. Returns the removed record, if any."""
        record = self._records.pop(repository_id, None)
        if self.path is not None:
            target = self._file_for(repository_id)
            if await aiofiles.os.path.exists(target):
                await aiofiles.os.remove(target)
        return record

    async def load(self) -> int:
        """Load persisted records from ``path``. Returns the number loaded."""
        if self.path is None or not self.path.is_dir():
            return 0

        loaded = 0
        for file in sorted(self.path.glob("*.json")):
            try:
                async with aiofiles.open(file, "r", encoding="utf-8") as f:
                    record = WhitelistRecord.model_validate_json(await f.read())
            except (OSError, ValueError):
                logger.warning("Ignoring unreadable whitelist record %s", file, exc_info=True)
                continue
            self._records[record.repository_id] = record
            loaded += 1
        logger.debug("Loaded %d whitelist records from %s", loaded, self.path)
        return loaded

    def _file_for(self, repository_id: str) -> Path:
        assert self.path is not None
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in repository_id)
        return self.path / f"{safe}.json"

    async def _write(self, record: WhitelistRecord) -> None:
        assert self.path is not None
        await aiofiles.os.makedirs(self.path, exist_ok=True)
        target = self._file_for(record.repository_id)
        tmp = target.with_suffix(".json.tmp")
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            await f.write(record.model_dump_json(indent=2))
        await aiofiles.os.replace(tmp, target)
