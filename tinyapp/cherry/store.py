"""Persistence for cherry specs and build records.

Specs are write-once: storing an id twice is a programming error.  Build
records are overwritten on every status change.  The file stores keep each
spec as ``<builds>/<id>-spec.json`` so the builds directory doubles as the
download area, and build records under ``<builds>/.records/``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol

from ..utils import load_json, save_json
from .models import CHERRY_ID_PATTERN, CherryBuildRecord, CherrySpec

SPEC_SUFFIX = "-spec.json"
RECORDS_DIRNAME = ".records"


class SpecStore(Protocol):
    async def put(self, spec: CherrySpec) -> None: ...

    async def get(self, cherry_id: str) -> CherrySpec | None: ...


class BuildRecordStore(Protocol):
    async def put(self, record: CherryBuildRecord) -> None: ...

    async def get(self, cherry_id: str) -> CherryBuildRecord | None: ...


def is_valid_cherry_id(cherry_id: str) -> bool:
    return bool(CHERRY_ID_PATTERN.match(cherry_id))


class InMemorySpecStore:
    def __init__(self) -> None:
        self._specs: dict[str, CherrySpec] = {}

    async def put(self, spec: CherrySpec) -> None:
        if spec.id in self._specs:
            raise ValueError(f"Spec '{spec.id}' is already stored")
        self._specs[spec.id] = spec

    async def get(self, cherry_id: str) -> CherrySpec | None:
        return self._specs.get(cherry_id)


class InMemoryBuildRecordStore:
    def __init__(self) -> None:
        self._records: dict[str, CherryBuildRecord] = {}

    async def put(self, record: CherryBuildRecord) -> None:
        self._records[record.cherry_id] = record

    async def get(self, cherry_id: str) -> CherryBuildRecord | None:
        return self._records.get(cherry_id)


class FileSpecStore:
    """Specs as JSON files in the builds directory.

    Ids that do not match the cherry id format are never turned into paths,
    so a request cannot point the store outside *builds_dir*.
    """

    def __init__(self, builds_dir: Path) -> None:
        self.builds_dir = Path(builds_dir)

    def path_for(self, cherry_id: str) -> Path:
        return self.builds_dir / f"{cherry_id}{SPEC_SUFFIX}"

    async def put(self, spec: CherrySpec) -> None:
        if not is_valid_cherry_id(spec.id):
            raise ValueError(f"Invalid cherry id: {spec.id!r}")
        path = self.path_for(spec.id)
        if path.exists():
            raise ValueError(f"Spec '{spec.id}' is already stored")
        await save_json(spec.to_response(), path)

    async def get(self, cherry_id: str) -> CherrySpec | None:
        if not is_valid_cherry_id(cherry_id):
            return None
        path = self.path_for(cherry_id)
        if not path.is_file():
            return None
        data = await asyncio.to_thread(load_json, path)
        return CherrySpec.model_validate(data)


class FileBuildRecordStore:
    def __init__(self, builds_dir: Path) -> None:
        self.records_dir = Path(builds_dir) / RECORDS_DIRNAME

    def path_for(self, cherry_id: str) -> Path:
        return self.records_dir / f"{cherry_id}.json"

    async def put(self, record: CherryBuildRecord) -> None:
        if not is_valid_cherry_id(record.cherry_id):
            raise ValueError(f"Invalid cherry id: {record.cherry_id!r}")
        await save_json(
            record.model_dump(mode="json", by_alias=True), self.path_for(record.cherry_id)
        )

    async def get(self, cherry_id: str) -> CherryBuildRecord | None:
        if not is_valid_cherry_id(cherry_id):
            return None
        path = self.path_for(cherry_id)
        if not path.is_file():
            return None
        data = await asyncio.to_thread(load_json, path)
        return CherryBuildRecord.model_validate(data)
