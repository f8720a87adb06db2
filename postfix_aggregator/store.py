"""Document store collaborator: query open transactions and bulk-write aggregates.

``FileDocumentStore`` keeps one NDJSON file per collection. The file is
created by the first write, so searching a collection that was never
written raises ``CollectionNotFoundError``.
"""

import json
import logging
import os
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the document store cannot serve a request."""


class CollectionNotFoundError(StoreError):
    """Raised when a queried collection does not exist yet."""


class BulkWriteError(StoreError):
    """Raised when one or more items of a bulk request failed."""

    def __init__(self, failed: list):
        self.failed = failed
        super().__init__(f"bulk errors: {len(failed)} item(s) failed")


@dataclass(frozen=True)
class StoredDocument:
    id: str
    source: dict


@dataclass(frozen=True)
class BulkOperation:
    action: str              # "create" or "index"
    collection: str
    body: dict
    doc_id: str | None = None


@dataclass(frozen=True)
class BulkItemResult:
    action: str
    doc_id: str | None
    status: int
    error: str | None = None


@dataclass(frozen=True)
class BulkResponse:
    items: list[BulkItemResult] = field(default_factory=list)
    took_ms: int = 0

    @property
    def failed(self) -> list[BulkItemResult]:
        return [i for i in self.items if i.error is not None]

    @property
    def errors(self) -> bool:
        return bool(self.failed)


class DocumentStore(ABC):
    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreError when the store is not usable."""

    @abstractmethod
    async def search(self, collection: str, qids: list[str], size: int) -> list[StoredDocument]:
        """Documents in *collection* whose qid is in *qids*, at most *size* of them."""

    @abstractmethod
    async def bulk(self, operations: list[BulkOperation]) -> BulkResponse:
        """Apply create/index operations. Transport failures raise StoreError."""


class FileDocumentStore(DocumentStore):
    def __init__(self, data_dir: str):
        self._data_dir = data_dir

    def _path(self, collection: str) -> str:
        return os.path.join(self._data_dir, f"{collection}.ndjson")

    async def ping(self) -> None:
        try:
            await aiofiles.os.makedirs(self._data_dir, exist_ok=True)
        except OSError as e:
            raise StoreError(f"data dir {self._data_dir} unusable: {e}") from e
        if not os.access(self._data_dir, os.W_OK):
            raise StoreError(f"data dir {self._data_dir} is not writable")

    async def _load(self, collection: str) -> dict[str, dict]:
        path = self._path(collection)
        if not await aiofiles.os.path.exists(path):
            raise CollectionNotFoundError(f"IndexMissing: {collection}")
        docs: dict[str, dict] = {}
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                async for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    record = json.loads(line)
                    docs[record["_id"]] = record["_source"]
        except (OSError, json.JSONDecodeError, KeyError) as e:
            raise StoreError(f"cannot read collection {collection}: {e}") from e
        return docs

    async def _save(self, collection: str, docs: dict[str, dict]) -> None:
        await aiofiles.os.makedirs(self._data_dir, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._data_dir)
        os.close(fd)
        try:
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                for doc_id, source in docs.items():
                    record = {"_id": doc_id, "_source": source}
                    await f.write(json.dumps(record, separators=(",", ":")) + "\n")
            await aiofiles.os.replace(tmp, self._path(collection))
        except Exception:
            os.unlink(tmp)
            raise

    async def search(self, collection: str, qids: list[str], size: int) -> list[StoredDocument]:
        wanted = set(qids)
        docs = await self._load(collection)
        hits = [StoredDocument(id=i, source=s) for i, s in docs.items() if s.get("qid") in wanted]
        return hits[:size]

    async def bulk(self, operations: list[BulkOperation]) -> BulkResponse:
        t0 = time.monotonic()
        collections: dict[str, dict[str, dict]] = {}
        items = []
        for op in operations:
            if op.collection not in collections:
                try:
                    collections[op.collection] = await self._load(op.collection)
                except CollectionNotFoundError:
                    collections[op.collection] = {}
            docs = collections[op.collection]

            if op.action == "create":
                doc_id = op.doc_id or uuid.uuid4().hex
                if doc_id in docs:
                    items.append(BulkItemResult(op.action, doc_id, 409, "document already exists"))
                    continue
                docs[doc_id] = op.body
                items.append(BulkItemResult(op.action, doc_id, 201))
            elif op.action == "index" and op.doc_id:
                status = 200 if op.doc_id in docs else 201
                docs[op.doc_id] = op.body
                items.append(BulkItemResult(op.action, op.doc_id, status))
            else:
                items.append(BulkItemResult(op.action, op.doc_id, 400, "unsupported operation"))

        try:
            for name, docs in collections.items():
                await self._save(name, docs)
        except OSError as e:
            raise StoreError(f"bulk write failed: {e}") from e

        took_ms = int((time.monotonic() - t0) * 1000)
        return BulkResponse(items=items, took_ms=took_ms)
