"""Shared fixtures: an in-memory document store, event builders and a fast config."""

import uuid

import pytest

from postfix_aggregator.config import Config
from postfix_aggregator.models import CanonicalEvent
from postfix_aggregator.store import (
    BulkItemResult,
    BulkResponse,
    CollectionNotFoundError,
    DocumentStore,
    StoreError,
    StoredDocument,
)


class MemoryStore(DocumentStore):
    """DocumentStore keeping collections in dicts, with switches to inject failures."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}
        self.bulk_calls: list[list] = []
        self.search_calls: list[list[str]] = []
        self.fail_search = 0          # number of upcoming searches that raise
        self.fail_bulk = 0            # number of upcoming bulks that raise
        self.fail_items: set[int] = set()  # item indexes failing on the next bulk

    async def ping(self) -> None:
        pass

    async def search(self, collection, qids, size):
        self.search_calls.append(list(qids))
        if self.fail_search:
            self.fail_search -= 1
            raise StoreError("search unavailable")
        if collection not in self.collections:
            raise CollectionNotFoundError(collection)
        docs = self.collections[collection]
        hits = [StoredDocument(i, dict(s)) for i, s in docs.items() if s["qid"] in qids]
        return hits[:size]

    async def bulk(self, operations):
        self.bulk_calls.append(list(operations))
        if self.fail_bulk:
            self.fail_bulk -= 1
            raise StoreError("connection refused")
        failing, self.fail_items = self.fail_items, set()
        items = []
        for n, op in enumerate(operations):
            if n in failing:
                items.append(BulkItemResult(op.action, op.doc_id, 429, "rejected"))
                continue
            docs = self.collections.setdefault(op.collection, {})
            doc_id = op.doc_id or uuid.uuid4().hex
            docs[doc_id] = op.body
            items.append(BulkItemResult(op.action, doc_id, 201 if op.action == "create" else 200))
        return BulkResponse(items=items)

    def documents(self, collection="postfix-orphan") -> list[dict]:
        return list(self.collections.get(collection, {}).values())


def make_event(qid="4B2F51A03E", prog="postfix/qmgr", action=None,
               date="2026-10-17T11:52:01+00:00", host="mx1", **fields) -> CanonicalEvent:
    return CanonicalEvent(qid=qid, prog=prog, host=host, date=date, action=action, fields=fields)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def config(tmp_path):
    return Config(
        log_file=str(tmp_path / "maillog"),
        spool_dir=str(tmp_path / "spool"),
        data_dir=str(tmp_path / "data"),
        batch_limit=10,
        search_size=30,
        retry_delay=0,
        settle_delay=0,
        poll_interval=0.01,
    )
