"""Persistence writer: one bulk request creating or updating every working document."""

import logging

from postfix_aggregator.models import AggregateDocument
from postfix_aggregator.store import BulkOperation, BulkResponse, BulkWriteError, DocumentStore

logger = logging.getLogger(__name__)


class PersistenceWriter:
    def __init__(self, store: DocumentStore, collection: str):
        self._store = store
        self._collection = collection

    def build_operations(self, docs: dict[str, AggregateDocument]) -> list[BulkOperation]:
        ops = []
        for doc in docs.values():
            if doc.storage_id:
                ops.append(BulkOperation("index", self._collection, doc.to_dict(), doc.storage_id))
            else:
                ops.append(BulkOperation("create", self._collection, doc.to_dict()))
        return ops

    async def write(self, docs: dict[str, AggregateDocument]) -> BulkResponse:
        """Issue the bulk call. Raises BulkWriteError if any item failed."""
        ops = self.build_operations(docs)
        response = await self._store.bulk(ops)
        if response.errors:
            for item in response.failed:
                logger.error("Bulk %s %s failed: %s", item.action, item.doc_id, item.error)
            raise BulkWriteError(response.failed)
        return response
