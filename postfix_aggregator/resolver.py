"""Orphan resolver: loads unfinished aggregate documents for the qids in the queue."""

import logging

from postfix_aggregator.models import AggregateDocument, CanonicalEvent
from postfix_aggregator.store import CollectionNotFoundError, DocumentStore

logger = logging.getLogger(__name__)


class OrphanResolver:
    def __init__(self, store: DocumentStore, docs: dict[str, AggregateDocument],
                 collection: str, page_size: int):
        self._store = store
        self._docs = docs
        self._collection = collection
        self._page_size = page_size

    async def resolve(self, queue: list[CanonicalEvent]) -> int:
        """Install stored documents for the queue's qids. Returns how many were installed.

        StoreError (other than a missing collection) propagates to the caller.
        """
        qids = list(dict.fromkeys(e.qid for e in queue if e.qid))
        if not qids:
            return 0

        try:
            hits = await self._store.search(self._collection, qids, self._page_size)
        except CollectionNotFoundError:
            # created by the first bulk write
            logger.info("Collection %s does not exist yet", self._collection)
            return 0

        logger.info("Orphan match count: %d (of %d qids)", len(hits), len(qids))
        installed = 0
        for hit in hits:
            qid = hit.source.get("qid")
            current = self._docs.get(qid)
            if current is not None:
                if current.storage_id is None:
                    # written by an earlier attempt of this cycle
                    current.storage_id = hit.id
                elif current.storage_id != hit.id:
                    logger.warning("Duplicate orphan for %s: %s, keeping %s",
                                   qid, hit.id, current.storage_id)
                continue
            self._docs[qid] = AggregateDocument.from_dict(hit.source, storage_id=hit.id)
            installed += 1
        return installed
