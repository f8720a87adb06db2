"""Document assembler: folds canonical events into per-transaction aggregate documents.

Every sub-process kind has one handler. Re-applying the same events to the
same documents is a no-op: identical entries are suppressed and only the
first "queued" entry is ever kept.
"""

import logging
import re

from postfix_aggregator.models import AggregateDocument, CanonicalEvent, SubprocessKind

logger = logging.getLogger(__name__)

_EXPIRED_RE = re.compile(r"expired, returned")


def add_entry(doc: AggregateDocument, entry: dict) -> bool:
    """Append *entry* unless it is a repeat "queued" entry or an exact duplicate."""
    if entry.get("action") == "queued" and has_queued(doc):
        return False
    if entry in doc.events:
        return False
    doc.events.append(entry)
    return True


def has_queued(doc: AggregateDocument) -> bool:
    return any(e.get("action") == "queued" for e in doc.events)


def _hoist(doc: AggregateDocument, entry: dict, fields: dict[str, str]) -> None:
    """Move entry[key] onto doc.<attr> for every key present."""
    for key, attr in fields.items():
        if key in entry:
            setattr(doc, attr, entry.pop(key))


class DocumentAssembler:
    def __init__(self, docs: dict[str, AggregateDocument]):
        self._docs = docs
        # ids of queued events already reported; a retry replays the same queue
        self._reported: set[int] = set()
        self._handlers = {
            SubprocessKind.QMGR: self._on_qmgr,
            SubprocessKind.DELIVERY: self._on_delivery,
            SubprocessKind.CLEANUP: self._on_cleanup,
            SubprocessKind.PICKUP: self._on_pickup,
            SubprocessKind.ERROR: self._on_error,
            SubprocessKind.BOUNCE: self._on_bounce,
        }

    def assemble(self, queue: list[CanonicalEvent]) -> int:
        """Apply every queued event in arrival order. Returns documents touched."""
        touched = set()
        for event in queue:
            if self.apply(event):
                touched.add(event.qid)
        return len(touched)

    def apply(self, event: CanonicalEvent) -> bool:
        if event.kind is SubprocessKind.SCACHE:
            # session cache lines are not tied to a transaction
            if "statistics" not in event.fields:
                self._shape_error("scache", event)
            return False

        doc = self._docs.get(event.qid)
        if doc is None:
            doc = AggregateDocument.new(event)
            self._docs[event.qid] = doc

        handler = self._handlers.get(event.kind, self._on_default)
        handler(doc, event)
        return True

    @property
    def shape_errors(self) -> int:
        return len(self._reported)

    def reset(self) -> int:
        """Forget reported events once their queue is flushed. Returns how many there were."""
        count = len(self._reported)
        self._reported.clear()
        return count

    def _shape_error(self, name: str, event: CanonicalEvent) -> None:
        if id(event) in self._reported:
            return
        self._reported.add(id(event))
        logger.warning("PARSE ERROR for %s: %s %s", name, event.qid, event.fields)

    def _on_qmgr(self, doc: AggregateDocument, event: CanonicalEvent) -> None:
        if event.action == "removed":
            doc.is_final = True
            add_entry(doc, {"date": event.date, "action": "removed"})
            return

        entry = event.entry()
        if "status" in entry:
            if _EXPIRED_RE.search(entry["status"]):
                entry["action"] = "expired"
                del entry["status"]
                add_entry(doc, entry)
                return
            self._shape_error("qmgr", event)
            return

        # qmgr logs every time it picks the message up again; only the
        # first one describes the message as it entered the queue
        if has_queued(doc):
            return

        entry["action"] = "queued"
        entry.setdefault("from", "")  # null sender
        _hoist(doc, entry, {"from": "sender", "size": "size", "nrcpt": "nrcpt"})
        add_entry(doc, entry)

    def _on_delivery(self, doc: AggregateDocument, event: CanonicalEvent) -> None:
        entry = event.entry()
        _hoist(doc, entry, {"delay": "delay", "delays": "delays"})
        add_entry(doc, entry)

    def _on_cleanup(self, doc: AggregateDocument, event: CanonicalEvent) -> None:
        _hoist(doc, event.entry(), {
            "message-id": "message_id",
            "resent-message-id": "resent_message_id",
        })

    def _on_pickup(self, doc: AggregateDocument, event: CanonicalEvent) -> None:
        _hoist(doc, event.entry(), {"uid": "uid"})

    def _on_error(self, doc: AggregateDocument, event: CanonicalEvent) -> None:
        entry = event.entry()
        entry["action"] = "error"
        add_entry(doc, entry)

    def _on_bounce(self, doc: AggregateDocument, event: CanonicalEvent) -> None:
        entry = event.entry()
        entry["action"] = "bounced"
        add_entry(doc, entry)

    def _on_default(self, doc: AggregateDocument, event: CanonicalEvent) -> None:
        # postfix/local and anything not listed above
        add_entry(doc, event.entry())
