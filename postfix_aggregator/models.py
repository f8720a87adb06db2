"""Data model: canonical events, aggregate documents and sub-process kinds."""

from dataclasses import dataclass, field
from enum import Enum


class SubprocessKind(Enum):
    QMGR = "qmgr"
    DELIVERY = "delivery"
    CLEANUP = "cleanup"
    SCACHE = "scache"
    PICKUP = "pickup"
    ERROR = "error"
    BOUNCE = "bounce"
    LOCAL = "local"
    OTHER = "other"

    @classmethod
    def from_prog(cls, prog: str | None) -> "SubprocessKind":
        """Map a syslog program tag like ``postfix/qmgr`` onto a kind."""
        if not prog:
            return cls.OTHER
        name = prog.rsplit("/", 1)[-1]
        return _PROG_KINDS.get(name, cls.OTHER)


_PROG_KINDS = {
    "qmgr": SubprocessKind.QMGR,
    "smtp": SubprocessKind.DELIVERY,
    "lmtp": SubprocessKind.DELIVERY,
    "cleanup": SubprocessKind.CLEANUP,
    "scache": SubprocessKind.SCACHE,
    "pickup": SubprocessKind.PICKUP,
    "error": SubprocessKind.ERROR,
    "bounce": SubprocessKind.BOUNCE,
    "local": SubprocessKind.LOCAL,
}


@dataclass(frozen=True)
class CanonicalEvent:
    qid: str
    prog: str
    host: str
    date: str                # ISO 8601
    action: str | None = None
    fields: dict = field(default_factory=dict)

    @property
    def kind(self) -> SubprocessKind:
        return SubprocessKind.from_prog(self.prog)

    def entry(self) -> dict:
        """Event entry for the parent document (qid, host and prog are implied)."""
        e = {"date": self.date}
        if self.action:
            e["action"] = self.action
        e.update(self.fields)
        return e


# document attribute -> stored field name
_HOISTED = {
    "sender": "from",
    "size": "size",
    "nrcpt": "nrcpt",
    "delay": "delay",
    "delays": "delays",
    "message_id": "message-id",
    "resent_message_id": "resent-message-id",
    "uid": "uid",
}


@dataclass
class AggregateDocument:
    qid: str
    host: str
    date: str
    sender: str | None = None
    size: int | None = None
    nrcpt: int | None = None
    delay: float | None = None
    delays: str | None = None
    message_id: str | None = None
    resent_message_id: str | None = None
    uid: int | None = None
    is_final: bool = False
    events: list[dict] = field(default_factory=list)
    storage_id: str | None = None

    @classmethod
    def new(cls, event: CanonicalEvent) -> "AggregateDocument":
        return cls(qid=event.qid, host=event.host, date=event.date)

    def to_dict(self) -> dict:
        """Body as written to the store. The storage id is never part of it."""
        body = {"qid": self.qid, "host": self.host, "date": self.date}
        for attr, key in _HOISTED.items():
            value = getattr(self, attr)
            if value is not None:
                body[key] = value
        body["isFinal"] = self.is_final
        body["events"] = [dict(e) for e in self.events]
        return body

    @classmethod
    def from_dict(cls, body: dict, storage_id: str | None = None) -> "AggregateDocument":
        doc = cls(
            qid=body["qid"],
            host=body.get("host", ""),
            date=body.get("date", ""),
            is_final=bool(body.get("isFinal", False)),
            events=[dict(e) for e in body.get("events", [])],
            storage_id=storage_id,
        )
        for attr, key in _HOISTED.items():
            if key in body:
                setattr(doc, attr, body[key])
        return doc
