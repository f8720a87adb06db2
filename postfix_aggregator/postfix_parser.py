"""Sub-process specific grammars for postfix syslog message bodies.

Every postfix daemon prefixes transaction lines with the queue id::

    4B2F51A03E: from=<alice@example.com>, size=1672, nrcpt=1 (queue active)
    4B2F51A03E: to=<bob@example.net>, relay=mx.example.net[203.0.113.5]:25,
        delay=1.2, delays=0.1/0/0.5/0.6, dsn=2.0.0, status=sent (250 2.0.0 Ok)
    4B2F51A03E: removed

The result is a flat dict holding ``qid``, an optional ``action`` and the
remaining key/value pairs, or None when the body does not decode.
"""

import re

from postfix_aggregator.models import SubprocessKind

_QID_RE = re.compile(r'^(?P<qid>[0-9A-F]{6,12}|[0-9A-Za-z]{12,20}):\s+(?P<body>.*)$')

_KV_RE = re.compile(r'([A-Za-z][\w\-]*)=(<[^>]*>|[^,\s]*)(?:,\s*|\s+|$)')

_BOUNCE_RE = re.compile(
    r'^(?P<notice>sender (?:non-delivery|delivery status) notification):\s+(?P<dsn_qid>\S+)$'
)

_ADDRESS_FIELDS = ("from", "to", "orig_to")

_INT_FIELDS = ("size", "nrcpt", "uid")
_FLOAT_FIELDS = ("delay",)


def _parse_kv(text: str) -> dict | None:
    """Parse ``k=v, k=v (comment)`` lists. ``status`` swallows the rest of the line."""
    fields: dict = {}
    rest = text.strip()
    while rest:
        if rest.startswith("("):
            # trailing comment such as "(queue active)"
            break
        m = _KV_RE.match(rest)
        if not m:
            return None
        key, value = m.group(1), m.group(2)
        if key == "status":
            fields["status"] = rest[m.start(2):].strip()
            break
        if key in _ADDRESS_FIELDS and value.startswith("<"):
            value = value[1:-1]
        fields[key] = value
        rest = rest[m.end():]
    return fields or None


def _convert(fields: dict) -> dict | None:
    try:
        for key in _INT_FIELDS:
            if key in fields:
                fields[key] = int(fields[key])
        for key in _FLOAT_FIELDS:
            if key in fields:
                fields[key] = float(fields[key])
    except ValueError:
        return None
    return fields


def _split_qid(msg: str):
    m = _QID_RE.match(msg.strip())
    if not m:
        return None, None
    return m.group("qid"), m.group("body").strip()


def parse_qmgr(msg: str) -> dict | None:
    qid, body = _split_qid(msg)
    if qid is None:
        return None
    if body == "removed":
        return {"qid": qid, "action": "removed"}
    fields = _parse_kv(body)
    if fields is None:
        return None
    return _convert({"qid": qid, **fields})


def parse_scache(msg: str) -> dict:
    """scache lines carry no queue id; anything but statistics is kept raw."""
    if msg.startswith("statistics:"):
        return {"statistics": msg[len("statistics:"):].strip()}
    return {"msg": msg}


def parse_bounce(msg: str) -> dict | None:
    qid, body = _split_qid(msg)
    if qid is None:
        return None
    m = _BOUNCE_RE.match(body)
    if m:
        return {"qid": qid, "notice": m.group("notice"), "dsn_qid": m.group("dsn_qid")}
    return parse_generic(msg)


def parse_generic(msg: str) -> dict | None:
    """``QID: k=v, ...`` as emitted by smtp, lmtp, local, error, cleanup, pickup, smtpd."""
    qid, body = _split_qid(msg)
    if qid is None:
        return None
    fields = _parse_kv(body)
    if fields is None:
        return None
    return _convert({"qid": qid, **fields})


_GRAMMARS = {
    SubprocessKind.QMGR: parse_qmgr,
    SubprocessKind.SCACHE: parse_scache,
    SubprocessKind.BOUNCE: parse_bounce,
}


def parse_postfix_message(prog: str, msg: str) -> dict | None:
    """Decode *msg* with the grammar for *prog*. Returns None on failure."""
    grammar = _GRAMMARS.get(SubprocessKind.from_prog(prog), parse_generic)
    return grammar(msg)
