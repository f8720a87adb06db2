"""Event normalizer: syslog line -> CanonicalEvent appended to the in-flight queue."""

import logging
from datetime import datetime

from postfix_aggregator.metrics import Metrics
from postfix_aggregator.models import CanonicalEvent, SubprocessKind
from postfix_aggregator.postfix_parser import parse_postfix_message
from postfix_aggregator.syslog_parser import parse_syslog_line

logger = logging.getLogger(__name__)


def format_timestamp(raw: str, year: int | None = None) -> str:
    """Reformat a syslog timestamp as ISO 8601 with the local UTC offset.

    RFC 3164 timestamps carry no year, so *year* (default: current year) is assumed.
    """
    if raw[:4].isdigit():
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    else:
        year = year or datetime.now().year
        dt = datetime.strptime(f"{year} {' '.join(raw.split())}", "%Y %b %d %H:%M:%S")
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.isoformat()


class EventNormalizer:
    def __init__(self, queue: list, family: str = "postfix", year: int | None = None,
                 metrics: Metrics | None = None):
        self._queue = queue
        self._family = family
        self._year = year
        self._metrics = metrics or Metrics()
        self.accepted = 0
        self.ignored = 0
        self.parse_errors = 0

    def _parse_error(self, prog: str, msg: str) -> None:
        self.parse_errors += 1
        self._metrics.parse_error()
        logger.warning("PARSE ERROR for %s: %s", prog, msg)

    def normalize(self, line: str) -> CanonicalEvent | None:
        """Decode *line* and append the event to the queue. Returns None when dropped."""
        self._metrics.line_read()
        syslog = parse_syslog_line(line)
        if not syslog or not syslog["prog"]:
            self._parse_error("syslog", line)
            return None

        prog = syslog["prog"]
        if not prog.startswith(self._family):
            self.ignored += 1
            self._metrics.line_ignored()
            logger.debug("Ignoring %s line", prog)
            return None

        parsed = parse_postfix_message(prog, syslog["msg"])
        if not parsed:
            self._parse_error(prog, syslog["msg"])
            return None

        qid = parsed.pop("qid", "")
        if not qid and SubprocessKind.from_prog(prog) is not SubprocessKind.SCACHE:
            self._parse_error(prog, syslog["msg"])
            return None

        try:
            date = format_timestamp(syslog["date"], self._year)
        except ValueError:
            self._parse_error(prog, syslog["msg"])
            return None

        event = CanonicalEvent(
            qid=qid,
            prog=prog,
            host=syslog["host"],
            date=date,
            action=parsed.pop("action", None),
            fields=parsed,
        )
        self._queue.append(event)
        self.accepted += 1
        self._metrics.event_queued()
        return event
