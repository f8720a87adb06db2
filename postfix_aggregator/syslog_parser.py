"""Parses syslog lines (RFC 3164, optionally with RFC 3339 timestamps) into dicts."""

import re

_SYSLOG_RE = re.compile(
    r'^(?:<(?P<priority>\d{1,3})>)?'
    r'(?P<timestamp>\w{3}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2}'
    r'|\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?)\s+'
    r'(?P<host>\S+)\s+'
    r'(?P<prog>[\w/.\-]+)'
    r'(?:\[(?P<pid>\d+)\])?:\s'
    r'(?P<msg>.*)'
    r'$'
)


def parse_syslog_line(line: str) -> dict | None:
    m = _SYSLOG_RE.match(line.rstrip("\r\n"))
    if not m:
        return None

    return {
        "date": m.group("timestamp"),
        "host": m.group("host"),
        "prog": m.group("prog"),
        "pid": m.group("pid"),
        "msg": m.group("msg"),
    }
