"""Tests for the postfix sub-process grammars."""

from postfix_aggregator.postfix_parser import parse_postfix_message


class TestQmgr:
    def test_queued(self):
        r = parse_postfix_message(
            "postfix/qmgr",
            "4B2F51A03E: from=<alice@example.com>, size=1672, nrcpt=1 (queue active)",
        )
        assert r == {"qid": "4B2F51A03E", "from": "alice@example.com", "size": 1672, "nrcpt": 1}

    def test_null_sender(self):
        r = parse_postfix_message("postfix/qmgr", "4B2F51A03E: from=<>, size=10, nrcpt=2 (queue active)")
        assert r["from"] == ""

    def test_removed(self):
        r = parse_postfix_message("postfix/qmgr", "4B2F51A03E: removed")
        assert r == {"qid": "4B2F51A03E", "action": "removed"}

    def test_expired(self):
        r = parse_postfix_message(
            "postfix/qmgr",
            "4B2F51A03E: from=<alice@example.com>, status=expired, returned to sender",
        )
        assert r["status"] == "expired, returned to sender"
        assert r["from"] == "alice@example.com"

    def test_long_queue_id(self):
        r = parse_postfix_message("postfix/qmgr", "3mfHGL1r9gzyKx: removed")
        assert r["qid"] == "3mfHGL1r9gzyKx"

    def test_warning_is_not_a_transaction(self):
        assert parse_postfix_message("postfix/qmgr", "warning: something odd") is None


class TestDelivery:
    def test_smtp_sent(self):
        r = parse_postfix_message(
            "postfix/smtp",
            "4B2F51A03E: to=<bob@example.net>, relay=mx.example.net[203.0.113.5]:25, "
            "delay=1.2, delays=0.1/0/0.5/0.6, dsn=2.0.0, status=sent (250 2.0.0 Ok: queued)",
        )
        assert r == {
            "qid": "4B2F51A03E",
            "to": "bob@example.net",
            "relay": "mx.example.net[203.0.113.5]:25",
            "delay": 1.2,
            "delays": "0.1/0/0.5/0.6",
            "dsn": "2.0.0",
            "status": "sent (250 2.0.0 Ok: queued)",
        }

    def test_bad_delay_fails(self):
        assert parse_postfix_message("postfix/smtp", "4B2F51A03E: to=<a@b>, delay=soon") is None

    def test_error_deferred(self):
        r = parse_postfix_message(
            "postfix/error",
            "4B2F51A03E: to=<bob@example.net>, relay=none, delay=3600, "
            "delays=3600/0/0/0, dsn=4.4.1, status=deferred (delivery temporarily suspended)",
        )
        assert r["relay"] == "none"
        assert r["status"].startswith("deferred")


class TestOtherGrammars:
    def test_cleanup_message_id(self):
        r = parse_postfix_message("postfix/cleanup", "4B2F51A03E: message-id=<20261017.abc@example.com>")
        assert r == {"qid": "4B2F51A03E", "message-id": "<20261017.abc@example.com>"}

    def test_pickup(self):
        r = parse_postfix_message("postfix/pickup", "4B2F51A03E: uid=1000 from=<root>")
        assert r == {"qid": "4B2F51A03E", "uid": 1000, "from": "root"}

    def test_scache_statistics(self):
        r = parse_postfix_message("postfix/scache", "statistics: start interval Oct 17 11:40:00")
        assert r == {"statistics": "start interval Oct 17 11:40:00"}

    def test_scache_other(self):
        r = parse_postfix_message("postfix/scache", "unexpected thing")
        assert r == {"msg": "unexpected thing"}

    def test_bounce_notification(self):
        r = parse_postfix_message(
            "postfix/bounce", "4B2F51A03E: sender non-delivery notification: 5C3A61B04F"
        )
        assert r == {
            "qid": "4B2F51A03E",
            "notice": "sender non-delivery notification",
            "dsn_qid": "5C3A61B04F",
        }

    def test_smtpd_client(self):
        r = parse_postfix_message("postfix/smtpd", "4B2F51A03E: client=relay.example.org[198.51.100.7]")
        assert r == {"qid": "4B2F51A03E", "client": "relay.example.org[198.51.100.7]"}

    def test_smtpd_connect_is_not_decoded(self):
        assert parse_postfix_message("postfix/smtpd", "connect from unknown[198.51.100.7]") is None
