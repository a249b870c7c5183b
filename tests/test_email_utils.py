# -*- coding: utf-8 -*-
"""
Tests for email_utils.py - email parsing, reply construction, SMTP sending.
"""

import email.message
import smtplib
import unittest
from unittest.mock import patch

from email_utils import build_message
from email_utils import build_reply
from email_utils import decode_part
from email_utils import parse_message
from email_utils import reply_address
from email_utils import send_via_smtp
from imap_fakes import make_raw_email
from imap_fakes import make_test_config

OPTIONS = {
    "smtp_server": "smtp.example.com",
    "smtp_port": 465,
    "smtp_user": "user",
    "smtp_pass": "secret",
    "smtp_timeout": 5,
}


class TestBuildMessage(unittest.TestCase):
    """Tests for email message creation - verifies required headers are set"""

    def test_required_headers_present(self):
        msg = build_message(
            subject="Test Subject",
            from_addr="sender@example.com",
            to_addr="recipient@example.com",
            body="Test body",
        )
        self.assertEqual(msg["Subject"], "Test Subject")
        self.assertEqual(msg["From"], "sender@example.com")
        self.assertEqual(msg["To"], "recipient@example.com")
        self.assertIsNotNone(msg["Message-ID"])
        self.assertIsNotNone(msg["Date"])

    def test_subject_prefix_applied(self):
        msg = build_message(
            subject="Original",
            from_addr="from@x",
            to_addr="to@x",
            body="Body",
            subject_prefix="Re:",
        )
        self.assertEqual(msg["Subject"], "Re: Original")

    def test_threading_headers_set_for_reply(self):
        msg = build_message(
            subject="Test",
            from_addr="from@x",
            to_addr="to@x",
            body="Body",
            in_reply_to="<original@example.com>",
        )
        self.assertEqual(msg["In-Reply-To"], "<original@example.com>")
        self.assertEqual(msg["References"], "<original@example.com>")

    def test_explicit_message_id(self):
        msg = build_message(
            subject="Test",
            from_addr="from@x",
            to_addr="to@x",
            body="Body",
            message_id="<explicit@test>",
        )
        self.assertEqual(msg["Message-ID"], "<explicit@test>")

    def test_message_id_generated_by_default(self):
        msg = build_message(subject="T", from_addr="f@x", to_addr="t@x", body="B")
        self.assertTrue(msg["Message-ID"].startswith("<"))

    def test_x_mailer_only_when_given(self):
        plain = build_message(subject="T", from_addr="f@x", to_addr="t@x", body="B")
        tagged = build_message(
            subject="T", from_addr="f@x", to_addr="t@x", body="B", x_mailer="hashflash"
        )
        self.assertIsNone(plain["X-Mailer"])
        self.assertEqual(tagged["X-Mailer"], "hashflash")


class TestBuildReply(unittest.TestCase):
    """Tests for replies to inquiries"""

    def test_reply_goes_to_sender_with_threading(self):
        original = parse_message(
            make_raw_email(
                from_addr="asker@example.org",
                subject="Where?",
                message_id="<q1@example.org>",
            )
        )
        reply = build_reply(original, "Geohash for 2008-05-21", make_test_config())

        self.assertEqual(reply["To"], "asker@example.org")
        self.assertEqual(reply["Subject"], "Re: Where?")
        self.assertEqual(reply["In-Reply-To"], "<q1@example.org>")
        self.assertEqual(reply["References"], "<q1@example.org>")
        self.assertEqual(reply["From"], "Hashflash <hashflash@example.com>")
        self.assertEqual(reply["X-Mailer"], "hashflash")
        self.assertIn("Geohash for 2008-05-21", reply.get_content())

    def test_reply_prefers_reply_to(self):
        original = parse_message(
            make_raw_email(from_addr="phone@example.org", reply_to="me@example.org")
        )
        reply = build_reply(original, "text", make_test_config())
        self.assertEqual(reply["To"], "me@example.org")

    def test_missing_subject(self):
        original = email.message.EmailMessage()
        original["From"] = "asker@example.org"
        original.set_content("2008-05-21 42, -71")

        reply = build_reply(original, "text", make_test_config())
        self.assertTrue(reply["Subject"].startswith("Re:"))
        self.assertNotIn("None", reply["Subject"])


class TestParsing(unittest.TestCase):
    """Tests for parsing and decoding"""

    def test_decode_part_with_declared_charset(self):
        msg = email.message.EmailMessage()
        msg.set_content("2008-05-21 42, -71 Grüße", charset="iso-8859-1")
        self.assertIn("Grüße", decode_part(msg))

    def test_decode_part_without_payload(self):
        msg = email.message.Message()
        self.assertIsNone(decode_part(msg))

    def test_reply_address_falls_back_to_sender(self):
        msg = email.message.EmailMessage()
        msg["Sender"] = "list@example.org"
        self.assertEqual(reply_address(msg), "list@example.org")


class TestSendViaSmtp(unittest.TestCase):
    """Tests for delivery outcome reporting"""

    @patch("email_utils.smtplib.SMTP_SSL")
    def test_success_returns_true(self, smtp_class):
        result = send_via_smtp(OPTIONS, "from@x", "to@x", "raw message")

        self.assertTrue(result)
        smtp_class.assert_called_once_with("smtp.example.com", 465, timeout=5)
        connection = smtp_class.return_value
        connection.login.assert_called_once_with("user", "secret")
        connection.sendmail.assert_called_once_with("from@x", "to@x", "raw message")
        connection.quit.assert_called_once()

    @patch("email_utils.smtplib.SMTP_SSL")
    def test_email_message_is_serialized(self, smtp_class):
        msg = build_message(subject="T", from_addr="f@x", to_addr="t@x", body="B")
        send_via_smtp(OPTIONS, "f@x", "t@x", msg)

        sent = smtp_class.return_value.sendmail.call_args[0][2]
        self.assertIsInstance(sent, bytes)

    @patch("email_utils.smtplib.SMTP_SSL")
    def test_refused_recipient_returns_false(self, smtp_class):
        smtp_class.return_value.sendmail.side_effect = smtplib.SMTPRecipientsRefused(
            {"to@x": (550, b"no such user")}
        )

        self.assertFalse(send_via_smtp(OPTIONS, "from@x", "to@x", "raw"))
        smtp_class.return_value.quit.assert_called_once()

    @patch("email_utils.smtplib.SMTP_SSL")
    def test_login_failure_returns_false(self, smtp_class):
        smtp_class.return_value.login.side_effect = smtplib.SMTPAuthenticationError(
            535, b"bad credentials"
        )

        self.assertFalse(send_via_smtp(OPTIONS, "from@x", "to@x", "raw"))
        smtp_class.return_value.sendmail.assert_not_called()

    @patch("email_utils.smtplib.SMTP_SSL")
    def test_connection_failure_returns_false(self, smtp_class):
        smtp_class.side_effect = ConnectionRefusedError("refused")

        self.assertFalse(send_via_smtp(OPTIONS, "from@x", "to@x", "raw"))

    @patch("email_utils.smtplib.SMTP_SSL")
    def test_quit_failure_closes_connection(self, smtp_class):
        smtp_class.return_value.quit.side_effect = smtplib.SMTPServerDisconnected()

        self.assertTrue(send_via_smtp(OPTIONS, "from@x", "to@x", "raw"))
        smtp_class.return_value.close.assert_called_once()


if __name__ == "__main__":
    unittest.main(verbosity=2)
