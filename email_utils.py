# -*- coding: utf-8 -*-
"""
Email utilities: parsing, reply construction, SMTP sending.
Uses the modern EmailMessage API (Python 3.6+).
"""

import email
import email.message
import email.policy
import email.utils
import logging
import smtplib

logger = logging.getLogger(__name__)

EMAIL_POLICY = email.policy.EmailPolicy(utf8=True)


# ============================================================================
# Email parsing
# ============================================================================


def parse_message(raw):
    """Parse raw RFC822 bytes into an EmailMessage."""
    return email.message_from_bytes(raw, policy=email.policy.default)


def decode_part(part):
    """
    Decode a single MIME part to string.

    Args:
        part: MIME part

    Returns:
        Decoded string or None on failure
    """
    payload = part.get_payload(decode=True)
    if payload is None:
        return None

    charset = part.get_content_charset() or "utf-8"

    for encoding in [charset, "utf-8", "iso-8859-1"]:
        try:
            return payload.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue

    return payload.decode("utf-8", errors="replace")


def reply_address(message):
    """Address a reply should go to: Reply-To, then From, then Sender."""
    return message["Reply-To"] or message["From"] or message["Sender"]


# ============================================================================
# Email construction
# ============================================================================


def build_message(
    *,
    subject,
    from_addr,
    to_addr,
    body,
    subject_prefix=None,
    in_reply_to=None,
    reply_to=None,
    message_id=None,
    x_mailer=None,
):
    """
    Build an email message.

    Args:
        subject: Email subject
        from_addr: Sender address
        to_addr: Recipient address
        body: Message body (string)
        subject_prefix: Optional prefix ('Re:', 'Fwd:', etc.)
        in_reply_to: Optional Message-ID being replied to
        reply_to: Optional Reply-To address
        message_id: Optional explicit Message-ID (generated otherwise)
        x_mailer: Optional X-Mailer header

    Returns:
        EmailMessage object
    """
    msg_subject = f"{subject_prefix} {subject}" if subject_prefix else subject

    msg = email.message.EmailMessage(policy=EMAIL_POLICY)
    msg["Subject"] = msg_subject
    msg["From"] = from_addr
    msg["To"] = to_addr

    if reply_to:
        msg["Reply-To"] = reply_to

    if message_id:
        msg["Message-ID"] = message_id
    else:
        msg["Message-ID"] = email.utils.make_msgid()

    msg["Date"] = email.utils.formatdate(localtime=True)

    if in_reply_to:
        msg["In-Reply-To"] = in_reply_to
        msg["References"] = in_reply_to

    if x_mailer:
        msg["X-Mailer"] = x_mailer

    msg.set_content(body)

    return msg


def build_reply(original, body, config):
    """
    Build the reply to an inquiry.

    Args:
        original: Parsed inquiry message
        body: Reply text
        config: Configuration with reply_from and x_mailer

    Returns:
        EmailMessage addressed to the inquiry's sender
    """
    return build_message(
        subject=original["Subject"] or "",
        from_addr=config.reply_from,
        to_addr=reply_address(original),
        body=body,
        subject_prefix="Re:",
        in_reply_to=original["Message-ID"],
        x_mailer=config.x_mailer,
    )


# ============================================================================
# SMTP sending
# ============================================================================


def send_via_smtp(options, from_addr, to_addr, message):
    """
    Send message via SMTP with connection handling.

    Args:
        options: Dict with smtp_server, smtp_port, smtp_user, smtp_pass,
                 and optional smtp_timeout
        from_addr: Sender address
        to_addr: Recipient address (or list)
        message: EmailMessage object or string or bytes

    Returns:
        True if the server accepted the message, False otherwise
    """
    match message:
        case str() | bytes():
            msg_data = message
        case _:
            msg_data = message.as_bytes()

    try:
        smtp_connection = smtplib.SMTP_SSL(
            options["smtp_server"],
            options.get("smtp_port", 465),
            timeout=options.get("smtp_timeout", 60),
        )
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("Could not connect to %s: %s", options["smtp_server"], e)
        return False

    try:
        smtp_connection.login(options["smtp_user"], options["smtp_pass"])
        smtp_connection.sendmail(from_addr, to_addr, msg_data)
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("Sending to %s failed: %s", to_addr, e)
        return False
    finally:
        try:
            smtp_connection.quit()
        except (smtplib.SMTPException, OSError):
            smtp_connection.close()
