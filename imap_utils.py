# -*- coding: utf-8 -*-
"""
IMAP protocol utilities: connection helpers, credentials, message listing,
configuration checks, and the main run loop.
"""

import contextlib
import getpass
import imaplib
import logging
import os
import re
import sys
import threading
from dataclasses import dataclass

import email_utils

logger = logging.getLogger(__name__)

ANSWERED = r"\Answered"
FLAGGED = r"\Flagged"

_UID_PATTERN = re.compile(rb"UID (\d+)")


class MailboxError(Exception):
    """An IMAP command the processing depends on was not answered OK."""


@dataclass(frozen=True)
class ListedMessage:
    """A message of the source folder as seen when the cycle listed it."""

    uid: bytes
    flags: frozenset


def require_ok(res, data, what):
    """Raise MailboxError unless an imaplib response is OK."""
    if res != "OK":
        raise MailboxError(f"{what} failed: {res} {data!r}")
    return data


def get_credential(env_var, arg_name, prompt):
    """
    Get credential from environment, command line args, or prompt.

    Priority:
    1. Environment variable
    2. Command line --arg=value or --arg value
    3. Interactive prompt (masked input)
    """
    value = os.environ.get(env_var)
    if value:
        return value

    for i, arg in enumerate(sys.argv):
        if arg.startswith(f"--{arg_name}="):
            return arg.split("=", 1)[1]
        elif arg == f"--{arg_name}" and i + 1 < len(sys.argv):
            return sys.argv[i + 1]

    return getpass.getpass(prompt)


def check_config(config):
    """
    Validate configuration before anything is scheduled.

    Args:
        config: Configuration module (see config_data)

    Raises:
        ValueError: On missing or inconsistent settings
    """
    for name in [
        "imap_server",
        "imap_user",
        "smtp_server",
        "smtp_user",
        "source_folder",
        "reject_folder",
        "done_folder",
        "reply_from",
    ]:
        value = getattr(config, name, None)
        if not isinstance(value, str) or not value:
            raise ValueError(f"Configuration needs a non-empty {name}")

    for name in ["poll_interval", "imap_timeout", "smtp_timeout", "djia_timeout"]:
        value = getattr(config, name, None)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"Configuration needs a positive number for {name}")

    folders = {config.source_folder, config.reject_folder, config.done_folder}
    if len(folders) != 3:
        raise ValueError("source, reject and done folders must be distinct")


# ============================================================================
# Connection handling
# ============================================================================


def connect(config, password):
    """
    Connect and log in to the IMAP server.

    Args:
        config: Configuration module with imap_server, imap_user, imap_timeout
        password: IMAP password

    Returns:
        IMAP4_SSL connection object

    Raises:
        OSError, imaplib.IMAP4.error on connection failures
    """
    connection = imaplib.IMAP4_SSL(config.imap_server, timeout=config.imap_timeout)
    connection.login(config.imap_user, password)
    return connection


def ensure_folders(connection, folders):
    """Create destination folders; a folder that already exists is fine."""
    for folder in folders:
        res, data = connection.create(folder)
        if res != "OK":
            logger.debug("Not creating %s: %s", folder, data)


def close_inbox(connection):
    """
    Close the selected folder and log out.

    CLOSE expunges messages marked \\Deleted, which completes any moves.
    """
    try:
        if connection.state == "SELECTED":
            connection.close()
    except (imaplib.IMAP4.error, OSError) as e:
        logger.warning("Closing folder failed: %s", e)
    try:
        connection.logout()
    except (imaplib.IMAP4.error, OSError) as e:
        logger.warning("Logout failed: %s", e)


@contextlib.contextmanager
def open_inbox(config, password, connect_fn=None):
    """
    Open the source folder read-write for the duration of a cycle.

    Destination folders are created if missing. The connection is
    closed (and the folder expunged) on exit, also after errors.
    """
    connect_fn = connect_fn or connect
    connection = connect_fn(config, password)
    try:
        ensure_folders(connection, [config.reject_folder, config.done_folder])
        res, data = connection.select(config.source_folder)
        require_ok(res, data, f"SELECT {config.source_folder}")
        yield connection
    finally:
        close_inbox(connection)


# ============================================================================
# Listing and fetching
# ============================================================================


def _decode_flags(line):
    return frozenset(flag.decode("ascii") for flag in imaplib.ParseFlags(line))


def list_messages(connection):
    """
    List the messages of the selected folder with their flags.

    Args:
        connection: IMAP connection with a selected folder

    Returns:
        List of ListedMessage in folder order

    Raises:
        MailboxError, imaplib.IMAP4.error, OSError on transport failures
    """
    res, data = connection.uid("SEARCH", None, "ALL")
    uids = require_ok(res, data, "SEARCH")[0].split()
    if not uids:
        return []

    res, data = connection.uid("FETCH", b",".join(uids), "(UID FLAGS)")
    require_ok(res, data, "FETCH FLAGS")

    flags_by_uid = {}
    for ret in data:
        if isinstance(ret, (list, tuple)):
            ret = ret[0]
        if not isinstance(ret, bytes):
            continue
        match = _UID_PATTERN.search(ret)
        if match:
            flags_by_uid[match.group(1)] = _decode_flags(ret)

    # Messages expunged by someone else between SEARCH and FETCH drop out.
    return [
        ListedMessage(uid=uid, flags=flags_by_uid[uid])
        for uid in uids
        if uid in flags_by_uid
    ]


def fetch_message(connection, uid):
    """
    Fetch and parse a message without setting \\Seen.

    Args:
        connection: IMAP connection with a selected folder
        uid: Message UID (bytes)

    Returns:
        email.message.EmailMessage

    Raises:
        MailboxError if the message body is not returned
    """
    res, data = connection.uid("FETCH", uid, "(BODY.PEEK[])")
    require_ok(res, data, "FETCH BODY")

    for ret in data:
        if isinstance(ret, (list, tuple)) and len(ret) > 1:
            return email_utils.parse_message(ret[1])

    raise MailboxError(f"FETCH BODY returned no message for UID {uid!r}")


# ============================================================================
# Scheduler
# ============================================================================


def run(
    config,
    handler_module,
    password,
    reprocess=None,
    once=False,
    stop_event=None,
    connect_fn=None,
):
    """
    Run the message processor.

    Each cycle opens the source folder, hands it to
    handler_module.check_messages() and closes it again. The next cycle
    starts config.poll_interval seconds after the previous one finished.

    Args:
        config: Configuration module with server settings
        handler_module: handlers module with check_messages()
        password: IMAP/SMTP password
        reprocess: Optional handlers.ReprocessRequest
        once: True for a single cycle, False for the daemon loop
        stop_event: Optional threading.Event; setting it ends the loop
                    after the in-flight cycle
        connect_fn: Optional (config, password) -> connection
    """
    runtime_options = {
        "smtp_server": config.smtp_server,
        "smtp_port": config.smtp_port,
        "smtp_user": config.smtp_user,
        "smtp_pass": password,
        "smtp_timeout": config.smtp_timeout,
    }
    stop_event = stop_event or threading.Event()

    while not stop_event.is_set():
        try:
            with open_inbox(config, password, connect_fn) as connection:
                handler_module.check_messages(
                    connection, config, runtime_options, reprocess
                )

        except KeyboardInterrupt:
            logger.info("Shutting down gracefully...")
            break

        except Exception:
            if once:
                raise
            logger.exception("Cycle failed")

        if once:
            break

        stop_event.wait(config.poll_interval)
