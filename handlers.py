# -*- coding: utf-8 -*-
"""
Message handling: IMAP flag operations and the per-message state machine.

Flag handlers are factory functions that return configured handler functions.
Handler signature: handler(server, listofuids) -> (res, data)

A message's state lives only in its flags and folder:

    NEW       no \\Answered, no \\Flagged -> parse, reply, relocate
    ANSWERED  \\Answered but still here   -> a reply may have gone out; flag it
    FLAGGED   \\Flagged                   -> left for manual attention

All flag changes made while processing go through mark_answered,
flag_for_attention, relocate and reopen.
"""

import collections
import enum
import imaplib
import logging
import queue

import email_utils
import imap_utils
import inquiry_utils
import response_utils
from imap_utils import ANSWERED
from imap_utils import FLAGGED

logger = logging.getLogger(__name__)


# ============================================================================
# Flag handlers
# ============================================================================


def Delete():
    """Factory: Create handler that marks messages as deleted"""

    def handler(server, listofuids):
        theuids = b",".join(listofuids)
        return server.uid("STORE", theuids, "+FLAGS", r"(\Deleted)")

    return handler


def Copy(folder):
    """Factory: Create handler that copies messages to folder"""

    def handler(server, listofuids):
        theuids = b",".join(listofuids)
        return server.uid("COPY", theuids, folder)

    return handler


def Move(folder):
    """Factory: Create handler that moves messages (copy + delete)"""
    copy_handler = Copy(folder)
    delete_handler = Delete()

    def handler(server, listofuids):
        res, data = copy_handler(server, listofuids)
        if res == "OK":
            return delete_handler(server, listofuids)
        return (res, data)

    return handler


def SetFlags(flag):
    """Factory: Create handler that sets IMAP flags on messages"""

    def handler(server, listofuids):
        theuids = b",".join(listofuids)
        return server.uid("STORE", theuids, "+FLAGS", flag)

    return handler


def ClearFlags(flag):
    """Factory: Create handler that removes IMAP flags from messages"""

    def handler(server, listofuids):
        theuids = b",".join(listofuids)
        return server.uid("STORE", theuids, "-FLAGS", flag)

    return handler


def SetFlagsAndMove(flag, folder):
    """Factory: Create handler that sets flags and moves messages"""
    set_flags_handler = SetFlags(flag)
    move_handler = Move(folder)

    def handler(server, listofuids):
        res, data = set_flags_handler(server, listofuids)
        if res == "OK":
            return move_handler(server, listofuids)
        return (res, data)

    return handler


_set_answered = SetFlags(r"(\Answered)")
_set_flagged = SetFlags(r"(\Flagged)")
_clear_progress = ClearFlags(r"(\Answered \Flagged)")


# ============================================================================
# Mutation interface
# ============================================================================


def mark_answered(server, uid):
    """Record that a reply is about to be sent. Must succeed before sending."""
    res, data = _set_answered(server, [uid])
    imap_utils.require_ok(res, data, "STORE \\Answered")


def flag_for_attention(server, uid):
    """Set \\Flagged; the message is skipped by every later cycle."""
    res, data = _set_flagged(server, [uid])
    imap_utils.require_ok(res, data, "STORE \\Flagged")


def relocate(server, uid, folder):
    """
    Move a message out of the source folder: set \\Seen, copy to folder,
    set \\Deleted. The original disappears when the folder is closed.
    """
    logger.debug("Moving message to folder: %s", folder)
    res, data = SetFlagsAndMove(r"(\Seen)", folder)(server, [uid])
    imap_utils.require_ok(res, data, f"Move to {folder}")


def reopen(server, listofuids):
    """Clear \\Answered and \\Flagged so messages get a fresh pass."""
    res, data = _clear_progress(server, listofuids)
    imap_utils.require_ok(res, data, "STORE -\\Answered \\Flagged")


# ============================================================================
# State machine
# ============================================================================


class MessageStatus(enum.Enum):
    NEW = "new"
    ANSWERED = "answered"
    FLAGGED = "flagged"


def message_status(flags):
    """Derive the processing status from a message's flags."""
    if FLAGGED in flags:
        return MessageStatus.FLAGGED
    if ANSWERED in flags:
        return MessageStatus.ANSWERED
    return MessageStatus.NEW


class Outcome(enum.Enum):
    SKIPPED = "skipped"  # already flagged
    FLAGGED = "flagged"  # answered earlier but never relocated
    REJECTED = "rejected"
    DEFERRED = "deferred"  # no answer possible yet, retried next cycle
    ANSWERED = "answered"
    UNDELIVERED = "undelivered"
    ERROR = "error"


def process_message(
    server,
    listed,
    config,
    options,
    send_fn=None,
    compose_fn=None,
):
    """
    Apply one transition of the state machine to a listed message.

    Args:
        server: IMAP connection with the source folder selected
        listed: imap_utils.ListedMessage
        config: Configuration with folders, reply_from, keep_undelivered
        options: Dict with SMTP settings, passed to send_fn
        send_fn: Optional (options, from_addr, to_addr, message) -> bool
                 Defaults to email_utils.send_via_smtp
        compose_fn: Optional query -> reply text or None
                    Defaults to response_utils.compose_response

    Returns:
        Outcome

    Raises:
        Transport errors. \\Answered is set before sending, so a failure
        after that point is caught by the ANSWERED rule next cycle.
    """
    send_fn = send_fn or email_utils.send_via_smtp
    compose_fn = compose_fn or response_utils.compose_response

    status = message_status(listed.flags)

    if status is MessageStatus.FLAGGED:
        return Outcome.SKIPPED

    if status is MessageStatus.ANSWERED:
        logger.warning("Flagging lingering message %s.", listed.uid)
        flag_for_attention(server, listed.uid)
        return Outcome.FLAGGED

    themail = imap_utils.fetch_message(server, listed.uid)
    logger.debug("Message ID: %s", themail["Message-ID"])

    query = inquiry_utils.extract_query(themail)
    if query is not None and not email_utils.reply_address(themail):
        logger.info("No address to reply to.")
        query = None
    if query is None:
        relocate(server, listed.uid, config.reject_folder)
        return Outcome.REJECTED

    logger.debug("Received query: %s", query)
    response = compose_fn(query)
    if response is None:
        logger.info("No response for %s yet, leaving it for the next cycle.", query)
        return Outcome.DEFERRED

    reply = email_utils.build_reply(themail, response, config)

    # Marked before sending: if anything below fails, the next cycle sees
    # \Answered on a message still here and flags it instead of replying twice.
    mark_answered(server, listed.uid)

    logger.info("Sending response to %s.", reply["To"])
    delivered = send_fn(options, config.reply_from, reply["To"], reply)
    if not delivered:
        logger.warning("Failed to send response. Flagged.")
        flag_for_attention(server, listed.uid)
        if getattr(config, "keep_undelivered", False):
            return Outcome.UNDELIVERED

    relocate(server, listed.uid, config.done_folder)
    return Outcome.ANSWERED if delivered else Outcome.UNDELIVERED


# ============================================================================
# Cycle
# ============================================================================


class ReprocessRequest:
    """
    Operator request to give every message in the source folder a fresh pass.

    Any number of producers may call request(), including signal handlers.
    The cycle is the single consumer: consume() reports whether at least one
    request arrived since the last call and resets the request.
    """

    def __init__(self):
        # SimpleQueue.put is reentrant, so request() is safe in signal handlers.
        self._requests = queue.SimpleQueue()

    def request(self):
        self._requests.put(True)

    def consume(self):
        pending = False
        while True:
            try:
                self._requests.get_nowait()
            except queue.Empty:
                return pending
            pending = True

    @property
    def pending(self):
        return not self._requests.empty()


def _reopen_all(server, messages):
    logger.info("Reprocess requested: reopening %d messages.", len(messages))
    if messages:
        reopen(server, [listed.uid for listed in messages])
    return [
        imap_utils.ListedMessage(
            uid=listed.uid, flags=listed.flags - {ANSWERED, FLAGGED}
        )
        for listed in messages
    ]


def check_messages(
    server,
    config,
    runtime_options=None,
    reprocess=None,
    send_fn=None,
    compose_fn=None,
):
    """
    Run one cycle over the selected source folder.

    Args:
        server: IMAP connection with the source folder selected
        config: Configuration module
        runtime_options: Dict with smtp_server, smtp_user, smtp_pass
        reprocess: Optional ReprocessRequest, consumed at the start
        send_fn: Optional sender, see process_message
        compose_fn: Optional composer, see process_message

    Returns:
        collections.Counter of Outcome
    """
    runtime_options = runtime_options or {}
    outcomes = collections.Counter()

    logger.debug("Checking for new messages...")
    listed_ok = True
    try:
        messages = imap_utils.list_messages(server)
    except Exception:
        logger.exception("Listing messages failed")
        messages = []
        listed_ok = False

    if messages:
        logger.info("Messages found: %d", len(messages))

    # A request is only consumed by a cycle that could see the messages.
    if listed_ok and reprocess is not None and reprocess.consume():
        try:
            messages = _reopen_all(server, messages)
        except (imap_utils.MailboxError, imaplib.IMAP4.error, OSError):
            logger.exception("Reopening messages failed, keeping the request")
            reprocess.request()

    for listed in messages:
        try:
            outcome = process_message(
                server, listed, config, runtime_options, send_fn, compose_fn
            )
        except Exception:
            logger.exception("Processing message %s failed", listed.uid)
            outcomes[Outcome.ERROR] += 1
            continue
        outcomes[outcome] += 1

    return outcomes
