#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Continuous geohash autoresponder daemon.
Checks the source folder once per poll interval and answers inquiries.

Signals:
    SIGTERM  stop after the current cycle
    SIGUSR1  reprocess every message in the source folder on the next cycle
"""

import logging
import os
import signal
import threading

import config_data
import handlers
import imap_utils

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main():
    configure_logging()
    imap_utils.check_config(config_data)
    password = imap_utils.get_credential("EMAIL_PASSWORD", "password", "Password: ")

    stop_event = threading.Event()
    reprocess = handlers.ReprocessRequest()

    signal.signal(signal.SIGTERM, lambda signum, frame: stop_event.set())
    signal.signal(signal.SIGUSR1, lambda signum, frame: reprocess.request())

    logger.info(
        "Watching %s every %ss", config_data.source_folder, config_data.poll_interval
    )
    imap_utils.run(
        config_data, handlers, password, reprocess=reprocess, stop_event=stop_event
    )


if __name__ == "__main__":
    main()
