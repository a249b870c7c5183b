#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Single-run geohash autoresponder.
Connects to IMAP, processes the source folder once, and exits.
Pass --reprocess to clear \\Answered and \\Flagged on all messages first.
"""

import sys

import config_data
import handlers
import imap_utils
import runloop


def main():
    runloop.configure_logging()
    imap_utils.check_config(config_data)
    password = imap_utils.get_credential("EMAIL_PASSWORD", "password", "Password: ")

    reprocess = handlers.ReprocessRequest()
    if "--reprocess" in sys.argv:
        reprocess.request()

    imap_utils.run(config_data, handlers, password, reprocess=reprocess, once=True)


if __name__ == "__main__":
    main()
