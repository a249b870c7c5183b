# -*- coding: utf-8 -*-
"""
Configuration data: servers, folders, addresses, intervals, and limits.
Pure data only - no functions, no side effects at import time.
"""

import os

# ============================================================================
# SERVER SETTINGS
# ============================================================================

imap_server = os.environ.get("HASHFLASH_IMAP_SERVER", "imap.provider.com")
imap_user = os.environ.get("HASHFLASH_IMAP_USER", "username")
smtp_server = os.environ.get("HASHFLASH_SMTP_SERVER", "smtp.provider.com")
smtp_port = int(os.environ.get("HASHFLASH_SMTP_PORT", "465"))
smtp_user = imap_user

# ============================================================================
# FOLDERS - where inquiries arrive and where they end up
# ============================================================================

source_folder = "INBOX"
reject_folder = "INBOX.Rejected"
done_folder = "INBOX.Done"

# ============================================================================
# REPLY SETTINGS
# ============================================================================

reply_from = "Hashflash <hashflash@example.com>"
x_mailer = "hashflash"

# Leave messages whose reply could not be delivered in the source folder
# (answered and flagged) instead of moving them to done_folder.
keep_undelivered = False

# ============================================================================
# SCHEDULE AND TIMEOUTS (seconds)
# ============================================================================

poll_interval = 60

imap_timeout = 60
smtp_timeout = 60
djia_timeout = 30

# ============================================================================
# MARKET DATA
# ============================================================================

djia_source_url_format = "http://geo.crox.net/djia/%s"
djia_max_size = 1024

# ============================================================================
# HTTP SETTINGS
# ============================================================================

http_user_agent = "hashflash (geohash autoresponder)"

# ============================================================================
# CACHE SETTINGS
# ============================================================================

cache_prefix = os.path.expanduser(
    os.environ.get("CACHE_PREFIX", "~/.hashflash_cache")
)
