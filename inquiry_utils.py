# -*- coding: utf-8 -*-
"""
Inquiry parsing: turn the plain-text body of a message into a query.

A body is one of:
    GeohashQuery  - "2008-03-2 42, -71.5" (date, latitude, longitude)
    UsageQuery    - no structured request, but the word "usage" appears
    None          - anything else
"""

import datetime
import logging
import math
import re
from dataclasses import dataclass

import email_utils

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeohashQuery:
    """Request for the geohash of the graticule (lat, lon) on date."""

    date: datetime.date
    lat: float
    lon: float


@dataclass(frozen=True)
class UsageQuery:
    """Request for instructions."""


# ============================================================================
# Patterns
# ============================================================================

_DATE = r"([0-9]{4})-([0-9]{1,2})-([0-9]{1,2})"

# Only the integer degrees are kept; any fraction is matched and dropped.
_COORD = r"([-+]?)([0-9]{1,3})(?:\.[0-9]*)?"

_INQUIRY_PATTERN = re.compile(
    rf"\s*{_DATE} {_COORD}[, ]{{1,2}}{_COORD}", re.DOTALL
)

_USAGE_PATTERN = re.compile(r"\busage\b", re.IGNORECASE)

_PLAIN_TEXT = "text/plain"


def _signed_degrees(sign, digits):
    """Integer degrees as float; "-0" gives -0.0 (southern/western)."""
    return math.copysign(float(int(digits)), -1.0 if sign == "-" else 1.0)


def parse_body(body):
    """
    Parse a message body into a query.

    Args:
        body: Message text

    Returns:
        GeohashQuery, UsageQuery, or None if the body is not an inquiry
    """
    match = _INQUIRY_PATTERN.match(body)
    if match is None:
        if _USAGE_PATTERN.search(body):
            return UsageQuery()
        return None

    year, month, day, lat_sign, lat_deg, lon_sign, lon_deg = match.groups()
    try:
        date = datetime.date(int(year), int(month), int(day))
    except ValueError:
        logger.info("Invalid date: %s-%s-%s", year, month, day)
        return None

    return GeohashQuery(
        date=date,
        lat=_signed_degrees(lat_sign, lat_deg),
        lon=_signed_degrees(lon_sign, lon_deg),
    )


def extract_query(message):
    """
    Extract a query from a parsed email message.

    Args:
        message: email.message.Message

    Returns:
        Query, or None if the message is not plain text or does not parse
    """
    content_type = message.get_content_type()
    if content_type != _PLAIN_TEXT:
        logger.info("Not plain-text: %s", content_type)
        return None

    body = email_utils.decode_part(message)
    if body is None:
        logger.info("Could not decode body.")
        return None

    query = parse_body(body)
    if query is None:
        logger.info("Could not parse body.")
    return query
