"""Shared configuration defaults for the SMS notifier."""
from __future__ import annotations

from typing import Optional

DISPLAY_NAME = "SMS Notifier"

DEFAULT_JENKINS_URL = "http://localhost:8080/"
DEFAULT_GATEWAY_API_URL = "https://api.twilio.com"
DEFAULT_SEND_TIMEOUT = 10.0

# International numbers, digit-count bounds keyed by country code prefix.
PHONE_NUMBER_PATTERN = (
    r"\+(9[976]\d|8[987530]\d|6[987]\d|5[90]\d|42\d|3[875]\d|2[98654321]\d"
    r"|9[8543210]|8[6421]|6[6543210]|5[87654321]|4[987654310]|3[9643210]|2[70]|7|1)"
    r"\d{1,14}$"
)

NUMBERS_ERROR_MESSAGE = (
    "The list of numbers to notify cannot be empty and must consist of "
    "international formatted phone numbers separated by a space."
)


def resolve_base_url(root_url: Optional[str], location_url: Optional[str]) -> str:
    """Pick the URL prefixed to build links in message bodies."""
    return root_url or location_url or DEFAULT_JENKINS_URL
