"""Shared noise vocabulary for descriptions.

Both the selection filter and the historical matcher decide what counts as a
"generic" description from this module, so the two never drift apart.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Descriptions that carry no merchant information on their own. Compared
# case-insensitively after trimming and whitespace collapsing.
GENERIC_DESCRIPTIONS: frozenset[str] = frozenset(
    {
        "amazon",
        "amazon marketplace",
        "amazon.com",
        "amazon.co.uk",
        "amzn mktp",
        "amazon prime",
        "apple",
        "apple.com",
        "itunes",
        "google",
        "google play",
        "paypal",
        "ebay",
        "etsy",
        "shopping",
        "online shopping",
        "purchase",
        "online purchase",
        "card payment",
        "payment",
        "transfer",
        "misc",
        "miscellaneous",
        "unknown",
    }
)

# Substring that marks a description as generic wherever it appears.
GENERIC_SUBSTRINGS: tuple[str, ...] = ("transfer",)

# An order/reference id: any run of 8+ uppercase letters or digits.
OPAQUE_TOKEN_RE = re.compile(r"[A-Z0-9]{8,}")


@dataclass(frozen=True, slots=True)
class Platform:
    """A marketplace or payment platform recognizable from raw descriptions.

    ``receipt_domain`` is the sender domain used for receipt lookups.
    ``recurring`` platforms bill subscriptions whose receipts often omit the
    charged amount, so lookups may fall back to a date-only match.
    """

    name: str
    signatures: tuple[str, ...]
    receipt_domain: str
    recurring: bool = False


PLATFORMS: tuple[Platform, ...] = (
    Platform("Amazon", ("amazon", "amzn"), "amazon.com"),
    Platform("PayPal", ("paypal",), "paypal.com"),
    Platform("eBay", ("ebay",), "ebay.com"),
    Platform("Etsy", ("etsy",), "etsy.com"),
    Platform("Apple", ("apple.com", "itunes"), "apple.com", recurring=True),
    Platform("Google", ("google *", "google*", "google play"), "google.com", recurring=True),
)


def _canon(text: str | None) -> str:
    return " ".join((text or "").split()).casefold()


def match_platform(original_description: str | None) -> Platform | None:
    """Return the first platform whose signature occurs in the raw description."""

    text = _canon(original_description)
    if not text:
        return None
    for platform in PLATFORMS:
        if any(sig in text for sig in platform.signatures):
            return platform
    return None


def is_generic_description(description: str | None) -> bool:
    """True when ``description`` is empty or carries no merchant information.

    Generic means any of: blank, an exact (case-insensitive) member of
    :data:`GENERIC_DESCRIPTIONS`, contains ``*``, contains an opaque order id,
    or contains one of :data:`GENERIC_SUBSTRINGS`.
    """

    if description is None:
        return True
    raw = description.strip()
    if not raw:
        return True
    canon = _canon(raw)
    if canon in GENERIC_DESCRIPTIONS:
        return True
    if "*" in raw:
        return True
    if OPAQUE_TOKEN_RE.search(raw):
        return True
    return any(s in canon for s in GENERIC_SUBSTRINGS)
