"""Description normalization: raw bank strings -> short fuzzy match keys.

The cleanup is an ordered, data-driven list of ``(pattern, replacement)``
rules. Each rule is applied once per pass, the whole pass is repeated until
the output no longer changes, and the first ``max_tokens`` words are kept.
Repeating to a fixed point keeps ``normalize_description`` idempotent even
when removing one tag exposes another.

Example::

    >>> normalize_description("SQ *COFFEE SHOP XX1234")
    'coffee shop'
"""

from __future__ import annotations

import re

DEFAULT_MAX_TOKENS = 3

# Marks the position of a masked card/account number; everything from the
# first marker onward is dropped.
_SENTINEL = "\x00"

# Masked digits: "xx1234", "xxxx", "****1234". Letters directly after the x's
# (e.g. "xxl") are not a mask; "exxon" is protected by the word boundary.
_MASK_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bx{2,}(?![a-z])\d*"), _SENTINEL),
    (re.compile(r"\*{3,}\d*"), _SENTINEL),
)

# Low-information processor, routing and payment-type tags. Order matters
# only for overlapping tags; each is removed at its first occurrence.
PREFIX_RULES: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(p), r)
    for p, r in (
        (r"\bsq\s*\*", " "),  # Square
        (r"\btst\s*\*", " "),  # Toast
        (r"\bsp\s*\*", " "),  # Shopify
        (r"\bzettle_?\s*\*", " "),
        (r"\bsumup\s*\*", " "),
        (r"\bpaypal\s*\*", " "),
        (r"\bpos\s+(?:purchase\s+)?", " "),
        (r"\bcard payment to\b", " "),
        (r"\bdirect debit\b", " "),
        (r"\bbill payment\b", " "),
        (r"\bdividend received\b", " "),
        (r"\bfaster payment\b", " "),
    )
)

_MAX_PASSES = 8


def _clean_once(text: str) -> str:
    s = text.lower()
    for pattern, repl in _MASK_RULES:
        s = pattern.sub(repl, s)
    cut = s.find(_SENTINEL)
    if cut != -1:
        s = s[:cut]
    for pattern, repl in PREFIX_RULES:
        s = pattern.sub(repl, s, count=1)
    s = s.replace("*", " ")
    return " ".join(s.split())


def normalize_description(raw: str | None, *, max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """Return the canonical match key for a raw description.

    Pure and deterministic. ``None``/blank input (or input that is entirely
    noise) yields ``""``, which callers treat as "no match possible".
    """

    if max_tokens <= 0:
        raise ValueError("max_tokens must be a positive integer")
    if not raw:
        return ""
    s = str(raw)
    for _ in range(_MAX_PASSES):
        cleaned = " ".join(_clean_once(s).split()[:max_tokens])
        if cleaned == s:
            break
        s = cleaned
    return s
