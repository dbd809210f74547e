# callrelay/services/phone.py
"""
Phone number canonicalization shared by the call-center and messaging sides.

The call center reports numbers as typed by agents ("333 123 4567",
"+39 333...", "0039..."), the WhatsApp gateway as chat ids
("393331234567@s.whatsapp.net"). Everything here is pure and never raises.
"""
from __future__ import annotations

import re
from typing import Any

from callrelay import settings

_NON_DIGIT = re.compile(r"\D")

KEY_LENGTH = 10
# a bare local number; shorter keys only match exactly
MIN_SUFFIX_DIGITS = 9


def normalize(raw: Any) -> str:
    """Digits-only form with the domestic prefix added to bare 10-digit numbers."""
    if raw is None:
        return ""
    s = str(raw).strip()
    # drop transport suffixes like "@s.whatsapp.net" / "@c.us"
    s = s.split("@", 1)[0]
    digits = _NON_DIGIT.sub("", s)

    prefix = settings.DEFAULT_COUNTRY_PREFIX
    if len(digits) == KEY_LENGTH and not digits.startswith(prefix):
        digits = prefix + digits
    return digits


def comparison_key(normalized: str) -> str:
    """Last 10 digits (or the whole string when shorter)."""
    normalized = normalized or ""
    return normalized[-KEY_LENGTH:] if len(normalized) >= KEY_LENGTH else normalized


def key_for(raw: Any) -> str:
    return comparison_key(normalize(raw))


def keys_match(ka: str, kb: str) -> bool:
    if not ka or not kb:
        return False
    if ka == kb:
        return True
    shorter, longer = (ka, kb) if len(ka) <= len(kb) else (kb, ka)
    return len(shorter) >= MIN_SUFFIX_DIGITS and longer.endswith(shorter)


def phones_match(a: Any, b: Any) -> bool:
    """Same contact if keys are equal, full forms are equal, or one ends with the other's key."""
    na, nb = normalize(a), normalize(b)
    if not na or not nb:
        return False
    if na == nb:
        return True
    return keys_match(comparison_key(na), comparison_key(nb))
