"""
Conversion of external alphanumeric identifiers into correlation keys.

External ids (guids, usernames) are base-36 numerals; their integer value is
the key stored in ``external_id_map.internal_key`` and in the ``import_id``
custom field of destination entities.
"""

from __future__ import annotations

import string

from ..errors import MalformedIdentifier

BASE36_ALPHABET = string.digits + string.ascii_lowercase

# external_id_map.internal_key is a signed 64-bit column; 36**12 - 1 still fits.
MAX_IDENTIFIER_LENGTH = 12


def encode_external_id(external_id: str) -> int:
    """
    Interpret ``external_id`` as a case-insensitive base-36 integer.

    Raises:
        MalformedIdentifier: for non-strings, empty strings, characters outside
            ``[0-9a-z]`` or identifiers too long for the correlation column.
    """

    if not isinstance(external_id, str):
        raise MalformedIdentifier(external_id, "expected a string")
    candidate = external_id.lower()
    if not candidate:
        raise MalformedIdentifier(external_id, "identifier is empty")
    invalid = sorted({char for char in candidate if char not in BASE36_ALPHABET})
    if invalid:
        raise MalformedIdentifier(external_id, f"unexpected characters {''.join(invalid)!r}")
    if len(candidate.lstrip("0")) > MAX_IDENTIFIER_LENGTH:
        raise MalformedIdentifier(external_id, f"longer than {MAX_IDENTIFIER_LENGTH} significant characters")
    return int(candidate, 36)


def decode_internal_key(key: int, *, width: int = 0) -> str:
    """Render a correlation key back as a lower-case base-36 string, zero padded to ``width``."""

    if key < 0:
        raise ValueError("correlation keys are non-negative")
    digits = []
    while key:
        key, remainder = divmod(key, 36)
        digits.append(BASE36_ALPHABET[remainder])
    encoded = "".join(reversed(digits)) or "0"
    return encoded.rjust(width, "0")
