"""Passphrase syntax validation.

A passphrase looks like ``42-happy-snail``: a number from 0 to 100 without a
superfluous leading zero, then two lowercase words of 3 to 8 ASCII letters,
joined by hyphens.
"""

from __future__ import annotations

import re

PHRASE_PATTERN = re.compile(r"(0|[1-9][0-9]?|100)-[a-z]{3,8}-[a-z]{3,8}")


def is_valid_phrase(phrase: object) -> bool:
    """Check whether a value is a well-formed passphrase.

    The whole string must match; ``re.fullmatch`` also rejects a trailing
    newline, which ``$`` would let through.

    Args:
        phrase: Candidate phrase, usually taken from a path or JSON body.

    Returns:
        True if the phrase matches the grammar, False otherwise.

    Examples:
        >>> is_valid_phrase("5-cat-dog")
        True
        >>> is_valid_phrase("05-cat-dog")
        False
    """
    if not isinstance(phrase, str):
        return False
    return PHRASE_PATTERN.fullmatch(phrase) is not None
