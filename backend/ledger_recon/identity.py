"""
Identity utilities shared by both ledgers.

- normalize_identity: canonical join key from an email-like field
- derive_name: coarse name token from the local part, used for fallback matching
"""

import re

# Letters (including German umlauts and sharp s), dots and hyphens survive
_NAME_STRIP_PATTERN = re.compile(r"[^a-zA-ZäöüÄÖÜß.\-]")

MIN_NAME_LENGTH = 2


def normalize_identity(identity: str) -> str:
    """
    Normalize an identity field to the join key used for bucketing.

    Blank input is the caller's responsibility; the engine does not re-validate.
    """
    return identity.strip().lower()


def derive_name(identity: str) -> str:
    """
    Derive a name token from the local part of an email-like identity.

    Examples:
        john.doe@example.com -> john.doe
        j.smith42@test.de -> j.smith
        12345@test.de -> ""

    Returns:
        Lower-cased name, or an empty string when nothing usable remains
    """
    if not identity or not identity.strip():
        return ""

    local_part = identity.split("@", 1)[0]
    clean_name = _NAME_STRIP_PATTERN.sub("", local_part)

    if len(clean_name) < MIN_NAME_LENGTH or len(clean_name.strip(".-")) < MIN_NAME_LENGTH:
        return ""

    return clean_name.lower()
