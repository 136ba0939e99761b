"""Shared utilities used across the recruitment engine."""

import re
import unicodedata


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("987 654 321")
        '987654321'
        >>> normalize_phone("+51 (987) 654-321")
        '+51987654321'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def strip_accents(value: str) -> str:
    """Lowercase and remove diacritics, e.g. ``"Breña"`` -> ``"brena"``."""
    decomposed = unicodedata.normalize("NFD", value.lower().strip())
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def mask_identity(identity: str) -> str:
    """Mask all but the last four characters of a channel identity for logging.

    Examples:
        >>> mask_identity("51987654321")
        '*******4321'
    """
    if len(identity) <= 4:
        return identity
    return "*" * (len(identity) - 4) + identity[-4:]
