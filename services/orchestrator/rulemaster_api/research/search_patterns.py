"""
Search query variants for resolving a user-typed game name.

Users type titles in Korean, with or without spaces, singular or plural, in
any case. Upstream search is literal, so one name fans out into several
query strings.
"""

import re
from typing import Iterable, List, Optional, Tuple

from .terminology import TermDictionary

KEYWORD_MIN_NAME_LENGTH = 4
PREFIX_MIN_NAME_LENGTH = 6
MAX_PREFIX_LENGTH = 6
MIN_WORD_LENGTH = 3

# (singular suffix, plural suffix) for multi-word titles
PLURAL_SUFFIXES: Tuple[Tuple[str, str], ...] = (
    (" land", " lands"),
    (" game", " games"),
    (" card", " cards"),
)

_ASCII_WORD = re.compile(r"^[A-Za-z]+$")


def _dedupe(patterns: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(p for p in patterns if p and p.strip()))


def plural_variants(name: str) -> List[str]:
    """Singular/plural spellings of a title."""
    variants: List[str] = []
    lowered = name.lower()

    for singular, plural in PLURAL_SUFFIXES:
        if lowered.endswith(plural):
            variants.append(name[: -len(plural)] + singular.title())
        elif lowered.endswith(singular):
            variants.append(name + "s")

    # Generic English rules for single words only
    if _ASCII_WORD.match(name) and not lowered.endswith("s"):
        if lowered.endswith("y"):
            variants.append(name[:-1] + "ies")
        elif lowered.endswith(("h", "x")):
            variants.append(name + "es")
        else:
            variants.append(name + "s")

    return variants


def keyword_variants(name: str) -> List[str]:
    """Partial keywords for long names: a leading prefix and each longer word."""
    if len(name) <= KEYWORD_MIN_NAME_LENGTH:
        return []

    keywords: List[str] = []
    if len(name) > PREFIX_MIN_NAME_LENGTH:
        keywords.append(name[: min(MAX_PREFIX_LENGTH, len(name) - 1)])

    words = name.split()
    if len(words) > 1:
        keywords.extend(word for word in words if len(word) >= MIN_WORD_LENGTH)
    return keywords


def generate_search_patterns(name: str, dictionary: Optional[TermDictionary] = None) -> List[str]:
    """
    Expand a game name into distinct upstream query strings.

    Args:
        name: Game name as typed by the user
        dictionary: Title translations and spacing variants

    Returns:
        Unique patterns, original first, in generation order
    """
    dictionary = dictionary or TermDictionary()
    original = name.strip()
    if not original:
        return []

    patterns: List[str] = [original]

    # Step 1: dictionary translations
    translations = dictionary.translate_title(original)
    patterns.extend(translations)

    # Step 2: spacing
    if " " in original:
        patterns.append(original.replace(" ", ""))
        patterns.append("-".join(original.split()))
    else:
        patterns.extend(dictionary.spaced_variants(original))

    # Step 3: singular/plural of the original and its translations
    for pattern in [original] + translations:
        patterns.extend(plural_variants(pattern))

    # Step 4: case
    patterns.append(original.lower())
    patterns.append(original.upper())

    # Step 5: partial keywords
    patterns.extend(keyword_variants(original))

    return _dedupe(patterns)
