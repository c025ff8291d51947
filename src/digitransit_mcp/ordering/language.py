from collections.abc import Mapping
from enum import Enum


class Language(str, Enum):
    """Name languages provided by the Digitransit geocoder."""

    FI = "fi"
    EN = "en"
    SV = "sv"
    DEFAULT = "default"


# Preference order used for tie-breaks and name fallback
LANGUAGE_ORDER: tuple[Language, ...] = (Language.FI, Language.EN, Language.SV, Language.DEFAULT)

_UNKNOWN_RANK = 99


def language_rank(language: str | None) -> int:
    """Position of a language in LANGUAGE_ORDER; unknown languages sort last."""
    for rank, known in enumerate(LANGUAGE_ORDER):
        if language == known.value:
            return rank
    return _UNKNOWN_RANK


def fallback_chain(preferred: str | None = None) -> list[str]:
    """Languages to try in order, starting with ``preferred`` when it is known.

    Example: fallback_chain("sv") -> ["sv", "fi", "en", "default"]
    """
    chain = [language.value for language in LANGUAGE_ORDER]
    if preferred in chain:
        chain.remove(preferred)
        chain.insert(0, preferred)
    return chain


def pick_best_name(names: Mapping[str, str | None], preferred: str | None = None) -> tuple[str, str] | None:
    """Pick the first available name along the fallback chain.

    Returns:
        (name, language) or None when no name is available. Names under
        languages outside the chain are used as a last resort.
    """
    for language in fallback_chain(preferred):
        name = names.get(language)
        if name:
            return name, language
    for language, name in names.items():
        if name:
            return name, language
    return None
