"""Language selection for TranslatedString values.

Resolution order:
1. the first translation whose language matches the requested language;
2. the first translation whose language matches the default language;
3. the first translation without a language;
4. otherwise ``NoTranslationAvailable``.

Language tags are BCP-47 and compare case-insensitively.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from transit_rt.errors import NoTranslationAvailable

if TYPE_CHECKING:
    from transit_rt.models.realtime import TranslatedString, Translation


def is_untagged(language: str | None) -> bool:
    return not language


def untagged_count(languages: Iterable[str | None]) -> int:
    """Number of translations without a language tag, given their tags."""
    return sum(1 for language in languages if is_untagged(language))


def _first_with_language(
    translations: tuple[Translation, ...], language: str | None
) -> Translation | None:
    if not language:
        return None
    wanted = language.casefold()
    for translation in translations:
        if translation.language and translation.language.casefold() == wanted:
            return translation
    return None


def resolve(
    translated: TranslatedString | None,
    requested_lang: str | None,
    default_lang: str | None,
) -> str:
    """Pick the best translation text.

    Raises:
        NoTranslationAvailable: If nothing matches and no translation is untagged.
    """
    translations = translated.translation if translated is not None else ()

    match = _first_with_language(translations, requested_lang)
    if match is None:
        match = _first_with_language(translations, default_lang)
    if match is None:
        match = next((t for t in translations if is_untagged(t.language)), None)
    if match is None:
        raise NoTranslationAvailable(requested_lang, default_lang)
    return match.text


def resolve_or(
    translated: TranslatedString | None,
    requested_lang: str | None,
    default_lang: str | None,
    fallback: str = "",
) -> str:
    """Like ``resolve`` but returns ``fallback`` on a miss."""
    try:
        return resolve(translated, requested_lang, default_lang)
    except NoTranslationAvailable:
        return fallback
