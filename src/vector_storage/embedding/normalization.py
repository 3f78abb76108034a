"""Text normalization applied before re-embedding stored entries."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

ENGLISH_STOPWORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because been
    before being below between both but by can could did do does doing down during
    each few for from further had has have having he her here hers herself him
    himself his how i if in into is it its itself just me more most my myself no nor
    not now of off on once only or other our ours ourselves out over own same she
    should so some such than that the their theirs them themselves then there these
    they this those through to too under until up very was we were what when where
    which while who whom why will with would you your yours yourself yourselves
    """.split()
)

STOPWORDS = {"english": ENGLISH_STOPWORDS}

_ESCAPED_BREAKS = re.compile(r"\\[nrt]")
_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]|_")


class NormalizationConfig(BaseModel):
    """Which normalization steps to apply.

    Attributes:
        to_lowercase: Lowercase the text
        remove_punctuation: Drop punctuation and symbols, keeping letters and digits
        normalize_whitespace: Collapse whitespace, including literal ``\\n``/``\\r``
        remove_stopwords: Drop stopwords for ``language``
        language: Stopword list to use
    """

    to_lowercase: bool = Field(default=True)
    remove_punctuation: bool = Field(default=True)
    normalize_whitespace: bool = Field(default=True)
    remove_stopwords: bool = Field(default=True)
    language: str = Field(default="english")


def normalize_text_for_retrieval(text: str, config: NormalizationConfig | None = None) -> str:
    """Normalize text so equivalent inputs embed to nearby vectors.

    Example:
        >>> normalize_text_for_retrieval("The quick, brown   fox!")
        'quick brown fox'
    """
    config = config or NormalizationConfig()
    result = text

    if config.to_lowercase:
        result = result.lower()

    if config.normalize_whitespace:
        result = _ESCAPED_BREAKS.sub(" ", result)

    if config.remove_punctuation:
        result = _PUNCTUATION.sub(" " if config.normalize_whitespace else "", result)

    if config.remove_stopwords:
        stopwords = STOPWORDS.get(config.language.lower(), ENGLISH_STOPWORDS)
        words = [word for word in result.split() if word.lower() not in stopwords]
        result = " ".join(words)

    if config.normalize_whitespace:
        result = _WHITESPACE.sub(" ", result).strip()

    return result
