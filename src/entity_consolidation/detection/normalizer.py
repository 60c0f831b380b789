"""Canonical forms for identifiers and names.

Both functions are pure and idempotent: normalizing an already-normalized
value returns it unchanged.
"""

from __future__ import annotations

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")


def normalize_identifier(raw: object) -> str:
    """Normalize a tax identifier for exact matching.

    Keeps only alphanumeric characters and upper-cases them. Returns "" for
    None or blank input; callers treat "" as "no identifier" and never match
    two empty identifiers against each other.

    Examples:
        "123 456 789" -> "123456789"
        "pt-501.234.567" -> "PT501234567"
        None -> ""
    """
    if raw is None:
        return ""
    text = unicodedata.normalize("NFKC", str(raw))
    return "".join(ch for ch in text if ch.isalnum()).upper()


def strip_diacritics(text: str) -> str:
    """Remove combining marks: "João" -> "Joao"."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(raw: object) -> str:
    """Normalize a display name for similarity comparison.

    Normalization rules:
    - Unicode NFKD, combining marks dropped (diacritics)
    - Lowercase
    - Punctuation replaced by a space
    - Whitespace trimmed and collapsed

    Examples:
        "  João   Pereira " -> "joao pereira"
        "MARIA SILVA, LDA." -> "maria silva lda"
    """
    if raw is None:
        return ""
    text = strip_diacritics(str(raw)).lower()
    text = "".join(ch if ch.isalnum() or ch.isspace() else " " for ch in text)
    return _WHITESPACE.sub(" ", text).strip()


def blocking_keys(normalized_name: str, strategy: str) -> set[str]:
    """Cheap bucket keys for a normalized name.

    Strategies:
        token_prefix: first 4 characters of every token (names sharing any
            token prefix land in a common bucket)
        first_token: the first token only
        none: a single shared bucket (full pairwise comparison)
    """
    if not normalized_name:
        return set()
    tokens = normalized_name.split(" ")
    if strategy == "token_prefix":
        return {token[:4] for token in tokens}
    if strategy == "first_token":
        return {tokens[0]}
    if strategy == "none":
        return {""}
    msg = f"Unknown blocking strategy: {strategy!r}"
    raise ValueError(msg)
