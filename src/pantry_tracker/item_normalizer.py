"""Product name normalization for searching."""

import re
import unicodedata

_LEADING_DESCRIPTORS = {"organic", "fresh", "whole", "large", "small"}
_TRAILING_FILLER = {"pack", "packs", "count", "ct", "pkg", "pk", "bag", "bottle", "can"}
_MEASURE_TOKEN = re.compile(r"^\d+(?:\.\d+)?(?:oz|lb|lbs|g|kg|ml|l|ct)$")


def _fold_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_product_name(name: str) -> str:
    """Lowercase, accent-free name with descriptors and pack sizes dropped."""
    cleaned = re.sub(r"[^a-z0-9 ]+", " ", _fold_accents(name.lower()))
    tokens = cleaned.split()

    while tokens and tokens[0] in _LEADING_DESCRIPTORS:
        tokens.pop(0)
    while tokens and (tokens[-1] in _TRAILING_FILLER or _MEASURE_TOKEN.match(tokens[-1])):
        tokens.pop()

    if not tokens:
        return " ".join(cleaned.split())
    return " ".join(tokens)


def name_matches(name: str, term: str) -> bool:
    """Substring match on normalized forms, so "jabon" finds "Jabón de manos"."""
    needle = " ".join(re.sub(r"[^a-z0-9 ]+", " ", _fold_accents(term.lower())).split())
    if not needle:
        return False
    return needle in normalize_product_name(name) or needle in " ".join(
        re.sub(r"[^a-z0-9 ]+", " ", _fold_accents(name.lower())).split()
    )
