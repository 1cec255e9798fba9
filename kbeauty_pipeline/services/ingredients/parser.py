"""INCI ingredient list parsing.

INCI lists are ordered by concentration, highest first, so the 1-based
position assigned here is meaningful and is never re-sorted downstream.
"""

import re

from kbeauty_pipeline.core.schema import ParsedIngredient

_PREFIX = re.compile(
    r"^(ingredients\s*:|inci\s*:|full\s+ingredients?\s*(list)?\s*:)", re.IGNORECASE
)
_NUMBERING = re.compile(r"^\d+[.)]\s*")
_BULLET = re.compile(r"^[-•]\s*")
_MARKERS = re.compile(r"[*†‡]+")
_WHITESPACE = re.compile(r"\s+")

# Annotations that show up between commas but are not ingredients
_NON_INGREDIENTS = [
    re.compile(r"^may contain$", re.IGNORECASE),
    re.compile(r"^\+/-$"),
    re.compile(r"^(and|or|with|contains)$", re.IGNORECASE),
    re.compile(r"^(other|inactive|active)\s+ingredients?$", re.IGNORECASE),
    re.compile(r"^\d+(\.\d+)?%$"),
]


def split_top_level(text: str) -> list[str]:
    """
    Split on commas that are not inside parentheses or brackets.

    "Water (Aqua), Glycerin" -> ["Water (Aqua)", " Glycerin"]
    "[+/- CI 77891, CI 77492]" stays one part, and so does the locant
    comma in "1,2-Hexanediol".
    """
    parts: list[str] = []
    current: list[str] = []
    paren_depth = 0
    bracket_depth = 0

    for i, char in enumerate(text):
        if (
            char == ","
            and 0 < i < len(text) - 1
            and text[i - 1].isdigit()
            and text[i + 1].isdigit()
        ):
            current.append(char)
            continue

        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth = max(0, paren_depth - 1)
        elif char == "[":
            bracket_depth += 1
        elif char == "]":
            bracket_depth = max(0, bracket_depth - 1)

        if char == "," and paren_depth == 0 and bracket_depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)

    tail = "".join(current)
    if tail.strip():
        parts.append(tail)
    return parts


def normalize_name(token: str) -> str:
    """Clean one comma-separated token into an ingredient name."""
    name = _WHITESPACE.sub(" ", token.strip())
    name = _NUMBERING.sub("", name)
    name = _BULLET.sub("", name)
    name = _MARKERS.sub("", name).strip()

    # A token that is entirely parenthetical is unwrapped; "Water (Aqua)" is kept
    if name.startswith("(") and name.endswith(")") and len(name) > 2:
        name = name[1:-1].strip()

    return _WHITESPACE.sub(" ", name).strip()


def is_non_ingredient(name: str) -> bool:
    if len(name) < 2:
        return True
    return any(pattern.match(name) for pattern in _NON_INGREDIENTS)


def parse_inci(text: str | None) -> list[ParsedIngredient]:
    """
    Parse a raw INCI string into ordered ingredients.

    Args:
        text: Raw ingredient list as scraped.

    Returns:
        Ingredients with positions 1..N in input order.
    """
    if not text or not text.strip():
        return []

    cleaned = re.sub(r"[\r\n\t]", " ", text).strip()
    cleaned = _PREFIX.sub("", cleaned).strip()
    if cleaned.endswith("."):
        cleaned = cleaned[:-1].strip()

    ingredients: list[ParsedIngredient] = []
    for token in split_top_level(cleaned):
        name = normalize_name(token)
        if not name or is_non_ingredient(name):
            continue
        ingredients.append(ParsedIngredient(name=name, position=len(ingredients) + 1))

    return ingredients
