"""Ingredient line parsing into structured quantity/unit/name records.

Two text layouts are understood:

* Format A, one ingredient per line with the amount in a trailing
  parenthetical: ``Chicken thigh, boneless skinless(2 lb, cut into pieces)``
* Format B, alternating name and amount lines::

      Chicken thigh
      2 lb

A list of strings skips layout detection; every element is parsed on its own.
Parsing never raises for a single bad line, it degrades to a minimal record.
"""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Canonical unit -> accepted spellings (singular; plurals handled by the pattern)
UNIT_SPELLINGS: dict[str, tuple[str, ...]] = {
    # Volume
    "teaspoon": ("teaspoon", "tsp"),
    "tablespoon": ("tablespoon", "tbsp"),
    "cup": ("cup",),
    "fluid ounce": ("fluid ounce", "fl oz"),
    "pint": ("pint", "pt"),
    "quart": ("quart", "qt"),
    "gallon": ("gallon", "gal"),
    "milliliter": ("milliliter", "millilitre", "ml"),
    "liter": ("liter", "litre", "l"),
    # Weight
    "ounce": ("ounce", "oz"),
    "pound": ("pound", "lb"),
    "gram": ("gram", "g"),
    "kilogram": ("kilogram", "kg"),
    # Count
    "unit": ("unit",),
    "head": ("head",),
    "clove": ("clove",),
    "stalk": ("stalk",),
    "bunch": ("bunch",),
    "slice": ("slice",),
    "piece": ("piece",),
}

UNIT_ALIASES: dict[str, str] = {
    spelling: canonical for canonical, spellings in UNIT_SPELLINGS.items() for spelling in spellings
}

VULGAR_FRACTIONS: dict[str, float] = {
    "¼": 0.25,
    "½": 0.5,
    "¾": 0.75,
    "⅓": 1 / 3,
    "⅔": 2 / 3,
    "⅕": 0.2,
    "⅖": 0.4,
    "⅗": 0.6,
    "⅘": 0.8,
    "⅙": 1 / 6,
    "⅚": 5 / 6,
    "⅛": 0.125,
    "⅜": 0.375,
    "⅝": 0.625,
    "⅞": 0.875,
}

_GLYPHS = "".join(VULGAR_FRACTIONS)

# Longest spellings first so "tablespoon" wins over "tbsp" and "fl oz" over "l"
_UNIT_ALTERNATION = "|".join(
    re.escape(spelling).replace(r"\ ", r"\s+")
    for spelling in sorted(UNIT_ALIASES, key=len, reverse=True)
)

NUMBER_PATTERN = (
    rf"(?:\d+\s+\d+\s*/\s*\d+"  # mixed number: 1 1/2
    rf"|\d+\s*[{_GLYPHS}]"  # mixed glyph: 1½
    rf"|\d+\s*/\s*\d+"  # fraction: 1/2
    rf"|\d*\.\d+"  # decimal: .5, 1.5
    rf"|\d+"  # integer
    rf"|[{_GLYPHS}])"  # glyph: ½
)
QUANTITY_PATTERN = rf"(?P<qty>{NUMBER_PATTERN})(?:\s*(?:-|–|to)\s*(?P<qty_max>{NUMBER_PATTERN}))?"
UNIT_PATTERN = rf"(?P<unit>(?:{_UNIT_ALTERNATION})(?:es|s)?\.?)(?![a-zA-Z])"

AMOUNT_RE = re.compile(rf"^\s*{QUANTITY_PATTERN}(?:\s*{UNIT_PATTERN})?", re.IGNORECASE)
ALTERNATIVE_RE = re.compile(
    rf"^\s*[\(\[]\s*{QUANTITY_PATTERN}(?:\s*{UNIT_PATTERN})?\s*[\)\]]", re.IGNORECASE
)


@dataclass
class AlternativeQuantity:
    """An equivalent amount given alongside the primary one, e.g. ``(240 ml)``."""

    quantity: float
    unit: str
    unit_text: str
    min_quantity: float
    max_quantity: float


@dataclass
class ParsedIngredient:
    """A structured ingredient line."""

    ingredient: str
    quantity: float = 0
    quantity_text: str = ""
    min_quantity: float = 0
    max_quantity: float = 0
    unit: str = ""
    unit_text: str = ""
    extra: str = ""
    alternative_quantities: list[AlternativeQuantity] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase shape used over the wire."""
        return {
            "quantity": self.quantity,
            "quantityText": self.quantity_text,
            "minQuantity": self.min_quantity,
            "maxQuantity": self.max_quantity,
            "unit": self.unit,
            "unitText": self.unit_text,
            "ingredient": self.ingredient,
            "extra": self.extra,
            "alternativeQuantities": [
                {
                    "quantity": alt.quantity,
                    "unit": alt.unit,
                    "unitText": alt.unit_text,
                    "minQuantity": alt.min_quantity,
                    "maxQuantity": alt.max_quantity,
                }
                for alt in self.alternative_quantities
            ],
        }


@dataclass
class Amount:
    """Result of the amount grammar: a quantity, an optional unit and leftover text."""

    quantity: float
    quantity_text: str
    min_quantity: float
    max_quantity: float
    unit: str = ""
    unit_text: str = ""
    alternative_quantities: list[AlternativeQuantity] = field(default_factory=list)
    remainder: str = ""


def number_value(text: str) -> float:
    """
    Convert a number token to a float.

    Handles integers, decimals, ``a/b`` fractions, mixed numbers (``1 1/2``,
    ``1½``) and unicode vulgar fractions.

    Raises:
        ValueError: If the token is not a number
        ZeroDivisionError: For fractions like ``1/0``
    """
    text = text.strip()
    if not text:
        raise ValueError("empty number")

    if text[-1] in VULGAR_FRACTIONS:
        whole = text[:-1].strip()
        return (float(whole) if whole else 0.0) + VULGAR_FRACTIONS[text[-1]]

    if "/" in text:
        head, denominator = text.rsplit("/", 1)
        parts = head.split()
        numerator = float(parts[-1])
        whole = float(parts[0]) if len(parts) > 1 else 0.0
        return whole + numerator / float(denominator)

    return float(text)


def canonical_unit(unit_text: str) -> str:
    """Map a unit as written ("Tbsp", "cups", "fl. oz") to its canonical name."""
    text = re.sub(r"\s+", " ", unit_text.strip().lower().rstrip("."))
    if text in UNIT_ALIASES:
        return UNIT_ALIASES[text]
    for suffix in ("es", "s"):
        if text.endswith(suffix) and text[: -len(suffix)] in UNIT_ALIASES:
            return UNIT_ALIASES[text[: -len(suffix)]]
    return ""


def _quantities(match: re.Match[str]) -> tuple[float, str, float, float]:
    qty_text = match.group("qty").strip()
    low = number_value(qty_text)
    high = low
    if match.group("qty_max"):
        high = number_value(match.group("qty_max"))
        qty_text = match.string[match.start("qty") : match.end("qty_max")]
    # Shopping needs the upper end of a range
    return high, qty_text.strip(), low, high


def parse_amount(text: str) -> Amount | None:
    """
    Parse an amount such as ``2 lb``, ``¼ cup``, ``1-2 heads`` or ``3``.

    The text must start with the number. Anything after the amount (minus an
    alternative quantity in brackets) is kept in ``remainder``.

    Returns:
        Amount, or None if the text does not start with a number
    """
    match = AMOUNT_RE.match(text)
    if not match:
        return None

    quantity, quantity_text, low, high = _quantities(match)
    unit_text = (match.group("unit") or "").strip()
    rest = text[match.end() :]

    alternatives = []
    alt_match = ALTERNATIVE_RE.match(rest)
    if alt_match:
        alt_quantity, _, alt_low, alt_high = _quantities(alt_match)
        alt_unit_text = (alt_match.group("unit") or "").strip()
        alternatives.append(
            AlternativeQuantity(
                quantity=alt_quantity,
                unit=canonical_unit(alt_unit_text),
                unit_text=alt_unit_text,
                min_quantity=alt_low,
                max_quantity=alt_high,
            )
        )
        rest = rest[alt_match.end() :]

    return Amount(
        quantity=quantity,
        quantity_text=quantity_text,
        min_quantity=low,
        max_quantity=high,
        unit=canonical_unit(unit_text),
        unit_text=unit_text,
        alternative_quantities=alternatives,
        remainder=rest.strip().lstrip(",;").strip(),
    )


def _build(amount: Amount, ingredient: str, extra: str = "") -> ParsedIngredient:
    return ParsedIngredient(
        ingredient=ingredient,
        quantity=amount.quantity,
        quantity_text=amount.quantity_text,
        min_quantity=amount.min_quantity,
        max_quantity=amount.max_quantity,
        unit=amount.unit,
        unit_text=amount.unit_text,
        extra=extra,
        alternative_quantities=amount.alternative_quantities,
    )


def _join_extra(*parts: str) -> str:
    return ", ".join(part.strip() for part in parts if part and part.strip())


def minimal_ingredient(name: str) -> ParsedIngredient:
    """A record with no amount, used whenever nothing better can be parsed."""
    return ParsedIngredient(ingredient=name.strip())


def split_trailing_parenthetical(text: str) -> tuple[str, str]:
    """
    Split ``"garlic ((minced))"`` into ``("garlic", "minced")``.

    Only a balanced group at the very end is split off; nested wrapping
    parentheses are removed from the inner text.
    """
    stripped = text.rstrip()
    if not stripped.endswith(")"):
        return stripped, ""

    depth = 0
    for index in range(len(stripped) - 1, -1, -1):
        char = stripped[index]
        if char == ")":
            depth += 1
        elif char == "(":
            depth -= 1
            if depth == 0:
                inner = stripped[index + 1 : -1].strip()
                while inner.startswith("(") and inner.endswith(")"):
                    inner = inner[1:-1].strip()
                return stripped[:index].rstrip(), inner
    return stripped, ""


def parse_ingredient(line: str) -> ParsedIngredient | None:
    """
    Parse a free-standing ingredient line like ``2 cups flour, sifted``.

    Returns:
        ParsedIngredient, or None if the line does not start with an amount
    """
    amount = parse_amount(line)
    if amount is None:
        return None

    rest, extra = split_trailing_parenthetical(amount.remainder)
    name, _, notes = rest.partition(",")
    name = re.sub(r"\s+", " ", name).strip().strip(".")
    if not name:
        name = line.strip()
    return _build(amount, name, _join_extra(notes, extra))


# Format A strategies. Each gets (name, interior, line) and returns a result or None.


def _from_amount_part(name: str, interior: str, line: str) -> ParsedIngredient | None:
    amount_part, _, extra_part = interior.partition(",")
    amount = parse_amount(amount_part)
    if amount is None:
        return None
    return _build(amount, name, _join_extra(amount.remainder, extra_part))


def _from_interior(name: str, interior: str, line: str) -> ParsedIngredient | None:
    amount = parse_amount(interior)
    if amount is None:
        return None
    return _build(amount, name, amount.remainder)


def _from_whole_line(name: str, interior: str, line: str) -> ParsedIngredient | None:
    result = parse_ingredient(line)
    if result is None:
        return None
    result.ingredient = name
    return result


FORMAT_A_STRATEGIES: tuple[Callable[[str, str, str], ParsedIngredient | None], ...] = (
    _from_amount_part,
    _from_interior,
    _from_whole_line,
)


def _display_name(line: str) -> str:
    """Name shown for a line: the text before its last parenthesis, or the line."""
    open_index = line.rfind("(")
    if open_index > 0 and line[:open_index].strip():
        return line[:open_index].strip()
    return line.strip()


def parse_parenthetical_line(line: str) -> ParsedIngredient:
    """Parse one Format A line: ``Name(amount, extra)``."""
    open_index = line.rfind("(")
    if open_index == -1:
        return parse_ingredient(line) or minimal_ingredient(line)

    close_index = line.rfind(")")
    end = close_index if close_index > open_index else len(line)
    interior = line[open_index + 1 : end].strip()
    name = _display_name(line)

    for strategy in FORMAT_A_STRATEGIES:
        result = strategy(name, interior, line)
        if result is not None:
            return result
    return minimal_ingredient(name)


def parse_ingredient_pair(name: str, amount_line: str | None) -> ParsedIngredient:
    """Parse one Format B pair; ``amount_line`` is None for a trailing line."""
    if amount_line in ("null", "undefined"):
        return minimal_ingredient(name)

    if amount_line:
        amount = parse_amount(amount_line)
        if amount is not None:
            return _build(amount, name.strip(), amount.remainder)

    return parse_ingredient(name) or minimal_ingredient(name)


def parse_list_element(element: str) -> ParsedIngredient:
    """Parse one element of an ingredient array."""
    result = parse_ingredient(element)
    if result is not None:
        return result
    if "(" in element:
        return parse_parenthetical_line(element)
    return minimal_ingredient(element)


def _parse_guarded(parse: Callable[..., ParsedIngredient], line: str, *args: Any) -> ParsedIngredient:
    try:
        return parse(line, *args)
    except (ValueError, ZeroDivisionError, IndexError) as e:
        logger.debug("Could not parse %r, keeping name only: %s", line, e)
        return minimal_ingredient(_display_name(line))


def parse_recipe(source: str | Sequence[str]) -> list[ParsedIngredient]:
    """
    Parse ingredient text or an ingredient array.

    Args:
        source: Multi-line text (Format A or B) or a list of ingredient lines

    Returns:
        One ParsedIngredient per meaningful line, in input order
    """
    if not isinstance(source, str):
        return [
            _parse_guarded(parse_list_element, element.strip())
            for element in source
            if isinstance(element, str) and element.strip()
        ]

    lines = [line.strip() for line in source.splitlines() if line.strip()]
    if not lines:
        return []

    if "(" in lines[0]:
        return [_parse_guarded(parse_parenthetical_line, line) for line in lines]

    results = []
    for index in range(0, len(lines), 2):
        amount_line = lines[index + 1] if index + 1 < len(lines) else None
        results.append(_parse_guarded(parse_ingredient_pair, lines[index], amount_line))
    return results


def format_quantity(value: float) -> str:
    """Format a number without a trailing ``.0``."""
    if value == int(value):
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def format_ingredient_amount(item: ParsedIngredient) -> str | None:
    """
    Render the amount of an ingredient for display.

    Prefers the text as written (``¼ cup`` rather than ``0.25 cup``).

    Returns:
        The amount string, the unit alone when there is no quantity
        (e.g. "to taste"), or None when there is nothing to show
    """
    quantity = item.quantity_text.strip()
    if not quantity and item.quantity:
        quantity = format_quantity(item.quantity)
    unit = (item.unit_text or item.unit).strip()

    if quantity and unit:
        return f"{quantity} {unit}"
    return quantity or unit or None
