"""Unit parsing and conversion for reconciling package sizes with recipe amounts."""

import math
import re
from dataclasses import dataclass
from typing import Any, Literal

UnitType = Literal["weight", "volume", "count", "unknown"]


class UnitConversionError(ValueError):
    """Raised when two units cannot be converted into each other."""

    pass


@dataclass
class ParsedUnit:
    """Parsed unit size from a product description."""

    value: float
    unit: str
    unit_type: UnitType
    original: str


@dataclass
class ConversionResult:
    """How many of the second amount's worth the first amount covers."""

    multiplier: float
    original_values: tuple[str, str]
    conversion_text: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "multiplier": self.multiplier,
            "originalValues": {
                "first": self.original_values[0],
                "second": self.original_values[1],
            },
            "conversion": self.conversion_text,
        }


@dataclass
class ConversionError:
    """Returned instead of a number when the amounts cannot be reconciled."""

    error: str
    details: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details}


# Conversions to base units (milliliters for volume, grams for weight, each for count)
UNIT_INFO: dict[str, tuple[float, str, UnitType]] = {
    # Volume -> milliliters
    "teaspoon": (4.92892, "ml", "volume"),
    "tablespoon": (14.7868, "ml", "volume"),
    "fluid ounce": (29.5735, "ml", "volume"),
    "cup": (236.588, "ml", "volume"),
    "pint": (473.176, "ml", "volume"),
    "quart": (946.353, "ml", "volume"),
    "gallon": (3785.41, "ml", "volume"),
    "ml": (1.0, "ml", "volume"),
    "l": (1000.0, "ml", "volume"),
    # Weight -> grams
    "g": (1.0, "g", "weight"),
    "kg": (1000.0, "g", "weight"),
    "ounce": (28.3495, "g", "weight"),
    "lb": (453.592, "g", "weight"),
    # Count -> each
    "each": (1.0, "each", "count"),
    "unit": (1.0, "each", "count"),
    "head": (1.0, "each", "count"),
    "clove": (1.0, "each", "count"),
    "stalk": (1.0, "each", "count"),
    "bunch": (1.0, "each", "count"),
    "slice": (1.0, "each", "count"),
    "piece": (1.0, "each", "count"),
}

# Recipe and package spellings -> keys of UNIT_INFO. Plain "oz" is read as fluid
# ounces, matching how package sizes for liquids are written.
UNIT_ALIASES: dict[str, str] = {
    "tsp": "teaspoon",
    "teaspoons": "teaspoon",
    "tbsp": "tablespoon",
    "tbs": "tablespoon",
    "tablespoons": "tablespoon",
    "oz": "fluid ounce",
    "fl oz": "fluid ounce",
    "floz": "fluid ounce",
    "fluid ounces": "fluid ounce",
    "ounces": "ounce",
    "cups": "cup",
    "pt": "pint",
    "pints": "pint",
    "qt": "quart",
    "quarts": "quart",
    "gal": "gallon",
    "gallons": "gallon",
    "milliliter": "ml",
    "milliliters": "ml",
    "liter": "l",
    "liters": "l",
    "litre": "l",
    "litres": "l",
    "gram": "g",
    "grams": "g",
    "kilogram": "kg",
    "kilograms": "kg",
    "lbs": "lb",
    "pound": "lb",
    "pounds": "lb",
    "ea": "each",
    "ct": "each",
    "count": "each",
    "units": "unit",
    "heads": "head",
    "cloves": "clove",
    "stalks": "stalk",
    "bunches": "bunch",
    "slices": "slice",
    "pieces": "piece",
}

_VALUE_RE = re.compile(r"\d*\.\d+|\d+")
_UNIT_RE = re.compile(r"\s*([a-zA-Z]+)(?:\s+([a-zA-Z]+))?")


def normalize_unit(unit: str | None) -> str | None:
    """Map a unit spelling to a key of UNIT_INFO, or None if unknown."""
    if not unit:
        return None
    unit_lower = re.sub(r"\s+", " ", unit.lower().strip().rstrip("."))
    if unit_lower in UNIT_INFO:
        return unit_lower
    return UNIT_ALIASES.get(unit_lower)


def get_unit_type(unit: str | None) -> UnitType:
    """Get the type of a unit (weight, volume, count, or unknown)."""
    key = normalize_unit(unit)
    if key is None:
        return "unknown"
    return UNIT_INFO[key][2]


def normalize_to_base(value: float, unit: str) -> tuple[float, str, UnitType]:
    """
    Convert a value to base units (ml, g, or each).

    Args:
        value: The numeric value
        unit: The unit string

    Returns:
        Tuple of (converted_value, base_unit, unit_type)
    """
    key = normalize_unit(unit)
    if key is None:
        # Unknown unit - return as-is
        return value, unit, "unknown"

    multiplier, base_unit, unit_type = UNIT_INFO[key]
    return value * multiplier, base_unit, unit_type


def can_convert(from_unit: str | None, to_unit: str | None) -> bool:
    """Check if two units can be converted (same known type)."""
    from_type = get_unit_type(from_unit)
    to_type = get_unit_type(to_unit)

    if from_type == "unknown" or to_type == "unknown":
        return False

    return from_type == to_type


def convert_value(value: float, from_unit: str, to_unit: str) -> float:
    """
    Convert a value between two units of the same dimension.

    Raises:
        UnitConversionError: For unknown units or mismatched dimensions
    """
    from_key = normalize_unit(from_unit)
    to_key = normalize_unit(to_unit)
    if from_key is None:
        raise UnitConversionError(f"Unsupported unit: {from_unit}")
    if to_key is None:
        raise UnitConversionError(f"Unsupported unit: {to_unit}")

    if not can_convert(from_unit, to_unit):
        raise UnitConversionError(
            f"Cannot convert {get_unit_type(from_unit)} ({from_unit}) to {get_unit_type(to_unit)} ({to_unit})"
        )

    from_factor = UNIT_INFO[from_key][0]
    to_factor = UNIT_INFO[to_key][0]

    return value * from_factor / to_factor


def scan_quantity(text: str | None) -> tuple[float | None, str | None]:
    """
    Pull the leading number and the unit written right after it.

    Examples:
        "16 fl oz" -> (16.0, "fl oz")
        "2 cups" -> (2.0, "cups")
        "1.5lb bag" -> (1.5, "lb")

    Returns:
        Tuple of (value, unit); either may be None
    """
    if not text:
        return None, None

    value_match = _VALUE_RE.search(text)
    if not value_match:
        return None, None

    value = float(value_match.group(0))
    unit_match = _UNIT_RE.match(text, value_match.end())
    if not unit_match:
        return value, None

    first, second = unit_match.group(1).lower(), unit_match.group(2)
    if second:
        two_word = f"{first} {second.lower()}"
        if normalize_unit(two_word):
            return value, two_word
    return value, first


def recipe_multiplier(first: str | None, second: str | None) -> ConversionResult | ConversionError | None:
    """
    Work out how many of ``first`` are needed to cover ``second``.

    ``first`` is converted into the unit of ``second`` and the multiplier is
    ``second / converted first``. With a package size as ``first`` and the
    recipe requirement as ``second`` this is the number of packages to buy.

    ``conversion_text`` states the per-unit factor between the two units
    ("1 fl oz = 0.125 cups"), not the reciprocal of the multiplier.

    Args:
        first: Size string, e.g. "16 fl oz"
        second: Size string, e.g. "2 cups"

    Returns:
        ConversionResult, ConversionError when the amounts cannot be
        reconciled, or None when either input is empty
    """
    if not first or not second:
        return None

    value1, unit1 = scan_quantity(first)
    value2, unit2 = scan_quantity(second)

    if not value1 or not value2 or not unit1 or not unit2:
        return ConversionError(
            error="Invalid units or conversion not possible",
            details=f"Missing quantity or unit in {first!r} or {second!r}",
        )

    try:
        factor = convert_value(1.0, unit1, unit2)
    except UnitConversionError as e:
        return ConversionError(error="Invalid units or conversion not possible", details=str(e))

    converted = value1 * factor
    multiplier = value2 / converted

    return ConversionResult(
        multiplier=multiplier,
        original_values=(f"{value1:g} {unit1}", f"{value2:g} {unit2}"),
        conversion_text=f"1 {unit1} = {factor:.3f} {unit2}",
    )


def parse_unit_size(unit_size: str | None) -> ParsedUnit | None:
    """
    Parse a product package size string.

    Examples:
        "16 fl oz" -> ParsedUnit(473.18, "ml", "volume", "16 fl oz")
        "1 lb" -> ParsedUnit(453.59, "g", "weight", "1 lb")
        "6 ct" -> ParsedUnit(6, "each", "count", "6 ct")

    Returns:
        ParsedUnit or None if parsing fails
    """
    if not unit_size:
        return None

    original = unit_size.strip()
    value, unit = scan_quantity(original)
    if value is None or unit is None:
        return None

    normalized_value, base_unit, unit_type = normalize_to_base(value, unit)

    return ParsedUnit(
        value=normalized_value,
        unit=base_unit,
        unit_type=unit_type,
        original=original,
    )


def calculate_packages_needed(
    needed_quantity: float | None,
    needed_unit: str | None,
    package_size: str | None,
) -> int:
    """
    Calculate number of packages needed to fulfill an ingredient requirement.

    Args:
        needed_quantity: Amount needed (e.g., 3)
        needed_unit: Unit of needed amount (e.g., "cup")
        package_size: Product size string (e.g., "16 fl oz")

    Returns:
        Number of packages to buy (minimum 1), or 0 if calculation not possible
    """
    if needed_quantity is None or needed_quantity <= 0:
        return 1

    parsed_package = parse_unit_size(package_size)
    if parsed_package is None:
        return 0

    if needed_unit:
        needed_base, _, needed_type = normalize_to_base(needed_quantity, needed_unit)
    else:
        # No unit: treat the recipe amount as a count
        needed_base, needed_type = needed_quantity, "count"

    if needed_type == "unknown" or needed_type != parsed_package.unit_type:
        return 0

    if parsed_package.value <= 0:
        return 1

    # Tolerate float noise from the conversion factors
    packages = math.ceil(round(needed_base / parsed_package.value, 6))
    return max(1, packages)


def format_quantity_explanation(
    needed_amount: str | None,
    package_size: str | None,
    packages_needed: int,
) -> str:
    """
    Format a human-readable explanation of the quantity calculation.

    Returns:
        Explanation string (e.g., "Need 3 cups, package is 16 fl oz → 2")
    """
    if not needed_amount:
        return f"{packages_needed} package(s)"

    if package_size:
        return f"Need {needed_amount}, package is {package_size} → {packages_needed}"

    return f"Need {needed_amount} → {packages_needed} package(s)"
