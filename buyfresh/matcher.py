"""Ingredient to product matching logic."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from rapidfuzz import fuzz

from .api import BuyFreshAPIError, GroceryProduct, ProductSearchClient
from .ingredient_parser import ParsedIngredient, format_ingredient_amount, format_quantity
from .units import ConversionError, ConversionResult, calculate_packages_needed, recipe_multiplier

logger = logging.getLogger(__name__)


@dataclass
class ProductMatch:
    """Candidate products for one ingredient and the one picked for the list."""

    ingredient: ParsedIngredient
    query: str
    candidates: list[GroceryProduct] = field(default_factory=list)
    selected: GroceryProduct | None = None

    @property
    def ingredient_name(self) -> str:
        return self.ingredient.ingredient

    @property
    def matched(self) -> bool:
        return self.selected is not None

    @property
    def product_name(self) -> str:
        if self.selected:
            return self.selected.name
        return "No match found"

    @property
    def price(self) -> float | None:
        if self.selected:
            return self.selected.price
        return None

    @property
    def amount(self) -> str | None:
        """The recipe amount as written, e.g. "2 cups"."""
        return format_ingredient_amount(self.ingredient)

    @property
    def requirement(self) -> str | None:
        """The recipe amount in a form the unit converter reads."""
        if self.ingredient.quantity <= 0 or not self.ingredient.unit:
            return None
        return f"{format_quantity(self.ingredient.quantity)} {self.ingredient.unit}"

    def multiplier(self) -> ConversionResult | ConversionError | None:
        """How many of the selected package the recipe needs."""
        if not self.selected:
            return None
        return recipe_multiplier(self.selected.size, self.requirement)

    @property
    def packages(self) -> int:
        """Whole packages to buy; 0 when the sizes cannot be reconciled."""
        if not self.selected:
            return 0
        return calculate_packages_needed(
            self.ingredient.quantity, self.ingredient.unit, self.selected.size
        )

    @property
    def quantity(self) -> int:
        """Packages to buy, assuming one when the count is unknown."""
        return self.packages or 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        conversion = self.multiplier()
        return {
            "ingredient": self.ingredient.to_dict(),
            "query": self.query,
            "amount": self.amount,
            "matched": self.matched,
            "product": self.selected.to_dict() if self.selected else None,
            "quantity": self.quantity if self.matched else 0,
            "conversion": conversion.to_dict() if conversion else None,
            "candidates": [product.to_dict() for product in self.candidates],
        }


# Descriptors that narrow a recipe but not a product search
REMOVE_WORDS = {
    "fresh",
    "freshly",
    "dried",
    "frozen",
    "large",
    "small",
    "medium",
    "chopped",
    "diced",
    "minced",
    "sliced",
    "grated",
    "crushed",
    "powdered",
    "raw",
    "cooked",
    "ripe",
    "finely",
    "roughly",
    "thinly",
}


def clean_ingredient_name(name: str) -> str:
    """
    Clean ingredient name for better search matching.

    Args:
        name: Raw ingredient name

    Returns:
        Cleaned name suitable for product search
    """
    words = name.lower().replace(",", " ").split()
    cleaned_words = [w for w in words if w not in REMOVE_WORDS]

    return " ".join(cleaned_words) if cleaned_words else name.strip()


def fuzzy_score(query: str, product_name: str) -> float:
    """Calculate fuzzy similarity between a query and a product name.

    Uses token-based and partial matching to handle:
    - Word order differences ("breast chicken" → "Chicken Breast")
    - Substring matches ("basil" → "Organic Sweet Basil")

    Returns:
        Similarity from 0 to 100
    """
    query_lower = query.lower()
    name_lower = product_name.lower()

    token_score = fuzz.token_set_ratio(query_lower, name_lower)
    partial_score = fuzz.partial_ratio(query_lower, name_lower)

    # Token matching slightly more important
    return token_score * 0.6 + partial_score * 0.4


def pick_best(query: str, candidates: list[GroceryProduct]) -> GroceryProduct | None:
    """Pick the candidate whose name is closest to the query; ties keep index order."""
    if not candidates:
        return None
    return max(candidates, key=lambda product: fuzzy_score(query, product.name))


async def match_ingredient(
    client: ProductSearchClient,
    ingredient: ParsedIngredient,
    limit: int = 10,
) -> ProductMatch:
    """
    Find candidate products for a single ingredient.

    Args:
        client: Product search client
        ingredient: Parsed ingredient to match
        limit: Maximum number of candidates

    Returns:
        ProductMatch; without candidates if the search failed
    """
    query = clean_ingredient_name(ingredient.ingredient)
    try:
        candidates = await client.search_products(query, limit=limit)
    except (BuyFreshAPIError, ValueError) as e:
        logger.warning("Search for %r failed: %s", query, e)
        candidates = []

    return ProductMatch(
        ingredient=ingredient,
        query=query,
        candidates=candidates,
        selected=pick_best(query, candidates),
    )


async def match_ingredients(
    client: ProductSearchClient,
    ingredients: list[ParsedIngredient],
    limit: int = 10,
) -> list[ProductMatch]:
    """
    Match all ingredients to products, one concurrent search per ingredient.

    A failure while matching one ingredient leaves only that ingredient
    without candidates.

    Returns:
        ProductMatch objects in ingredient order
    """
    results = await asyncio.gather(
        *(match_ingredient(client, ingredient, limit) for ingredient in ingredients),
        return_exceptions=True,
    )

    matches = []
    for ingredient, result in zip(ingredients, results):
        if isinstance(result, Exception):
            logger.error("Matching %r failed: %s", ingredient.ingredient, result)
            result = ProductMatch(ingredient=ingredient, query=clean_ingredient_name(ingredient.ingredient))
        matches.append(result)
    return matches


def select_alternative(match: ProductMatch, index: int) -> ProductMatch:
    """
    Select another candidate as the product for an ingredient.

    Args:
        match: The ProductMatch to modify
        index: Index into ``match.candidates`` (0-based)

    Returns:
        New ProductMatch with that candidate selected, or ``match`` unchanged
        if the index is out of range
    """
    if index < 0 or index >= len(match.candidates):
        return match

    return ProductMatch(
        ingredient=match.ingredient,
        query=match.query,
        candidates=list(match.candidates),
        selected=match.candidates[index],
    )


def calculate_total_cost(matches: list[ProductMatch]) -> float:
    """
    Calculate total cost of all matched products.

    Args:
        matches: List of product matches

    Returns:
        Total cost in USD
    """
    total = 0.0

    for match in matches:
        if match.matched and match.price:
            total += match.price * match.quantity

    return total


def get_unmatched_ingredients(matches: list[ProductMatch]) -> list[str]:
    """
    Get list of ingredients that couldn't be matched.

    Args:
        matches: List of product matches

    Returns:
        List of unmatched ingredient names
    """
    return [m.ingredient_name for m in matches if not m.matched]
