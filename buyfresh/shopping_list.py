"""Shareable shopping lists: the saved item format and restoring products from it."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .api import GroceryProduct, ProductSearchClient
from .ingredient_parser import ParsedIngredient
from .matcher import ProductMatch

logger = logging.getLogger(__name__)


class ShoppingListError(Exception):
    """Exception raised when a saved shopping list cannot be used."""

    pass


@dataclass
class ShoppingListItem:
    """One saved line of a shopping list."""

    slug: str
    ingredient: str
    object_id: str | None = None
    amount: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"slug": self.slug, "ingredient": self.ingredient}
        if self.object_id:
            data["objectID"] = self.object_id
        if self.amount:
            data["amount"] = self.amount
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShoppingListItem":
        return cls(
            slug=data.get("slug") or "",
            ingredient=data.get("ingredient") or "",
            object_id=data.get("objectID") or None,
            amount=data.get("amount") or None,
        )


@dataclass
class RestoredEntry:
    """A saved item resolved back to a current product."""

    product: GroceryProduct
    ingredient: ParsedIngredient


@dataclass
class RestoredList:
    """Result of restoring a list: resolved entries and ingredients without a product."""

    entries: list[RestoredEntry] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


def build_shopping_list(matches: list[ProductMatch]) -> list[ShoppingListItem]:
    """
    Turn the matched ingredients into items for sharing.

    Unmatched ingredients are left out.
    """
    return [
        ShoppingListItem(
            slug=match.selected.slug,
            object_id=match.selected.object_id or None,
            ingredient=match.ingredient_name,
            amount=match.amount,
        )
        for match in matches
        if match.selected is not None
    ]


def save_shopping_list(items: list[ShoppingListItem], filepath: str | Path) -> None:
    """Write items as ``{"items": [...]}`` JSON."""
    data = {"items": [item.to_dict() for item in items]}
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_shopping_list(filepath: str | Path) -> list[ShoppingListItem]:
    """
    Read items written by :func:`save_shopping_list`.

    Raises:
        ShoppingListError: If the file is not a shopping list
    """
    try:
        with open(filepath, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ShoppingListError(f"Invalid shopping list file: {e}") from e

    raw_items = data.get("items") if isinstance(data, dict) else data
    if not isinstance(raw_items, list):
        raise ShoppingListError("Shopping list file has no items")
    return [ShoppingListItem.from_dict(item) for item in raw_items if isinstance(item, dict)]


def _ingredient_from_item(item: ShoppingListItem) -> ParsedIngredient:
    return ParsedIngredient(ingredient=item.ingredient, quantity_text=item.amount or "")


async def restore_shopping_list(
    client: ProductSearchClient,
    items: list[ShoppingListItem],
) -> RestoredList:
    """
    Resolve saved items back to current products.

    Products are looked up by their stable ids when every item has one and
    by slug otherwise. Products are paired with items by position, so a
    product whose slug has changed since the list was saved is still restored.

    Raises:
        ShoppingListError: If the list is empty or has no product references
    """
    if not items:
        raise ShoppingListError("Shopping list is empty")

    with_slug = [item for item in items if item.slug]
    if not with_slug:
        raise ShoppingListError("No valid products found in shopping list")

    lookup = await client.fetch_products_by_slugs(
        [item.slug for item in with_slug],
        [item.object_id for item in with_slug],
    )
    found = iter(lookup.found)

    restored = RestoredList()
    for item in items:
        product = next(found, None) if item.slug else None
        if product is None:
            restored.missing.append(item.ingredient)
        else:
            restored.entries.append(RestoredEntry(product=product, ingredient=_ingredient_from_item(item)))

    if restored.missing:
        logger.info("%d shopping list item(s) could not be restored", len(restored.missing))
    return restored
