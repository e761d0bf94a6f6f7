"""CLI entry point for BuyFresh."""

import asyncio
import json
from datetime import datetime
from typing import Any

import click

from . import __version__
from .api import BuyFreshAPIError, GroceryProduct, ProductSearchClient, StorefrontSearch
from .cache import SqliteKeyValueStore
from .config import DEFAULT_STORE_NAME, configure_logging, get_store_id
from .ingredient_parser import ParsedIngredient, format_ingredient_amount, parse_recipe
from .matcher import (
    ProductMatch,
    calculate_total_cost,
    get_unmatched_ingredients,
    match_ingredients,
)
from .recipe_parser import (
    RecipeDocument,
    RecipeFetchError,
    extract_recipe,
    normalize_url,
    parse_recipe_text,
)
from .session import SessionError, StoreSessionManager
from .shopping_list import (
    RestoredList,
    ShoppingListError,
    build_shopping_list,
    load_shopping_list,
    restore_shopping_list,
    save_shopping_list,
)
from .units import ConversionError, format_quantity_explanation, recipe_multiplier

# Shown when extraction fails and the page text is printed instead
RAW_TEXT_PREVIEW = 2000


def get_client() -> ProductSearchClient:
    """Create the product search client."""
    return ProductSearchClient()


def get_session_manager() -> StoreSessionManager:
    """Create the storefront session manager with the on-disk cache."""
    return StoreSessionManager(SqliteKeyValueStore())


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def fail(message: str) -> None:
    click.echo(f"✗ {message}", err=True)
    raise SystemExit(1)


def display_recipe(recipe: RecipeDocument) -> None:
    """Display an extracted recipe."""
    click.echo()
    click.echo("=" * 60)
    click.echo(f"RECIPE: {recipe.name}")
    click.echo("=" * 60)

    for label, value in (
        ("Prep time", recipe.prep_time),
        ("Cook time", recipe.cook_time),
        ("Total time", recipe.total_time),
        ("Yield", recipe.yield_),
    ):
        if value:
            click.echo(f"{label}: {value}")
    if recipe.category:
        click.echo(f"Category: {', '.join(recipe.category)}")
    if recipe.cuisine:
        click.echo(f"Cuisine: {', '.join(recipe.cuisine)}")


def display_ingredients(ingredients: list[ParsedIngredient]) -> None:
    """Display parsed ingredients."""
    click.echo("\nIngredients:")
    for i, ing in enumerate(ingredients, 1):
        amount = format_ingredient_amount(ing)
        line = f"{amount} {ing.ingredient}" if amount else ing.ingredient
        if ing.extra:
            line = f"{line} ({ing.extra})"
        click.echo(f"  {i}. {line}")
    click.echo()


def display_products(products: list[GroceryProduct]) -> None:
    for i, product in enumerate(products, 1):
        price_str = f"${product.price:.2f}" if product.price else "N/A"
        click.echo(f"{i}. {product.name}")
        click.echo(f"   {product.size or '-'} - {price_str} - Aisle {product.planogram.aisle}")
        click.echo()


def display_matches(matches: list[ProductMatch], show_alternatives: bool = False) -> None:
    """Display product matches in a formatted way."""
    click.echo()
    click.echo("=" * 60)
    click.echo("SHOPPING LIST")
    click.echo("=" * 60)

    for i, match in enumerate(matches, 1):
        amount = match.amount
        click.echo(f"\n{i}. {match.ingredient_name}" + (f" ({amount})" if amount else ""))
        if not match.matched:
            click.echo(f"   ✗ No match found (searched: '{match.query}')")
            continue

        price_str = f"${match.price:.2f}" if match.price else "N/A"
        click.echo(f"   → {match.product_name} [{match.selected.size or '-'}] (x{match.quantity})")
        click.echo(f"   Price: {price_str} | Aisle: {match.selected.planogram.aisle}")
        click.echo(f"   {format_quantity_explanation(amount, match.selected.size, match.quantity)}")

        conversion = match.multiplier()
        if conversion is not None and not isinstance(conversion, ConversionError):
            click.echo(f"   Covers {conversion.multiplier:.2f} package(s) ({conversion.conversion_text})")

        if show_alternatives and len(match.candidates) > 1:
            click.echo("   Alternatives:")
            for j, alt in enumerate(match.candidates, 1):
                if alt is match.selected:
                    continue
                price_info = f" - ${alt.price:.2f}" if alt.price else ""
                click.echo(f"     {j}. {alt.name}{price_info}")

    unmatched = get_unmatched_ingredients(matches)
    click.echo()
    click.echo("-" * 60)
    click.echo(f"Matched: {len(matches) - len(unmatched)} | Unmatched: {len(unmatched)}")
    click.echo(f"Estimated total: ${calculate_total_cost(matches):.2f}")
    click.echo("-" * 60)


def load_recipe(url: str | None, input_text: str | None, title: str | None) -> tuple[RecipeDocument, list[ParsedIngredient]]:
    """
    Get a recipe and its parsed ingredients from a URL or typed text.

    Exits with an error (printing the page text) when a page has no recipe data.
    """
    if not url and not input_text:
        fail("Provide a URL or use --text for manual input.")
    if url and input_text:
        fail("Provide either URL or --text, not both.")

    if input_text is not None:
        recipe = parse_recipe_text(title or "Manual Recipe", input_text)
        return recipe, parse_recipe(input_text)

    try:
        extraction = asyncio.run(extract_recipe(normalize_url(url)))
    except (RecipeFetchError, ValueError) as e:
        fail(str(e))

    if not extraction.success:
        click.echo(f"✗ {extraction.message}", err=True)
        if extraction.raw_text:
            click.echo("\nPage text (copy the ingredients and use --text):\n")
            click.echo(extraction.raw_text[:RAW_TEXT_PREVIEW])
        raise SystemExit(1)

    recipe = extraction.recipe
    return recipe, parse_recipe(recipe.ingredients)


# ============================================================================
# Main CLI Group
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="buyfresh")
@click.option("--log-level", help="Logging level (default: $BUYFRESH_LOG_LEVEL or WARNING)")
def cli(log_level: str | None):
    """BuyFresh Recipe-to-Grocery-List CLI Tool.

    Parse recipes from URLs or text, match ingredients to Wegmans products,
    and price the shopping list.
    """
    configure_logging(log_level)


# ============================================================================
# Recipe Commands
# ============================================================================


@cli.command("parse")
@click.argument("url", required=False)
@click.option("--text", "-t", "input_text", help="Parse ingredients from text instead of URL")
@click.option("--title", help="Recipe title (for text input)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text")
def parse_cmd(url: str | None, input_text: str | None, title: str | None, as_json: bool):
    """Parse a recipe from URL or text.

    Examples:

    \b
        buyfresh parse https://recipe.com/pasta
        buyfresh parse --text "Flour(2 cups)
        Salt(1 tsp)"
    """
    recipe, ingredients = load_recipe(url, input_text, title)

    if as_json:
        echo_json({"recipe": recipe.to_dict(), "ingredients": [ing.to_dict() for ing in ingredients]})
        return

    display_recipe(recipe)
    display_ingredients(ingredients)


@cli.command("shop")
@click.argument("url", required=False)
@click.option("--text", "-t", "input_text", help="Use ingredients from text instead of URL")
@click.option("--title", help="Recipe title (for text input)")
@click.option("--limit", "-l", default=10, help="Candidates to fetch per ingredient")
@click.option("--alternatives", "-a", is_flag=True, help="Show alternative products")
@click.option("--save", "save_path", type=click.Path(dir_okay=False), help="Save a shareable list to FILE")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text")
def shop(
    url: str | None,
    input_text: str | None,
    title: str | None,
    limit: int,
    alternatives: bool,
    save_path: str | None,
    as_json: bool,
):
    """Turn a recipe into a priced shopping list.

    Examples:

    \b
        buyfresh shop https://recipe.com/pasta
        buyfresh shop https://recipe.com/pasta --save pasta-list.json
    """
    recipe, ingredients = load_recipe(url, input_text, title)
    if not ingredients:
        fail("No ingredients found.")

    async def _match() -> list[ProductMatch]:
        client = get_client()
        try:
            return await match_ingredients(client, ingredients, limit=limit)
        finally:
            await client.aclose()

    matches = asyncio.run(_match())

    if save_path:
        save_shopping_list(build_shopping_list(matches), save_path)

    if as_json:
        echo_json(
            {
                "recipe": recipe.to_dict(),
                "generated_at": datetime.now().isoformat(),
                "items": [match.to_dict() for match in matches],
                "summary": {
                    "total_items": len(matches),
                    "unmatched": get_unmatched_ingredients(matches),
                    "estimated_total": round(calculate_total_cost(matches), 2),
                },
            }
        )
        return

    display_recipe(recipe)
    display_matches(matches, show_alternatives=alternatives)
    if save_path:
        click.echo(f"✓ Shopping list saved to {save_path}")


# ============================================================================
# Product Commands
# ============================================================================


@cli.command()
@click.argument("query")
@click.option("--limit", "-l", default=5, help="Maximum results to show")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text")
def search(query: str, limit: int, as_json: bool):
    """Search for products in the store."""

    async def _search() -> list[GroceryProduct]:
        client = get_client()
        try:
            return await client.search_products(query, limit=limit)
        finally:
            await client.aclose()

    try:
        products = asyncio.run(_search())
    except (BuyFreshAPIError, ValueError) as e:
        fail(f"Search failed: {e}")

    if as_json:
        echo_json([product.to_dict() for product in products])
        return

    if not products:
        click.echo("No products found.")
        return

    click.echo(f"Found {len(products)} products:\n")
    display_products(products)


@cli.command("store-search")
@click.argument("query")
@click.option("--store", default=DEFAULT_STORE_NAME, show_default=True, help="Store name")
@click.option("--limit", "-l", default=10, help="Maximum results to show")
def store_search(query: str, store: str, limit: int):
    """Search the storefront directly (needs a store session)."""

    async def _search() -> list[GroceryProduct]:
        sessions = get_session_manager()
        try:
            return await StorefrontSearch(sessions, store_name=store, limit=limit).search(query)
        finally:
            await sessions.client.aclose()

    try:
        products = asyncio.run(_search())
    except (BuyFreshAPIError, SessionError) as e:
        fail(f"Storefront search failed: {e}")

    if not products:
        click.echo("No products found.")
        return
    display_products(products)


@cli.command()
@click.argument("first")
@click.argument("second")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text")
def convert(first: str, second: str, as_json: bool):
    """Work out how many FIRST are needed to cover SECOND.

    Examples:

    \b
        buyfresh convert "16 fl oz" "2 cups"
        buyfresh convert "1 lb" "8 ounces"
    """
    result = recipe_multiplier(first, second)
    if result is None:
        fail("Both amounts are required.")

    if as_json:
        echo_json(result.to_dict())
        if isinstance(result, ConversionError):
            raise SystemExit(1)
        return

    if isinstance(result, ConversionError):
        fail(f"{result.error}: {result.details}")

    click.echo(f"Multiplier: {result.multiplier:.3f}")
    click.echo(f"Conversion: {result.conversion_text}")


# ============================================================================
# Shared List Commands
# ============================================================================


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text")
def restore(file: str, as_json: bool):
    """Restore the products of a saved shopping list."""

    async def _restore() -> RestoredList:
        client = get_client()
        try:
            return await restore_shopping_list(client, load_shopping_list(file))
        finally:
            await client.aclose()

    try:
        restored = asyncio.run(_restore())
    except (ShoppingListError, BuyFreshAPIError) as e:
        fail(str(e))

    if as_json:
        echo_json(
            {
                "items": [
                    {"ingredient": entry.ingredient.to_dict(), "product": entry.product.to_dict()}
                    for entry in restored.entries
                ],
                "missing": restored.missing,
            }
        )
        return

    total = 0.0
    for i, entry in enumerate(restored.entries, 1):
        amount = entry.ingredient.quantity_text
        click.echo(f"{i}. {entry.ingredient.ingredient}" + (f" ({amount})" if amount else ""))
        click.echo(f"   → {entry.product.name} - ${entry.product.price:.2f}")
        total += entry.product.price

    if restored.missing:
        click.echo(f"\n⚠️  No longer available: {', '.join(restored.missing)}")
    click.echo(f"\nEstimated total: ${total:.2f}")


# ============================================================================
# Session Commands
# ============================================================================


@cli.command()
@click.option("--store", default=DEFAULT_STORE_NAME, show_default=True, help="Store name")
@click.option("--clear", is_flag=True, help="Forget the cached session")
def session(store: str, clear: bool):
    """Show the storefront session, creating one if needed."""
    sessions = get_session_manager()

    if clear:
        sessions.invalidate()
        asyncio.run(sessions.client.aclose())
        click.echo("✓ Session cleared")
        return

    async def _session():
        try:
            return await sessions.get_credential(store)
        finally:
            await sessions.client.aclose()

    try:
        credential = asyncio.run(_session())
    except SessionError as e:
        fail(f"Could not establish a session: {e}")

    expires = datetime.fromtimestamp(credential.expires_at).strftime("%Y-%m-%d %H:%M")
    click.echo(f"✓ Session for store {get_store_id(store)} valid until {expires}")


if __name__ == "__main__":
    cli()
