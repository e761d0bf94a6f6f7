"""BuyFresh - Recipe-to-Grocery-List Tool for Wegmans."""

__version__ = "1.0.0"

from .api import BuyFreshAPIError, GroceryProduct, ProductSearchClient, StorefrontSearch
from .ingredient_parser import ParsedIngredient, format_ingredient_amount, parse_recipe
from .matcher import ProductMatch, match_ingredients
from .recipe_parser import RecipeDocument, RecipeExtraction, extract_recipe
from .session import SessionCredential, StoreSessionManager
from .units import ConversionError, ConversionResult, recipe_multiplier

__all__ = [
    "BuyFreshAPIError",
    "GroceryProduct",
    "ProductSearchClient",
    "StorefrontSearch",
    "ParsedIngredient",
    "parse_recipe",
    "format_ingredient_amount",
    "RecipeDocument",
    "RecipeExtraction",
    "extract_recipe",
    "StoreSessionManager",
    "SessionCredential",
    "recipe_multiplier",
    "ConversionResult",
    "ConversionError",
    "match_ingredients",
    "ProductMatch",
]
