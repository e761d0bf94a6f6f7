"""Recipe extraction from web pages via schema.org JSON-LD."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from .config import HTTP_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)


class RecipeFetchError(Exception):
    """Exception raised when a recipe page cannot be fetched."""

    pass


@dataclass
class RecipeDocument:
    """A recipe as found on a page, with list fields always as lists."""

    name: str
    image: list[str] = field(default_factory=list)
    description: str = ""
    cook_time: str = ""
    prep_time: str = ""
    total_time: str = ""
    category: list[str] = field(default_factory=list)
    cuisine: list[str] = field(default_factory=list)
    ingredients: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    yield_: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert recipe to dictionary for serialization."""
        return {
            "name": self.name,
            "image": list(self.image),
            "description": self.description,
            "cookTime": self.cook_time,
            "prepTime": self.prep_time,
            "totalTime": self.total_time,
            "category": list(self.category),
            "cuisine": list(self.cuisine),
            "ingredients": list(self.ingredients),
            "instructions": list(self.instructions),
            "yield": self.yield_,
        }


@dataclass
class RecipeExtraction:
    """Outcome of extracting a recipe: either the recipe or the page text."""

    success: bool
    recipe: RecipeDocument | None = None
    message: str = ""
    raw_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        if self.success and self.recipe is not None:
            return {"success": True, "recipe": self.recipe.to_dict()}
        return {"success": False, "message": self.message, "rawText": self.raw_text}


def is_recipe_type(value: Any) -> bool:
    """Check whether a JSON-LD node is typed "Recipe" (alone or among other types)."""
    if not isinstance(value, dict):
        return False
    node_type = value.get("@type")
    return node_type == "Recipe" or (isinstance(node_type, list) and "Recipe" in node_type)


def _first_recipe(nodes: list[Any]) -> dict[str, Any] | None:
    return next((node for node in nodes if is_recipe_type(node)), None)


def find_recipe_candidate(data: Any) -> tuple[Any, bool]:
    """
    Find the recipe node inside one parsed JSON-LD block.

    Returns:
        Tuple of (candidate, is_recipe). A list without a Recipe node yields
        its first element as a non-recipe candidate.
    """
    if isinstance(data, list):
        recipe = _first_recipe(data)
        if recipe is not None:
            return recipe, True
        return (data[0] if data else None), False

    if not isinstance(data, dict):
        return None, False

    graph = data.get("@graph")
    if isinstance(graph, list):
        recipe = _first_recipe(graph)
        if recipe is not None:
            return recipe, True

    if is_recipe_type(data):
        return data, True
    return None, False


def find_recipe_ld_json(soup: BeautifulSoup) -> Any:
    """
    Scan every JSON-LD block of a page for a recipe node.

    The first block holding a Recipe wins. If none does, the first element
    of the first list-shaped block is returned so the caller can report it.
    Blocks with invalid JSON are skipped.
    """
    fallback = None
    for script in soup.find_all("script", type="application/ld+json"):
        content = (script.string or script.get_text() or "").strip()
        if not content:
            continue
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.debug("Skipping invalid JSON-LD block: %s", e)
            continue

        candidate, is_recipe = find_recipe_candidate(data)
        if is_recipe:
            return candidate
        if fallback is None and candidate is not None:
            fallback = candidate

    return fallback


def normalize_image(value: Any) -> list[str]:
    """Coerce str | list[str] | list[{url}] | {url} into a list of URLs."""
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, dict):
        url = value.get("url")
        return [url] if isinstance(url, str) and url else []
    if isinstance(value, list):
        images = []
        for item in value:
            if isinstance(item, str) and item:
                images.append(item)
            elif isinstance(item, dict) and isinstance(item.get("url"), str):
                images.append(item["url"])
        return images
    return []


def as_string_list(value: Any) -> list[str]:
    """Coerce a string or list of strings into a list of non-empty strings."""
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]
    return []


def normalize_yield(value: Any) -> str:
    """Take the yield as text; lists give their first entry."""
    if isinstance(value, list):
        value = value[0] if value else ""
    if isinstance(value, (int, float)):
        return str(value)
    return value.strip() if isinstance(value, str) else ""


def parse_instructions(value: Any) -> list[str]:
    """Turn recipeInstructions into one string per step."""
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        return []

    steps: list[str] = []
    for entry in value:
        if isinstance(entry, str):
            steps.append(entry.strip())
        elif isinstance(entry, dict):
            if entry.get("@type") == "HowToSection" and isinstance(entry.get("itemListElement"), list):
                steps.extend(parse_instructions(entry["itemListElement"]))
            else:
                steps.append(str(entry.get("text") or entry.get("name") or "").strip())
    return steps


_NUM = r"(\d+(?:[.,]\d+)?)"
ISO_DURATION_RE = re.compile(
    rf"^P(?:{_NUM}Y)?(?:{_NUM}M)?(?:{_NUM}W)?(?:{_NUM}D)?"
    rf"(?:T(?:{_NUM}H)?(?:{_NUM}M)?(?:{_NUM}S)?)?$"
)


def parse_iso8601_duration(text: str) -> tuple[float, float, float]:
    """
    Parse an ISO-8601 duration such as ``PT1H30M`` into (hours, minutes, seconds).

    Days and weeks are folded into hours; years and months are ignored.

    Raises:
        ValueError: If the text is not a valid duration
    """
    text = text.strip().upper()
    match = ISO_DURATION_RE.match(text)
    if not match or text in ("P", "PT") or text.endswith("T"):
        raise ValueError(f"Invalid ISO-8601 duration: {text!r}")

    _, _, weeks, days, hours, minutes, seconds = (
        float(group.replace(",", ".")) if group else 0.0 for group in match.groups()
    )
    return hours + days * 24 + weeks * 7 * 24, minutes, seconds


def join_conjunction(parts: list[str]) -> str:
    """Join like English prose: "a", "a and b", "a, b, and c"."""
    if len(parts) <= 2:
        return " and ".join(parts)
    return f"{', '.join(parts[:-1])}, and {parts[-1]}"


def _plural(value: float, word: str) -> str:
    return f"{value:g} {word if value == 1 else word + 's'}"


def duration_to_str(value: Any) -> str:
    """
    Render an ISO-8601 duration for people, e.g. "1 hour and 30 minutes".

    Returns an empty string for missing or unparseable values.
    """
    if not isinstance(value, str) or not value.strip():
        return ""
    try:
        hours, minutes, seconds = parse_iso8601_duration(value)
    except ValueError:
        return ""

    parts = []
    if hours:
        parts.append(_plural(hours, "hour"))
    if minutes:
        parts.append(_plural(minutes, "minute"))
    if seconds:
        parts.append(_plural(seconds, "second"))
    return join_conjunction(parts)


def normalize_recipe(ld_json: Any) -> RecipeDocument | None:
    """
    Build a RecipeDocument from a JSON-LD Recipe node.

    Returns:
        RecipeDocument, or None if the node is not a recipe or has neither
        a name nor ingredients
    """
    if not is_recipe_type(ld_json):
        return None

    name = ld_json.get("name")
    name = name.strip() if isinstance(name, str) else ""
    ingredients = as_string_list(ld_json.get("recipeIngredient") or ld_json.get("ingredients"))
    if not name and not ingredients:
        return None

    description = ld_json.get("description")

    return RecipeDocument(
        name=name,
        image=normalize_image(ld_json.get("image")),
        description=description.strip() if isinstance(description, str) else "",
        cook_time=duration_to_str(ld_json.get("cookTime")),
        prep_time=duration_to_str(ld_json.get("prepTime")),
        total_time=duration_to_str(ld_json.get("totalTime")),
        category=as_string_list(ld_json.get("recipeCategory")),
        cuisine=as_string_list(ld_json.get("recipeCuisine")),
        ingredients=ingredients,
        instructions=parse_instructions(ld_json.get("recipeInstructions")),
        yield_=normalize_yield(ld_json.get("recipeYield")),
    )


# Block-level elements that end a line of text
BLOCK_ELEMENTS = [
    "p",
    "div",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "li",
    "hr",
    "section",
    "article",
    "header",
    "footer",
    "nav",
    "aside",
    "main",
    "blockquote",
    "pre",
    "ul",
    "ol",
]


def extract_raw_text(soup: BeautifulSoup) -> str:
    """
    Extract readable text from a page while keeping its line structure.

    Modifies ``soup`` in place.
    """
    for tag in soup(["script", "style"]):
        tag.decompose()

    container = soup.body or soup

    for br in container.find_all("br"):
        br.replace_with("\n")
    for tag in container.find_all(BLOCK_ELEMENTS):
        tag.append("\n")

    text = container.get_text()
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"[ \t]*\n[ \t]*", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_recipe_from_html(html: str) -> RecipeExtraction:
    """
    Extract a recipe from page HTML, falling back to the page's text.

    Returns:
        RecipeExtraction with the recipe, or with a message and raw text
    """
    soup = BeautifulSoup(html, "html.parser")

    ld_json = find_recipe_ld_json(soup)
    if ld_json is None:
        return RecipeExtraction(success=False, message="LD+JSON not found.", raw_text=extract_raw_text(soup))

    recipe = normalize_recipe(ld_json)
    if recipe is None:
        return RecipeExtraction(success=False, message="Recipe not found.", raw_text=extract_raw_text(soup))

    return RecipeExtraction(success=True, recipe=recipe)


def parse_recipe_text(title: str, text: str) -> RecipeDocument:
    """
    Build a recipe from manually entered text.

    Args:
        title: Recipe title
        text: Ingredient text, one line per entry

    Returns:
        RecipeDocument with the non-blank lines as raw ingredients
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return RecipeDocument(name=title.strip() or "Manual Recipe", ingredients=lines)


def normalize_url(url: str) -> str:
    """
    Repair a recipe URL typed or pasted without its scheme.

    "https:/example.com/x" and "example.com/x" both become "https://example.com/x".

    Raises:
        ValueError: If the result is not an absolute http(s) URL
    """
    url = url.strip()
    url = re.sub(r"^(https?):/(?!/)", r"\1://", url)
    if not re.match(r"^https?://", url):
        url = f"https://{url}"

    parsed = urlparse(url)
    if not parsed.netloc or "." not in parsed.netloc:
        raise ValueError(f"Invalid URL format: {url}")
    return url


async def fetch_html(url: str, client: httpx.AsyncClient | None = None) -> str:
    """
    Fetch a page's HTML.

    Raises:
        RecipeFetchError: If the page cannot be fetched
    """
    headers = {"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"}
    try:
        if client is not None:
            response = await client.get(url, headers=headers, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as own_client:
                response = await own_client.get(url, headers=headers, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise RecipeFetchError(f"Failed to fetch recipe: {e}") from e
    return response.text


async def extract_recipe(url: str, client: httpx.AsyncClient | None = None) -> RecipeExtraction:
    """
    Fetch a recipe page and extract its recipe.

    Args:
        url: Recipe page URL
        client: Optional shared HTTP client

    Returns:
        RecipeExtraction; extraction failures fall back to the page text

    Raises:
        RecipeFetchError: If the page cannot be fetched
    """
    html = await fetch_html(url, client)
    extraction = extract_recipe_from_html(html)
    if not extraction.success:
        logger.info("No recipe data on %s: %s", url, extraction.message)
    return extraction
