"""Tests for ingredient to product matching."""

import pytest
from conftest import FakeSearchClient, make_product

from buyfresh.api import BuyFreshAPIError
from buyfresh.ingredient_parser import ParsedIngredient
from buyfresh.matcher import (
    ProductMatch,
    calculate_total_cost,
    clean_ingredient_name,
    fuzzy_score,
    get_unmatched_ingredients,
    match_ingredient,
    match_ingredients,
    pick_best,
    select_alternative,
)
from buyfresh.units import ConversionError, ConversionResult


def cups_of(name: str, quantity: float) -> ParsedIngredient:
    return ParsedIngredient(
        ingredient=name,
        quantity=quantity,
        quantity_text=f"{quantity:g}",
        min_quantity=quantity,
        max_quantity=quantity,
        unit="cup",
        unit_text="cups",
    )


class TestCleanIngredientName:
    """Tests for clean_ingredient_name function."""

    def test_removes_descriptors(self):
        assert clean_ingredient_name("Fresh basil, chopped") == "basil"

    def test_keeps_name_when_everything_removed(self):
        assert clean_ingredient_name("Chopped") == "Chopped"


class TestFuzzyScore:
    """Tests for fuzzy_score and pick_best."""

    def test_exact_words_score_higher(self):
        assert fuzzy_score("whole milk", "Wegmans Whole Milk") > fuzzy_score("whole milk", "Wegmans Chocolate Milk")

    def test_pick_best(self):
        candidates = [make_product("1", "Wegmans Chocolate Milk"), make_product("2", "Wegmans Whole Milk")]
        assert pick_best("whole milk", candidates).object_id == "2"

    def test_tie_keeps_index_order(self):
        candidates = [make_product("1", "Basil"), make_product("2", "Basil")]
        assert pick_best("basil", candidates).object_id == "1"

    def test_no_candidates(self):
        assert pick_best("basil", []) is None


class TestProductMatch:
    """Tests for ProductMatch properties."""

    def test_unmatched(self):
        match = ProductMatch(ingredient=ParsedIngredient(ingredient="saffron"), query="saffron")

        assert not match.matched
        assert match.price is None
        assert match.product_name == "No match found"
        assert match.multiplier() is None
        assert match.packages == 0

    def test_amount_uses_written_text(self):
        match = ProductMatch(ingredient=cups_of("milk", 2), query="milk")
        assert match.amount == "2 cups"
        assert match.requirement == "2 cup"

    def test_multiplier_against_package(self):
        match = ProductMatch(
            ingredient=cups_of("milk", 2),
            query="milk",
            selected=make_product("1", "Milk", size="16 fl oz"),
        )

        result = match.multiplier()

        assert isinstance(result, ConversionResult)
        assert result.multiplier == pytest.approx(1.0, rel=1e-3)
        assert match.quantity == 1

    def test_packages_round_up(self):
        match = ProductMatch(
            ingredient=cups_of("milk", 3),
            query="milk",
            selected=make_product("1", "Milk", size="16 fl oz"),
        )
        assert match.quantity == 2

    def test_incompatible_size(self):
        match = ProductMatch(
            ingredient=cups_of("flour", 2),
            query="flour",
            selected=make_product("1", "Flour", size="5 lb"),
        )

        assert isinstance(match.multiplier(), ConversionError)
        assert match.packages == 0
        assert match.quantity == 1

    def test_to_dict(self):
        product = make_product("1", "Milk", size="16 fl oz")
        match = ProductMatch(ingredient=cups_of("milk", 2), query="milk", candidates=[product], selected=product)

        data = match.to_dict()

        assert data["matched"] is True
        assert data["product"]["objectID"] == "1"
        assert data["quantity"] == 1
        assert data["conversion"]["originalValues"]["second"] == "2 cup"
        assert data["ingredient"]["unitText"] == "cups"


class TestMatchIngredients:
    """Tests for the concurrent matching fan-out."""

    @pytest.mark.asyncio
    async def test_match_ingredient_selects_closest(self):
        client = FakeSearchClient(
            results={
                "whole milk": [
                    make_product("1", "Wegmans Chocolate Milk"),
                    make_product("2", "Wegmans Whole Milk"),
                ]
            }
        )

        match = await match_ingredient(client, ParsedIngredient(ingredient="whole milk"))

        assert match.query == "whole milk"
        assert [p.object_id for p in match.candidates] == ["1", "2"]
        assert match.selected.object_id == "2"

    @pytest.mark.asyncio
    async def test_keeps_ingredient_order(self):
        client = FakeSearchClient(
            results={
                "flour": [make_product("1", "Flour")],
                "sugar": [make_product("2", "Sugar")],
                "eggs": [make_product("3", "Eggs")],
            }
        )
        ingredients = [ParsedIngredient(ingredient=name) for name in ("flour", "sugar", "eggs")]

        matches = await match_ingredients(client, ingredients)

        assert [m.ingredient_name for m in matches] == ["flour", "sugar", "eggs"]
        assert [m.selected.object_id for m in matches] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_search_failure_isolated(self):
        client = FakeSearchClient(
            results={"flour": [make_product("1", "Flour")], "eggs": [make_product("3", "Eggs")]},
            errors={"sugar": BuyFreshAPIError("Product search failed")},
        )
        ingredients = [ParsedIngredient(ingredient=name) for name in ("flour", "sugar", "eggs")]

        matches = await match_ingredients(client, ingredients)

        assert [m.matched for m in matches] == [True, False, True]
        assert matches[1].candidates == []

    @pytest.mark.asyncio
    async def test_unexpected_error_isolated(self):
        client = FakeSearchClient(
            results={"flour": [make_product("1", "Flour")]},
            errors={"sugar": RuntimeError("boom")},
        )
        ingredients = [ParsedIngredient(ingredient="flour"), ParsedIngredient(ingredient="sugar")]

        matches = await match_ingredients(client, ingredients)

        assert matches[0].matched
        assert not matches[1].matched
        assert matches[1].query == "sugar"

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await match_ingredients(FakeSearchClient(), []) == []


class TestSelectAlternative:
    """Tests for select_alternative function."""

    def test_selects_candidate(self):
        candidates = [make_product("1", "A"), make_product("2", "B")]
        match = ProductMatch(ingredient=ParsedIngredient(ingredient="x"), query="x", candidates=candidates, selected=candidates[0])

        new_match = select_alternative(match, 1)

        assert new_match.selected.object_id == "2"
        assert new_match.candidates == candidates
        assert match.selected.object_id == "1"

    def test_out_of_range_returns_same(self):
        match = ProductMatch(ingredient=ParsedIngredient(ingredient="x"), query="x")
        assert select_alternative(match, 0) is match


class TestTotals:
    """Tests for calculate_total_cost and get_unmatched_ingredients."""

    def test_total_and_unmatched(self):
        matches = [
            ProductMatch(
                ingredient=cups_of("milk", 3),
                query="milk",
                selected=make_product("1", "Milk", price=3.49, size="16 fl oz"),
            ),
            ProductMatch(
                ingredient=ParsedIngredient(ingredient="basil"),
                query="basil",
                selected=make_product("2", "Basil", price=1.0, size="1 ct"),
            ),
            ProductMatch(ingredient=ParsedIngredient(ingredient="saffron"), query="saffron"),
        ]

        assert calculate_total_cost(matches) == pytest.approx(3.49 * 2 + 1.0)
        assert get_unmatched_ingredients(matches) == ["saffron"]
