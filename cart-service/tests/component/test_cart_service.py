"""
Component tests for CartService

The service runs against the in-memory cart store and product catalog, so
every path through validation, the store procedures and the count cache
is exercised without mocks.
"""
import asyncio
from decimal import Decimal

import pytest

from storefront_cart.schemas.cart import CartIssueType
from storefront_cart.services.cart_service import CartService
from storefront_cart.services.exceptions import CartErrorCode, CatalogUnavailableError, StoreUnavailableError


class TestAddToCart:

    async def test_add_then_summary(self, cart_service: CartService):
        """Product P1 M/Blue at 8000, two of them, subtotal 16000"""
        result = await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")
        assert result.success

        summary = await cart_service.get_cart_summary("u1")
        assert len(summary.items) == 1
        assert summary.items[0].quantity == 2
        assert summary.items[0].id == "u1_P1_M_Blue"
        assert summary.subtotal == Decimal("16000")

    async def test_same_variant_twice_increments_one_line(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P1", 1, "M", "Blue")
        await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")

        lines = await cart_service.get_user_cart("u1")
        assert len(lines) == 1
        assert lines[0].quantity == 3

    async def test_stock_boundary(self, cart_service: CartService):
        """Exactly the available stock fits, one more does not"""
        assert (await cart_service.add_to_cart("u1", "P1", 5, "M", "Blue")).success

        result = await cart_service.add_to_cart("u2", "P1", 6, "M", "Blue")
        assert not result.success
        assert result.error == CartErrorCode.INSUFFICIENT_STOCK

    async def test_increment_is_checked_against_stock(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P1", 4, "M", "Blue")

        result = await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")

        assert result.error == CartErrorCode.INSUFFICIENT_STOCK
        assert "you have 4 in cart" in result.message
        assert (await cart_service.get_user_cart("u1"))[0].quantity == 4

    async def test_undeclared_variant_is_rejected(self, cart_service: CartService):
        result = await cart_service.add_to_cart("u1", "P2", 1, "XL", "Black")

        assert result.error == CartErrorCode.INVALID_VARIANT
        assert await cart_service.get_user_cart("u1") == []

    async def test_unknown_product(self, cart_service: CartService):
        result = await cart_service.add_to_cart("u1", "nope", 1)
        assert result.error == CartErrorCode.PRODUCT_NOT_FOUND

    @pytest.mark.parametrize("quantity", [0, -3])
    async def test_non_positive_quantity(self, cart_service: CartService, quantity):
        result = await cart_service.add_to_cart("u1", "P3", quantity)
        assert result.error == CartErrorCode.INVALID_INPUT

    @pytest.mark.parametrize("user_id, product_id", [("", "P3"), ("  ", "P3"), ("u1", ""), ("u_1", "P3")])
    async def test_bad_identifiers(self, cart_service: CartService, user_id, product_id):
        result = await cart_service.add_to_cart(user_id, product_id, 1)
        assert result.error == CartErrorCode.INVALID_INPUT

    async def test_empty_selection_is_no_selection(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P3", 1, "", "")
        await cart_service.add_to_cart("u1", "P3", 1, None, None)

        lines = await cart_service.get_user_cart("u1")
        assert len(lines) == 1
        assert lines[0].quantity == 2
        assert lines[0].size is None

    async def test_catalog_failure_is_store_unavailable(self, cart_service: CartService, catalog, monkeypatch):
        async def broken(product_id):
            raise CatalogUnavailableError("catalog down")

        monkeypatch.setattr(catalog, "get_product", broken)

        result = await cart_service.add_to_cart("u1", "P3", 1)
        assert not result
        assert result.error == CartErrorCode.STORE_UNAVAILABLE

    @pytest.mark.parametrize("size, color", [("X_L", None), (None, "navy_blue"), ("M|L", None), (None, "Blue|Green")])
    async def test_selection_with_separator_is_rejected(self, cart_service: CartService, size, color):
        """Size and color become part of the line id and the variant key"""
        await cart_service.add_to_cart("u1", "P3", 1)

        result = await cart_service.add_to_cart("u1", "P3", 1, size, color)

        assert result.error == CartErrorCode.INVALID_INPUT
        lines = await cart_service.get_user_cart("u1")
        assert [(line.size, line.color, line.quantity) for line in lines] == [(None, None, 1)]
        assert not (await cart_service.get_cart_summary("u1")).is_empty


class TestUpdateQuantity:

    async def test_concrete_scenario(self, cart_service: CartService):
        """Add two, fail to go to six, then zero removes the line"""
        assert (await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")).success

        too_many = await cart_service.update_quantity("u1", "u1_P1_M_Blue", 6)
        assert too_many.error == CartErrorCode.INSUFFICIENT_STOCK
        assert "Only 5 available" in too_many.message
        assert (await cart_service.get_cart_summary("u1")).items[0].quantity == 2

        removed = await cart_service.update_quantity("u1", "u1_P1_M_Blue", 0)
        assert removed.success
        assert (await cart_service.get_cart_summary("u1")).is_empty

    async def test_update_keeps_added_at(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P1", 1, "M", "Blue")
        before = (await cart_service.get_user_cart("u1"))[0]

        result = await cart_service.update_quantity("u1", "u1_P1_M_Blue", 5)

        after = (await cart_service.get_user_cart("u1"))[0]
        assert result.success
        assert after.quantity == 5
        assert after.added_at == before.added_at

    async def test_missing_line(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P3", 1)

        result = await cart_service.update_quantity("u1", "u1_P1_M_Blue", 1)
        assert result.error == CartErrorCode.LINE_NOT_FOUND

    async def test_malformed_line_id(self, cart_service: CartService):
        result = await cart_service.update_quantity("u1", "garbage", 1)
        assert result.error == CartErrorCode.INVALID_INPUT

    async def test_line_of_another_user(self, cart_service: CartService):
        await cart_service.add_to_cart("u2", "P3", 1)

        result = await cart_service.update_quantity("u1", "u2_P3_null_null", 2)

        assert result.error == CartErrorCode.INVALID_INPUT
        assert (await cart_service.get_user_cart("u2"))[0].quantity == 1

    async def test_vanished_product(self, cart_service: CartService, catalog):
        await cart_service.add_to_cart("u1", "P3", 1)
        catalog.remove("P3")

        result = await cart_service.update_quantity("u1", "u1_P3_null_null", 2)
        assert result.error == CartErrorCode.PRODUCT_NOT_FOUND

    async def test_lost_writes_are_retried(self, cart_service: CartService, cart_store, monkeypatch):
        await cart_service.add_to_cart("u1", "P3", 1)

        original = cart_store.compare_and_replace
        calls = []

        async def flaky(user_id, lines, expected_updated_at):
            calls.append(expected_updated_at)
            if len(calls) == 1:
                # a concurrent writer sneaks in before the first conditional write
                await cart_store.add_line(user_id, "P1", 1, "M", "Blue")
            return await original(user_id, lines, expected_updated_at)

        monkeypatch.setattr(cart_store, "compare_and_replace", flaky)

        result = await cart_service.update_quantity("u1", "u1_P3_null_null", 4)

        assert result.success
        assert len(calls) == 2
        lines = {line.product_id: line.quantity for line in await cart_service.get_user_cart("u1")}
        assert lines == {"P3": 4, "P1": 1}

    async def test_conflicts_give_up_as_store_unavailable(self, cart_service: CartService, cart_store, monkeypatch):
        await cart_service.add_to_cart("u1", "P3", 1)

        async def always_lose(user_id, lines, expected_updated_at):
            return False

        monkeypatch.setattr(cart_store, "compare_and_replace", always_lose)

        result = await cart_service.update_quantity("u1", "u1_P3_null_null", 4)

        assert result.error == CartErrorCode.STORE_UNAVAILABLE
        assert (await cart_service.get_user_cart("u1"))[0].quantity == 1


class TestRemoveAndClear:

    async def test_remove_missing_line_is_success(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P3", 1)

        result = await cart_service.remove_from_cart("u1", "P1", "M", "Blue")

        assert result.success
        assert len(await cart_service.get_user_cart("u1")) == 1

    async def test_remove_from_unknown_cart_is_success(self, cart_service: CartService):
        assert (await cart_service.remove_from_cart("ghost", "P1")).success

    async def test_remove_only_the_matching_variant(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P2", 1, "M", "Black")
        await cart_service.add_to_cart("u1", "P2", 1, "L", "Red")

        await cart_service.remove_from_cart("u1", "P2", "M", "Black")

        lines = await cart_service.get_user_cart("u1")
        assert [(line.size, line.color) for line in lines] == [("L", "Red")]

    async def test_remove_by_id(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P1", 1, "M", "Blue")

        assert (await cart_service.remove_from_cart_by_id("u1", "u1_P1_M_Blue")).success
        assert await cart_service.get_user_cart("u1") == []

    async def test_remove_by_malformed_id(self, cart_service: CartService):
        result = await cart_service.remove_from_cart_by_id("u1", "u1")
        assert result.error == CartErrorCode.INVALID_INPUT

    async def test_clear_is_total(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")
        await cart_service.add_to_cart("u1", "P3", 3)

        assert (await cart_service.clear_cart("u1")).success

        summary = await cart_service.get_cart_summary("u1")
        assert summary.is_empty
        assert summary.shipping_cost == Decimal("0")

    async def test_clear_is_idempotent(self, cart_service: CartService):
        assert (await cart_service.clear_cart("new-user")).success
        assert (await cart_service.clear_cart("new-user")).success


class TestCartSummary:

    async def test_missing_product_is_skipped_not_removed(self, cart_service: CartService, catalog):
        await cart_service.add_to_cart("u1", "P1", 1, "M", "Blue")
        await cart_service.add_to_cart("u1", "P3", 2)
        catalog.remove("P3")

        summary = await cart_service.get_cart_summary("u1")

        assert [item.product_id for item in summary.items] == ["P1"]
        assert len(await cart_service.get_user_cart("u1")) == 2

    async def test_flat_shipping_below_threshold(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P3", 2)

        summary = await cart_service.get_cart_summary("u1")

        assert summary.subtotal == Decimal("3000")
        assert summary.shipping_cost == Decimal("2000")
        assert summary.total == Decimal("5000")

    async def test_free_shipping_at_threshold(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P2", 1, "M", "Black")
        await cart_service.add_to_cart("u1", "P2", 1, "L", "Red")

        summary = await cart_service.get_cart_summary("u1")

        assert summary.has_free_shipping
        assert summary.shipping_cost == Decimal("0")
        assert summary.total == Decimal("62000")

    async def test_store_failure_degrades_to_empty(self, cart_service: CartService, cart_store, monkeypatch):
        async def down(user_id):
            raise StoreUnavailableError("store down")

        monkeypatch.setattr(cart_store, "get", down)

        summary = await cart_service.get_cart_summary("u1")
        assert summary.is_empty
        assert summary.items == []


class TestValidateCart:

    async def test_empty_cart_warns(self, cart_service: CartService):
        result = await cart_service.validate_cart("u1")

        assert result.is_valid
        assert result.warnings == ["Your cart is empty"]

    async def test_valid_cart(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")

        result = await cart_service.validate_cart("u1")
        assert result.is_valid
        assert result.item_issues == []

    async def test_issues_are_reported_without_touching_storage(self, cart_service: CartService, catalog, products):
        await cart_service.add_to_cart("u1", "P1", 4, "M", "Blue")
        await cart_service.add_to_cart("u1", "P2", 1, "M", "Black")
        await cart_service.add_to_cart("u1", "P3", 1)

        low_stock = products["P1"].model_copy(deep=True)
        low_stock.variants["M|Blue"].stock = 2
        catalog.add(low_stock)
        catalog.add(products["P2"].model_copy(update={"is_active": False}))
        catalog.remove("P3")

        result = await cart_service.validate_cart("u1")

        assert not result.is_valid
        assert result.errors == ["3 item(s) in your cart have issues"]
        issues = {issue.product_id: issue for issue in result.item_issues}
        assert issues["P1"].issue_type == CartIssueType.OUT_OF_STOCK
        assert issues["P1"].message == "Linen Shirt - Only 2 available (you have 4 in cart)"
        assert issues["P1"].cart_item_id == "u1_P1_M_Blue"
        assert issues["P2"].issue_type == CartIssueType.NO_LONGER_AVAILABLE
        assert issues["P2"].message == "Wool Coat is no longer available"
        assert issues["P3"].message == "This product is no longer available"
        assert len(await cart_service.get_user_cart("u1")) == 3

    async def test_dropped_variant_is_no_longer_available(self, cart_service: CartService, catalog, products):
        await cart_service.add_to_cart("u1", "P2", 1, "L", "Red")
        catalog.add(products["P2"].model_copy(update={"variants": {"M|Black": products["P2"].variants["M|Black"]}}))

        result = await cart_service.validate_cart("u1")

        assert not result.is_valid
        assert result.item_issues[0].issue_type == CartIssueType.NO_LONGER_AVAILABLE

    async def test_catalog_failure(self, cart_service: CartService, catalog, monkeypatch):
        await cart_service.add_to_cart("u1", "P3", 1)

        async def broken(product_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(catalog, "get_product", broken)

        result = await cart_service.validate_cart("u1")
        assert not result.is_valid
        assert result.errors == ["Failed to validate cart"]


class TestItemCount:

    async def test_injected_cache_is_used(self, cart_service: CartService, count_cache):
        assert len(count_cache) == 0
        assert cart_service.count_cache is count_cache

    async def test_count_sums_quantities_and_is_cached(self, cart_service: CartService, count_cache):
        await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")
        await cart_service.add_to_cart("u1", "P3", 3)

        assert await cart_service.get_item_count("u1") == 5
        assert count_cache.get("u1") == 5

    async def test_every_mutation_invalidates(self, cart_service: CartService, count_cache):
        await cart_service.add_to_cart("u1", "P3", 1)
        assert await cart_service.get_item_count("u1") == 1

        await cart_service.add_to_cart("u1", "P3", 1)
        assert "u1" not in count_cache
        assert await cart_service.get_item_count("u1") == 2

        await cart_service.update_quantity("u1", "u1_P3_null_null", 5)
        assert "u1" not in count_cache
        assert await cart_service.get_item_count("u1") == 5

        await cart_service.remove_from_cart("u1", "P3")
        assert "u1" not in count_cache
        assert await cart_service.get_item_count("u1") == 0

        await cart_service.clear_cart("u1")
        assert "u1" not in count_cache

    async def test_cached_value_is_served(self, cart_service: CartService, count_cache):
        count_cache.set("u1", 42)
        assert await cart_service.get_item_count("u1") == 42

    async def test_failure_gives_zero(self, cart_service: CartService, cart_store, monkeypatch):
        async def down(user_id):
            raise StoreUnavailableError("store down")

        monkeypatch.setattr(cart_store, "ensure_exists", down)
        assert await cart_service.get_item_count("u1") == 0


class TestIsInCart:

    async def test_any_variant_counts(self, cart_service: CartService):
        await cart_service.add_to_cart("u1", "P2", 1, "L", "Red")

        assert await cart_service.is_in_cart("u1", "P2")
        assert not await cart_service.is_in_cart("u1", "P1")

    async def test_unknown_user(self, cart_service: CartService):
        assert not await cart_service.is_in_cart("ghost", "P1")


class TestConcurrency:

    async def test_concurrent_adds_are_not_lost(self, cart_service: CartService):
        results = await asyncio.gather(*(cart_service.add_to_cart("u1", "P3", 1) for _ in range(5)))

        assert all(results)
        lines = await cart_service.get_user_cart("u1")
        assert len(lines) == 1
        assert lines[0].quantity == 5

    async def test_concurrent_first_access_creates_one_cart(self, cart_service: CartService):
        counts = await asyncio.gather(*(cart_service.get_item_count("fresh") for _ in range(5)))
        assert counts == [0] * 5

    async def test_read_overlapping_an_add_does_not_cache_stale_count(
            self, cart_service: CartService, cart_store, count_cache, monkeypatch
    ):
        """A read that started before an add and finished after it must not leave its count behind"""
        await cart_service.add_to_cart("u1", "P3", 1)

        original_get = cart_store.get
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_get(user_id):
            cart = await original_get(user_id)
            entered.set()
            await release.wait()
            return cart

        monkeypatch.setattr(cart_store, "get", slow_get)
        read = asyncio.create_task(cart_service.get_user_cart("u1"))
        await entered.wait()
        monkeypatch.setattr(cart_store, "get", original_get)

        assert (await cart_service.add_to_cart("u1", "P3", 2)).success
        release.set()

        assert [line.quantity for line in await read] == [1]
        assert "u1" not in count_cache
        assert await cart_service.get_item_count("u1") == 3


class TestUnaddressableLines:
    """A stored line whose selection cannot form a line id only affects itself"""

    async def test_summary_keeps_the_other_lines(self, cart_service: CartService, cart_store):
        await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")
        await cart_store.add_line("u1", "P3", 1, "X_L", None)

        summary = await cart_service.get_cart_summary("u1")

        assert [item.id for item in summary.items] == ["u1_P1_M_Blue"]
        assert summary.subtotal == Decimal("16000")

    async def test_validation_flags_only_that_line(self, cart_service: CartService, cart_store):
        await cart_service.add_to_cart("u1", "P1", 2, "M", "Blue")
        await cart_store.add_line("u1", "P3", 1, "X_L", None)

        result = await cart_service.validate_cart("u1")

        assert not result.is_valid
        assert result.errors == ["1 item(s) in your cart have issues"]
        assert len(result.item_issues) == 1
        issue = result.item_issues[0]
        assert issue.product_id == "P3"
        assert issue.issue_type == CartIssueType.NO_LONGER_AVAILABLE

    async def test_line_can_still_be_removed(self, cart_service: CartService, cart_store):
        await cart_store.add_line("u1", "P3", 1, "X_L", None)

        assert (await cart_service.remove_from_cart("u1", "P3", "X_L")).success
        assert await cart_service.get_user_cart("u1") == []
