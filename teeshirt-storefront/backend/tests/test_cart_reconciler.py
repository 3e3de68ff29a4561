"""
Cart reconciler tests: uniqueness of variant lines, quantity floor, merges on
variant edits and checkout subtotal.
"""
import json

import pytest

from cart_reconciler import CART_SNAPSHOT_KEY, CartReconciler, load_cart_lines, make_cart_id


@pytest.fixture
def snapshots():
    return {}


@pytest.fixture
def cart(snapshots):
    return CartReconciler(snapshots)


def stored_lines(snapshots):
    return json.loads(snapshots[CART_SNAPSHOT_KEY])


class TestAddOrIncrement:
    def test_new_variant_creates_line_with_quantity_one(self, cart):
        line = cart.add_or_increment(1, "Black", "M", 350, name="Classic Tee")

        assert line.cart_id == "1-Black-M"
        assert line.quantity == 1
        assert line.selected is True
        assert len(cart.lines()) == 1

    def test_same_variant_increments_existing_line(self, cart):
        cart.add_or_increment(1, "Black", "M", 350)
        line = cart.add_or_increment(1, "Black", "M", 350)

        assert line.quantity == 2
        assert len(cart.lines()) == 1

    def test_other_size_is_a_separate_line(self, cart):
        cart.add_or_increment(1, "Black", "M", 350)
        cart.add_or_increment(1, "Black", "L", 350)

        assert [l.cart_id for l in cart.lines()] == ["1-Black-M", "1-Black-L"]

    def test_every_mutation_is_persisted(self, cart, snapshots):
        cart.add_or_increment(1, "Black", "M", 350, name="Classic Tee", image="/img/c.png")

        saved = stored_lines(snapshots)
        assert saved == [{
            "cartId": "1-Black-M",
            "id": 1,
            "name": "Classic Tee",
            "image": "/img/c.png",
            "price": 350.0,
            "color": "Black",
            "size": "M",
            "quantity": 1,
            "selected": True,
        }]

    def test_mixed_sequence_never_duplicates_keys(self, cart):
        cart.add_or_increment(1, "Black", "M", 350)
        cart.add_or_increment(1, "White", "L", 350)
        cart.add_or_increment(2, "Black", "M", 420)
        cart.edit_variant("1-White-L", "Black", "M")
        cart.add_or_increment(1, "White", "L", 350)
        cart.edit_variant("1-White-L", "Black", "M")
        cart.add_or_increment(1, "Black", "M", 350)

        keys = [line.cart_id for line in cart.lines()]
        assert len(keys) == len(set(keys))
        assert cart.get("1-Black-M").quantity == 4


class TestSetQuantity:
    @pytest.mark.parametrize("delta, expected", [(1, 3), (-1, 1), (-5, 1), (-100, 1), (0, 2)])
    def test_quantity_never_drops_below_one(self, cart, delta, expected):
        cart.add_or_increment(1, "Black", "M", 350)
        cart.add_or_increment(1, "Black", "M", 350)

        cart.set_quantity("1-Black-M", delta)

        assert cart.get("1-Black-M").quantity == expected

    def test_unknown_key_is_ignored(self, cart, snapshots):
        cart.set_quantity("9-Red-S", 3)

        assert cart.lines() == []
        assert CART_SNAPSHOT_KEY not in snapshots


class TestRemoveAndClear:
    def test_remove_existing_line(self, cart):
        cart.add_or_increment(1, "Black", "M", 350)
        cart.add_or_increment(2, "Pink", "S", 420)

        cart.remove("1-Black-M")

        assert [l.cart_id for l in cart.lines()] == ["2-Pink-S"]

    def test_remove_absent_key_changes_nothing(self, cart, snapshots):
        cart.add_or_increment(1, "Black", "M", 350)
        before = snapshots[CART_SNAPSHOT_KEY]

        cart.remove("does-not-exist")

        assert snapshots[CART_SNAPSHOT_KEY] == before
        assert len(cart.lines()) == 1

    def test_clear_all(self, cart, snapshots):
        cart.add_or_increment(1, "Black", "M", 350)
        cart.add_or_increment(2, "Pink", "S", 420)

        cart.clear_all()

        assert cart.lines() == []
        assert stored_lines(snapshots) == []


class TestEditVariant:
    def test_collision_merges_quantities_into_existing_line(self, cart):
        for _ in range(2):
            cart.add_or_increment(1, "White", "L", 350)
        for _ in range(3):
            cart.add_or_increment(1, "Black", "M", 350)

        merged = cart.edit_variant("1-White-L", "Black", "M")

        assert merged.cart_id == "1-Black-M"
        assert merged.quantity == 5
        assert [l.cart_id for l in cart.lines()] == ["1-Black-M"]

    def test_no_collision_rekeys_in_place(self, cart):
        cart.add_or_increment(1, "White", "L", 350)
        cart.add_or_increment(2, "Pink", "S", 420)
        cart.set_quantity("1-White-L", 2)

        edited = cart.edit_variant("1-White-L", "Navy", "XL")

        assert edited.cart_id == "1-Navy-XL"
        assert edited.quantity == 3
        assert [l.cart_id for l in cart.lines()] == ["1-Navy-XL", "2-Pink-S"]

    def test_same_variant_only_resaves(self, cart, snapshots):
        cart.add_or_increment(1, "Black", "M", 350)
        snapshots[CART_SNAPSHOT_KEY] = "stale"

        line = cart.edit_variant("1-Black-M", "Black", "M")

        assert line.quantity == 1
        assert stored_lines(snapshots)[0]["cartId"] == "1-Black-M"

    def test_unknown_key_returns_none(self, cart):
        assert cart.edit_variant("nope", "Black", "M") is None

    def test_lines_of_other_products_never_merge(self, cart):
        cart.add_or_increment(1, "Black", "M", 350)
        cart.add_or_increment(2, "White", "L", 420)

        cart.edit_variant("2-White-L", "Black", "M")

        assert sorted(l.cart_id for l in cart.lines()) == ["1-Black-M", "2-Black-M"]


class TestSelectionAndSubtotal:
    def test_subtotal_skips_deselected_lines(self, cart):
        cart.add_or_increment(1, "Black", "M", 100)
        cart.add_or_increment(1, "Black", "M", 100)
        cart.add_or_increment(2, "Pink", "S", 50)

        cart.set_selected("2-Pink-S", False)

        assert cart.subtotal() == 200
        assert cart.all_selected() is False

    def test_select_all_toggles_every_line(self, cart):
        cart.add_or_increment(1, "Black", "M", 100)
        cart.add_or_increment(2, "Pink", "S", 50)

        cart.set_selected_all(False)
        assert cart.subtotal() == 0

        cart.set_selected_all(True)
        assert cart.subtotal() == 150
        assert cart.all_selected() is True

    def test_item_count_sums_quantities(self, cart):
        cart.add_or_increment(1, "Black", "M", 100)
        cart.add_or_increment(1, "Black", "M", 100)
        cart.add_or_increment(2, "Pink", "S", 50)

        assert cart.item_count() == 3


class TestSnapshotLoading:
    def test_missing_selected_flag_counts_as_selected(self):
        raw = json.dumps([
            {"id": 1, "color": "Black", "size": "M", "price": 100, "quantity": 2},
            {"id": 2, "color": "Pink", "size": "S", "price": 50, "quantity": 1, "selected": False},
        ])

        cart = CartReconciler({CART_SNAPSHOT_KEY: raw})

        assert cart.subtotal() == 200

    @pytest.mark.parametrize("raw", ["{not json", json.dumps({"id": 1}), json.dumps([{"color": "Black"}]), 42])
    def test_unreadable_snapshot_loads_empty(self, raw):
        assert load_cart_lines(raw) == []

    def test_duplicate_keys_are_merged_and_quantities_clamped(self):
        raw = json.dumps([
            {"id": 1, "color": "Black", "size": "M", "price": 100, "quantity": 2},
            {"id": 1, "color": "Black", "size": "M", "price": 100, "quantity": 0},
        ])

        lines = load_cart_lines(raw)

        assert len(lines) == 1
        assert lines[0].quantity == 3

    def test_make_cart_id(self):
        assert make_cart_id("abc", "Navy", "2XL") == "abc-Navy-2XL"
