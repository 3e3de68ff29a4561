"""
Session cart for the storefront.

The cart lives in the browser session as a JSON list of lines. Every line is
keyed by ``<product_id>-<color>-<size>``; the reconciler makes sure no two
lines share that key and that no quantity drops below one.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, MutableMapping, Optional

logger = logging.getLogger(__name__)

CART_SNAPSHOT_KEY = "cart"


def make_cart_id(product_id: Any, color: str, size: str) -> str:
    return f"{product_id}-{color}-{size}"


@dataclass
class CartLine:
    product_id: Any
    color: str
    size: str
    unit_price: float
    quantity: int = 1
    selected: bool = True
    name: str = ""
    image: str = ""

    @property
    def cart_id(self) -> str:
        return make_cart_id(self.product_id, self.color, self.size)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cartId": self.cart_id,
            "id": self.product_id,
            "name": self.name,
            "image": self.image,
            "price": self.unit_price,
            "color": self.color,
            "size": self.size,
            "quantity": self.quantity,
            "selected": self.selected,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        return cls(
            product_id=data["id"],
            color=str(data["color"]),
            size=str(data["size"]),
            unit_price=float(data.get("price") or 0),
            quantity=max(1, int(data.get("quantity") or 1)),
            # Lines are checked out unless explicitly deselected
            selected=data.get("selected") is not False,
            name=data.get("name") or "",
            image=data.get("image") or "",
        )


def load_cart_lines(raw: Any) -> List[CartLine]:
    """Parse a stored cart snapshot. Anything unreadable counts as an empty cart."""
    if not raw:
        return []
    try:
        items = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(items, list):
            raise ValueError("cart snapshot is not a list")
        parsed = [CartLine.from_dict(item) for item in items]
    except (ValueError, TypeError, KeyError) as e:
        logger.debug("Ignoring unreadable cart snapshot: %s", e)
        return []

    # Collapse duplicate keys so a hand-edited snapshot can't break uniqueness
    lines: List[CartLine] = []
    by_id: Dict[str, CartLine] = {}
    for line in parsed:
        existing = by_id.get(line.cart_id)
        if existing:
            existing.quantity += line.quantity
        else:
            by_id[line.cart_id] = line
            lines.append(line)
    return lines


def dump_cart_lines(lines: List[CartLine]) -> str:
    return json.dumps([line.to_dict() for line in lines])


class CartReconciler:
    """Applies cart edits and writes the result back to the snapshot store.

    ``snapshots`` is any mutable mapping: ``flask.session`` in the app, a
    plain dict in tests.
    """

    def __init__(self, snapshots: MutableMapping[str, Any]):
        self.snapshots = snapshots
        self._lines = load_cart_lines(snapshots.get(CART_SNAPSHOT_KEY))

    def _save(self) -> None:
        self.snapshots[CART_SNAPSHOT_KEY] = dump_cart_lines(self._lines)

    def _find(self, cart_id: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.cart_id == cart_id:
                return line
        return None

    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def get(self, cart_id: str) -> Optional[CartLine]:
        return self._find(cart_id)

    def add_or_increment(self, product_id, color, size, unit_price, name=None, image=None) -> CartLine:
        line = self._find(make_cart_id(product_id, color, size))
        if line:
            line.quantity += 1
        else:
            line = CartLine(
                product_id=product_id,
                color=color,
                size=size,
                unit_price=float(unit_price),
                name=name or "",
                image=image or "",
            )
            self._lines.append(line)
        self._save()
        return line

    def set_quantity(self, cart_id: str, delta: int) -> None:
        line = self._find(cart_id)
        if not line:
            return
        line.quantity = max(1, line.quantity + delta)
        self._save()

    def remove(self, cart_id: str) -> None:
        remaining = [line for line in self._lines if line.cart_id != cart_id]
        if len(remaining) == len(self._lines):
            return
        self._lines = remaining
        self._save()

    def clear_all(self) -> None:
        self._lines = []
        self._save()

    def set_selected(self, cart_id: str, selected: bool) -> None:
        line = self._find(cart_id)
        if not line:
            return
        line.selected = bool(selected)
        self._save()

    def set_selected_all(self, selected: bool) -> None:
        for line in self._lines:
            line.selected = bool(selected)
        self._save()

    def edit_variant(self, cart_id: str, new_color: str, new_size: str) -> Optional[CartLine]:
        """Switch a line to another color/size.

        If a different line already holds the new variant, that line absorbs
        the edited line's quantity and the edited line is dropped. Returns
        the line that now carries the variant, or None for an unknown key.
        """
        line = self._find(cart_id)
        if not line:
            return None

        new_id = make_cart_id(line.product_id, new_color, new_size)
        if new_id == cart_id:
            self._save()
            return line

        existing = self._find(new_id)
        if existing:
            existing.quantity += line.quantity
            self._lines = [l for l in self._lines if l is not line]
            self._save()
            return existing

        line.color = new_color
        line.size = new_size
        self._save()
        return line

    def subtotal(self) -> float:
        return sum(line.line_total for line in self._lines if line.selected)

    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def all_selected(self) -> bool:
        return all(line.selected for line in self._lines)
