# Overview: Ephemeral shopping cart with one line type per buying mode.

"""
Cart model.

A cart is never persisted: clients post it to /api/checkout/* and the
server parses it with Cart.from_payload. Each buying mode has its own line
type carrying only the fields that mode needs:

- IndividualLine: box-priced catalog purchase
- GroupBuyLine: vial-priced line against an admin group-buy batch
- SubGroupLine: vial-priced line against a regional sub-group batch

Quantities are clamped, never rejected: adding past max_quantity stops at
max_quantity and lines that reach 0 are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Union

from .models.orders import ORDER_TYPE_INDIVIDUAL, ORDER_TYPE_GROUP_BUY, ORDER_TYPE_SUB_GROUP
from .services.progress_service import clamp_quantity


CART_MODES = (ORDER_TYPE_INDIVIDUAL, ORDER_TYPE_GROUP_BUY, ORDER_TYPE_SUB_GROUP)

# Upper bound for individual lines, which have no pooled capacity
MAX_INDIVIDUAL_QUANTITY = 999


_PAYLOAD_DEFAULTS = {
    "name": "",
    "unit_price_cents": 0,
    "max_quantity": MAX_INDIVIDUAL_QUANTITY,
    "vials_per_box": 10,
}


class CartError(ValueError):
    pass


@dataclass(frozen=True)
class IndividualLine:
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int
    vials_per_box: int = 10

    mode = ORDER_TYPE_INDIVIDUAL

    @property
    def batch_id(self) -> None:
        return None

    @property
    def max_quantity(self) -> int:
        return MAX_INDIVIDUAL_QUANTITY

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class GroupBuyLine:
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int
    batch_id: int
    batch_product_id: int
    max_quantity: int

    mode = ORDER_TYPE_GROUP_BUY

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class SubGroupLine:
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int
    batch_id: int
    batch_product_id: int
    max_quantity: int
    region_id: int

    mode = ORDER_TYPE_SUB_GROUP

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


CartLine = Union[IndividualLine, GroupBuyLine, SubGroupLine]

_LINE_TYPES = {
    ORDER_TYPE_INDIVIDUAL: IndividualLine,
    ORDER_TYPE_GROUP_BUY: GroupBuyLine,
    ORDER_TYPE_SUB_GROUP: SubGroupLine,
}


def _key(mode: str, product_id: int, batch_id: int | None) -> tuple:
    return (mode, product_id, batch_id)


def _line_key(line: CartLine) -> tuple:
    return _key(line.mode, line.product_id, line.batch_id)


@dataclass
class Cart:
    lines: list[CartLine] = field(default_factory=list)

    def _index(self, key: tuple) -> int | None:
        for i, line in enumerate(self.lines):
            if _line_key(line) == key:
                return i
        return None

    def add(self, line: CartLine) -> CartLine | None:
        """
        Add a line, merging with an existing line for the same mode, product
        and batch. The merged quantity is clamped to max_quantity.
        Returns the resulting line (None if it clamped to nothing).
        """
        idx = self._index(_line_key(line))
        requested = line.quantity
        if idx is not None:
            requested += self.lines[idx].quantity
        quantity = clamp_quantity(requested, line.max_quantity)

        merged = replace(line, quantity=quantity)
        if idx is not None:
            if quantity == 0:
                del self.lines[idx]
                return None
            self.lines[idx] = merged
            return merged
        if quantity == 0:
            return None
        self.lines.append(merged)
        return merged

    def update_quantity(self, mode: str, product_id: int, quantity: Any, batch_id: int | None = None) -> CartLine | None:
        """Set a line's quantity, clamped to [0, max_quantity]; 0 drops the line."""
        idx = self._index(_key(mode, product_id, batch_id))
        if idx is None:
            return None
        line = self.lines[idx]
        clamped = clamp_quantity(quantity, line.max_quantity)
        if clamped == 0:
            del self.lines[idx]
            return None
        self.lines[idx] = replace(line, quantity=clamped)
        return self.lines[idx]

    def remove(self, mode: str, product_id: int, batch_id: int | None = None) -> bool:
        idx = self._index(_key(mode, product_id, batch_id))
        if idx is None:
            return False
        del self.lines[idx]
        return True

    def clear(self) -> None:
        self.lines = []

    def clear_mode(self, mode: str) -> None:
        self.lines = [line for line in self.lines if line.mode != mode]

    def lines_for_mode(self, mode: str) -> list[CartLine]:
        return [line for line in self.lines if line.mode == mode]

    def lines_for_batch(self, mode: str, batch_id: int) -> list[CartLine]:
        return [line for line in self.lines if line.mode == mode and line.batch_id == batch_id]

    @property
    def total_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def is_empty(self) -> bool:
        return not self.lines

    def to_payload(self) -> list[dict]:
        out = []
        for line in self.lines:
            data = {k: getattr(line, k) for k in line.__dataclass_fields__}
            data["mode"] = line.mode
            data["line_total_cents"] = line.line_total_cents
            out.append(data)
        return out

    @classmethod
    def from_payload(cls, payload: Any) -> "Cart":
        """
        Parse a posted cart: a list of objects each carrying "mode" plus the
        fields of that mode's line type. Unknown keys are ignored; missing or
        non-integer ids raise CartError. Lines are merged through add().

        Prices and max quantities sent by the client are only hints; checkout
        re-reads both from the database.
        """
        if payload is None:
            return cls()
        if not isinstance(payload, list):
            raise CartError("Cart must be a list of lines")

        cart = cls()
        for i, raw in enumerate(payload):
            if not isinstance(raw, dict):
                raise CartError(f"Cart line {i} must be an object")
            mode = raw.get("mode")
            line_type = _LINE_TYPES.get(mode)
            if line_type is None:
                raise CartError(f"Cart line {i} has unknown mode: {mode!r}")

            values: dict[str, Any] = {}
            for name in line_type.__dataclass_fields__:
                if name in raw:
                    value = raw[name]
                elif name in _PAYLOAD_DEFAULTS:
                    value = _PAYLOAD_DEFAULTS[name]
                else:
                    raise CartError(f"Cart line {i} is missing {name}")

                if name == "name":
                    value = str(value or "")
                elif name == "quantity":
                    value = clamp_quantity(value, MAX_INDIVIDUAL_QUANTITY)
                elif isinstance(value, bool) or not isinstance(value, int):
                    raise CartError(f"Cart line {i}: {name} must be an integer")
                values[name] = value

            cart.add(line_type(**values))
        return cart
