"""Authoritative price resolution.

Cart lines reference a catalog item plus a size selector. The catalog
schema changed over time, so a selector may be a named tier
(``small``/``medium``/``large``), a legacy numeric code (``"6"``/``"8"``/
``"10"``) or an index into the item's flexible ``{label, price}`` options.
Stored orders and carts cached in browsers still use all three, so every
branch stays.

Client-supplied prices never reach this module.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .domain import CatalogItem
from .errors import PriceError

LEGACY_TIERS = ("small", "medium", "large")
LEGACY_CODES = {"6": "small", "8": "medium", "10": "large"}


@dataclass(frozen=True)
class ByIndex:
    index: int


@dataclass(frozen=True)
class ByKey:
    key: str


Selector = Union[ByIndex, ByKey, None]


@dataclass(frozen=True)
class ResolvedPrice:
    unit_price: Decimal
    label: str | None


def parse_selector(raw: int | str | None) -> Selector:
    """Turn the raw request value into a tagged selector."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return ByIndex(raw)
    key = raw.strip().lower()
    if not key:
        return None
    if key.isdigit() and key not in LEGACY_CODES:
        return ByIndex(int(key))
    return ByKey(key)


def _to_price(value) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _legacy_price(item: CatalogItem, tier: str):
    return getattr(item, f"price_{tier}")


def _has_legacy_prices(item: CatalogItem) -> bool:
    return any(_legacy_price(item, tier) is not None for tier in LEGACY_TIERS)


def _lookup(item: CatalogItem, selector: Selector) -> tuple[object, str | None]:
    if isinstance(selector, ByIndex):
        if item.options:
            if not 0 <= selector.index < len(item.options):
                raise PriceError(f"Unknown size for product: {item.name}")
            option = item.options[selector.index]
            return option.price, option.label
        if 0 <= selector.index < len(LEGACY_TIERS):
            tier = LEGACY_TIERS[selector.index]
            return _legacy_price(item, tier), tier
        raise PriceError(f"Unknown size for product: {item.name}")

    if isinstance(selector, ByKey):
        tier = LEGACY_CODES.get(selector.key, selector.key)
        if tier in LEGACY_TIERS and _legacy_price(item, tier) is not None:
            return _legacy_price(item, tier), tier
        for option in item.options:
            if option.label.strip().lower() in (selector.key, tier):
                return option.price, option.label
        if tier in LEGACY_TIERS:
            return None, tier
        raise PriceError(f"Unknown size for product: {item.name}")

    for tier in LEGACY_TIERS:
        if _legacy_price(item, tier) is not None:
            return _legacy_price(item, tier), None
    if item.options:
        return item.options[0].price, item.options[0].label
    return None, None


def resolve_price(item: CatalogItem, selector: Selector) -> ResolvedPrice:
    """Resolve the unit price and display label for one cart line.

    Order of lookup:

    1. ``ByIndex`` into the flexible options list.
    2. Legacy fixed columns by tier name, legacy code or tier index.
    3. With no selector, the first available fixed-column price.

    Raises:
        PriceError: if no price is found, or it is zero, negative or not
            a finite number.
    """
    raw, label = _lookup(item, selector)
    price = _to_price(raw)
    if price is None or not price.is_finite() or price <= 0:
        raise PriceError(f"Invalid price for product: {item.name} ({item.id})")
    return ResolvedPrice(unit_price=price, label=label)


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents, rounding half up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
