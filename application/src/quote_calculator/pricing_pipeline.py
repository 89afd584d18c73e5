"""Multi-service pricing: subtotal, discounts, travel fee, upsells and sales tax."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

from .distance import DistanceInfo, DistanceSettings, PRICING_PERCENT
from .models import UpsellItem, finite_float

_UNIT = Decimal("1")


def round_half_up(value: Any) -> int:
    """Round to the nearest whole currency unit, ties away from zero. Used at every rounding point."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if not value.is_finite():
        return 0
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: float) -> int:
    """`percent`% of `amount`, rounded; a non-finite rate contributes nothing."""
    if not math.isfinite(percent):
        return 0
    return round_half_up(Decimal(amount) * Decimal(str(percent)) / 100)


def to_cents(amount: int) -> int:
    return int(amount) * 100


@dataclass
class Discount:
    """Business-defined discount a customer may opt into."""
    id: str
    name: str
    percentage: float
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Discount:
        d = dict(data)
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name") or ""),
            percentage=finite_float(d.get("percentage")),
            is_active=bool(d.get("isActive", True)),
        )


@dataclass
class PricingOptions:
    """Business configuration for one breakdown. Every default means "no effect"."""
    bundle_discount_enabled: bool = False
    bundle_discount_percent: float = 0.0
    discounts: list[Discount] = field(default_factory=list)
    selected_discount_ids: list[str] = field(default_factory=list)
    allow_discount_stacking: bool = False
    upsells: list[UpsellItem] = field(default_factory=list)
    selected_upsell_ids: list[str] = field(default_factory=list)
    distance_info: DistanceInfo | None = None
    distance_settings: DistanceSettings | None = None
    sales_tax_enabled: bool = False
    sales_tax_rate: float = 0.0
    sales_tax_label: str = "Sales Tax"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PricingOptions:
        d = dict(data or {})
        distance_info = d.get("distanceInfo")
        distance_settings = d.get("distanceSettings")
        return cls(
            bundle_discount_enabled=bool(d.get("bundleDiscountEnabled", d.get("showBundleDiscount", False))),
            bundle_discount_percent=finite_float(d.get("bundleDiscountPercent")),
            discounts=[Discount.from_dict(x) for x in d.get("discounts") or []],
            selected_discount_ids=[str(x) for x in d.get("selectedDiscountIds") or []],
            allow_discount_stacking=bool(d.get("allowDiscountStacking", False)),
            upsells=[UpsellItem.from_dict(x) for x in d.get("upsells") or []],
            selected_upsell_ids=[str(x) for x in d.get("selectedUpsellIds") or []],
            distance_info=DistanceInfo.from_dict(distance_info) if distance_info else None,
            distance_settings=DistanceSettings.from_dict(distance_settings) if distance_settings else None,
            sales_tax_enabled=bool(d.get("salesTaxEnabled", d.get("enableSalesTax", False))),
            sales_tax_rate=finite_float(d.get("salesTaxRate")),
            sales_tax_label=str(d.get("salesTaxLabel") or "Sales Tax"),
        )


@dataclass
class AppliedDiscount:
    id: str
    name: str
    percentage: float
    amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "percentage": self.percentage, "amount": self.amount}


@dataclass
class AppliedUpsell:
    id: str
    name: str
    percentage_of_main: float
    amount: int
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "percentage_of_main": self.percentage_of_main,
            "amount": self.amount,
            "category": self.category,
        }


@dataclass
class PricingBreakdown:
    """
    Itemized result of one pipeline run, in whole currency units.

    subtotal - bundle_discount - customer_discount_amount + distance_fee
    + upsell_amount + tax_amount == total, always.
    """
    subtotal: int
    bundle_discount: int
    customer_discounts: list[AppliedDiscount]
    discounted_subtotal: int
    distance_fee: int
    upsells: list[AppliedUpsell]
    taxable_amount: int
    tax_amount: int
    total: int
    tax_label: str = "Sales Tax"

    @property
    def customer_discount_amount(self) -> int:
        return sum(d.amount for d in self.customer_discounts)

    @property
    def upsell_amount(self) -> int:
        return sum(u.amount for u in self.upsells)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "bundle_discount": self.bundle_discount,
            "customer_discounts": [d.to_dict() for d in self.customer_discounts],
            "customer_discount_amount": self.customer_discount_amount,
            "discounted_subtotal": self.discounted_subtotal,
            "distance_fee": self.distance_fee,
            "upsells": [u.to_dict() for u in self.upsells],
            "upsell_amount": self.upsell_amount,
            "taxable_amount": self.taxable_amount,
            "tax_amount": self.tax_amount,
            "tax_label": self.tax_label,
            "total": self.total,
        }

    def to_payload(self) -> dict[str, Any]:
        """Submission payload for leads/estimates: every amount in integer cents."""
        return {
            "subtotal_cents": to_cents(self.subtotal),
            "bundle_discount_cents": to_cents(self.bundle_discount),
            "applied_discounts": [
                {**d.to_dict(), "amount": to_cents(d.amount)} for d in self.customer_discounts
            ],
            "distance_fee_cents": to_cents(self.distance_fee),
            "selected_upsells": [
                {**u.to_dict(), "amount": to_cents(u.amount)} for u in self.upsells
            ],
            "tax_cents": to_cents(self.tax_amount),
            "total_cents": to_cents(self.total),
        }


def _unique(ids: Iterable[Any]) -> list[str]:
    out: list[str] = []
    for item in ids:
        key = str(item)
        if key not in out:
            out.append(key)
    return out


def _distance_fee(options: PricingOptions, discounted_subtotal: int) -> int:
    info, settings = options.distance_info, options.distance_settings
    if info is None or settings is None or not settings.enabled:
        return 0
    if not math.isfinite(info.fee):
        return 0
    if settings.pricing_type == PRICING_PERCENT:
        # Percentage mode: fraction of the post-discount subtotal
        fee = round_half_up(Decimal(discounted_subtotal) * Decimal(str(info.fee)))
    else:
        fee = round_half_up(info.fee)
    return max(fee, 0)


def compute_breakdown(
    selected_service_ids: Iterable[Any],
    service_prices: Mapping[str, int],
    options: PricingOptions | None = None,
) -> PricingBreakdown:
    """
    Compose the final price of the selected services.

    Stages run in a fixed order: subtotal (negative prices clamped to 0), bundle
    discount, customer discounts, distance fee, upsells, sales tax. Discounts and
    upsells are percentages of the undiscounted subtotal and never compound.
    """
    if options is None:
        options = PricingOptions()
    selected = _unique(selected_service_ids)
    prices = {str(k): v for k, v in (service_prices or {}).items()}

    # 1. Subtotal
    subtotal = sum(max(0, round_half_up(prices.get(sid) or 0)) for sid in selected)

    # 2. Bundle discount, counting only services that were actually priced
    priced_count = sum(1 for sid in selected if sid in prices)
    bundle_discount = 0
    if options.bundle_discount_enabled and priced_count > 1:
        bundle_discount = min(percent_of(subtotal, options.bundle_discount_percent), subtotal)
        bundle_discount = max(bundle_discount, 0)

    # 3. Customer discounts, capped so the discounted subtotal cannot go negative
    by_id = {d.id: d for d in options.discounts}
    chosen = [by_id[i] for i in _unique(options.selected_discount_ids) if i in by_id and by_id[i].is_active]
    if not options.allow_discount_stacking:
        chosen = chosen[:1]
    remaining = subtotal - bundle_discount
    customer_discounts: list[AppliedDiscount] = []
    for discount in chosen:
        amount = max(0, min(percent_of(subtotal, discount.percentage), remaining))
        remaining -= amount
        customer_discounts.append(AppliedDiscount(discount.id, discount.name, discount.percentage, amount))

    # 4. Discounted subtotal
    discounted_subtotal = subtotal - bundle_discount - sum(d.amount for d in customer_discounts)

    # 5. Distance fee
    distance_fee = _distance_fee(options, discounted_subtotal)

    # 6. Upsells
    upsells_by_id = {u.id: u for u in options.upsells}
    upsells = [
        AppliedUpsell(
            id=u.id,
            name=u.name,
            percentage_of_main=u.percentage_of_main,
            amount=percent_of(subtotal, u.percentage_of_main),
            category=u.category,
        )
        for u in (upsells_by_id[i] for i in _unique(options.selected_upsell_ids) if i in upsells_by_id)
    ]

    # 7-9. Tax and total
    taxable_amount = discounted_subtotal + distance_fee + sum(u.amount for u in upsells)
    tax_amount = percent_of(taxable_amount, options.sales_tax_rate) if options.sales_tax_enabled else 0
    total = taxable_amount + tax_amount

    return PricingBreakdown(
        subtotal=subtotal,
        bundle_discount=bundle_discount,
        customer_discounts=customer_discounts,
        discounted_subtotal=discounted_subtotal,
        distance_fee=distance_fee,
        upsells=upsells,
        taxable_amount=taxable_amount,
        tax_amount=tax_amount,
        total=total,
        tax_label=options.sales_tax_label,
    )
