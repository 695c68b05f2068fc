"""Order pricing: shipping rates, tax and discount codes."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping

from .errors import ValidationError
from .models import ShippingMethod, to_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class DiscountRule:
    """Effect of a discount code: a percentage of the subtotal or a fixed amount."""

    kind: str  # "percent" | "fixed"
    value: Decimal

    def amount(self, subtotal: Decimal) -> Decimal:
        if self.kind == "percent":
            raw = subtotal * self.value / 100
        elif self.kind == "fixed":
            raw = self.value
        else:
            raise ValueError(f"Unknown discount kind: {self.kind}")
        return min(to_money(raw), subtotal)


DEFAULT_SHIPPING_RATES: Mapping[ShippingMethod, Decimal] = {
    ShippingMethod.STANDARD: Decimal("5.99"),
    ShippingMethod.EXPRESS: Decimal("12.99"),
    ShippingMethod.OVERNIGHT: Decimal("24.99"),
    ShippingMethod.PICKUP: Decimal("0.00"),
}

DEFAULT_DISCOUNT_CODES: Mapping[str, DiscountRule] = {
    "WELCOME10": DiscountRule("percent", Decimal("10")),
    "SAVE20": DiscountRule("percent", Decimal("20")),
    "FREESHIP": DiscountRule("fixed", Decimal("5.99")),
}

# Days until delivery per method, used for estimated_delivery
DELIVERY_DAYS: Mapping[ShippingMethod, int] = {
    ShippingMethod.STANDARD: 5,
    ShippingMethod.EXPRESS: 2,
    ShippingMethod.OVERNIGHT: 1,
    ShippingMethod.PICKUP: 0,
}


@dataclass(frozen=True)
class PriceQuote:
    """Priced components of an order, each rounded to cents."""

    subtotal: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    discount_code: str | None = None


@dataclass(frozen=True)
class PricingPolicy:
    """
    Shipping, tax and discount rules applied at checkout.

    Injected into the order ledger so tests and deployments can substitute
    their own tables.
    """

    shipping_rates: Mapping[ShippingMethod, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_SHIPPING_RATES)
    )
    free_shipping_threshold: Decimal = Decimal("75.00")
    tax_rate: Decimal = Decimal("0.08")
    discount_codes: Mapping[str, DiscountRule] = field(
        default_factory=lambda: dict(DEFAULT_DISCOUNT_CODES)
    )
    reject_unknown_codes: bool = False

    def shipping_cost(self, subtotal: Decimal, method: ShippingMethod) -> Decimal:
        if subtotal >= self.free_shipping_threshold:
            return ZERO
        return to_money(self.shipping_rates[method])

    def resolve_discount(self, code: str | None) -> tuple[str | None, DiscountRule | None]:
        """
        Look up a discount code.

        Returns (normalized_code, rule), or (None, None) when no code was given
        or the code is unknown and unknown codes are ignored.

        Raises:
            ValidationError: If the code is unknown and reject_unknown_codes is set.
        """
        if not code or not code.strip():
            return None, None
        normalized = code.strip().upper()
        rule = self.discount_codes.get(normalized)
        if rule is None:
            if self.reject_unknown_codes:
                raise ValidationError(f"Invalid discount code: {code}")
            logger.info("Ignoring unknown discount code %r", code)
            return None, None
        return normalized, rule

    def quote(
        self,
        subtotal: Decimal,
        shipping_method: ShippingMethod,
        discount_code: str | None = None,
    ) -> PriceQuote:
        """
        Price an order from its subtotal.

        total = subtotal + shipping_cost + tax_amount - discount_amount, using
        the rounded components so the stored parts always add up.
        """
        subtotal = to_money(subtotal)
        shipping = self.shipping_cost(subtotal, shipping_method)
        tax = to_money((subtotal + shipping) * self.tax_rate)

        code, rule = self.resolve_discount(discount_code)
        discount = rule.amount(subtotal) if rule else ZERO

        total = subtotal + shipping + tax - discount
        return PriceQuote(
            subtotal=subtotal,
            shipping_cost=shipping,
            tax_amount=tax,
            discount_amount=discount,
            total=to_money(total),
            discount_code=code,
        )

    @classmethod
    def from_settings(cls, settings) -> "PricingPolicy":
        return cls(reject_unknown_codes=settings.reject_unknown_discount_codes)
