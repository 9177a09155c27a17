"""
Tax calculator: base amount + tax configuration -> breakdown.
calculate_taxes is pure; load_tax_config reads TaxSettings and active Tax rows.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Tuple

from core.exceptions import InvalidAmount

TWOPLACES = Decimal('0.01')
ZERO = Decimal('0.00')


def money(value) -> Decimal:
    """Quantize to currency precision (0.01, half-up)."""
    if value is None or value == '':
        return ZERO
    return Decimal(str(value)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TaxConfig:
    gst_percentage: Decimal = ZERO
    service_tax_percentage: Decimal = ZERO
    other_taxes: Tuple[Tuple[str, Decimal], ...] = ()
    tax_enabled: bool = False


@dataclass(frozen=True)
class TaxLine:
    name: str
    percentage: Decimal
    amount: Decimal


@dataclass(frozen=True)
class TaxBreakdown:
    base_amount: Decimal
    gst_amount: Decimal = ZERO
    service_tax_amount: Decimal = ZERO
    other_tax_amount: Decimal = ZERO
    total_tax_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    taxes: List[TaxLine] = field(default_factory=list)

    def as_dict(self):
        return {
            'base_amount': self.base_amount,
            'gst_amount': self.gst_amount,
            'service_tax_amount': self.service_tax_amount,
            'other_tax_amount': self.other_tax_amount,
            'total_tax_amount': self.total_tax_amount,
            'total_amount': self.total_amount,
            'taxes': [{'name': t.name, 'percentage': t.percentage, 'amount': t.amount} for t in self.taxes],
        }


def _percent_of(base: Decimal, percentage) -> Decimal:
    percentage = Decimal(str(percentage))
    if percentage < 0:
        raise InvalidAmount(f'Tax percentage cannot be negative ({percentage}).')
    return money(base * percentage / Decimal('100'))


def calculate_taxes(base_amount, config: TaxConfig) -> TaxBreakdown:
    """
    Each tax is base * percentage / 100; total = base + all taxes.
    Disabled config -> zero taxes and total == base. Negative input -> InvalidAmount.
    """
    base = money(base_amount)
    if base < 0:
        raise InvalidAmount(f'Base amount cannot be negative ({base}).')
    if not config.tax_enabled:
        return TaxBreakdown(base_amount=base, total_amount=base)

    lines = []
    gst = _percent_of(base, config.gst_percentage)
    if gst:
        lines.append(TaxLine('GST', Decimal(str(config.gst_percentage)), gst))
    service = _percent_of(base, config.service_tax_percentage)
    if service:
        lines.append(TaxLine('Service Tax', Decimal(str(config.service_tax_percentage)), service))
    other = ZERO
    for name, percentage in config.other_taxes:
        amount = _percent_of(base, percentage)
        other += amount
        if amount:
            lines.append(TaxLine(name, Decimal(str(percentage)), amount))
    total_tax = gst + service + other
    return TaxBreakdown(
        base_amount=base,
        gst_amount=gst,
        service_tax_amount=service,
        other_tax_amount=other,
        total_tax_amount=total_tax,
        total_amount=base + total_tax,
        taxes=lines,
    )


def load_tax_config() -> TaxConfig:
    """Current configuration from the database; disabled when never configured."""
    from finance.models import TaxSettings, Tax
    row = TaxSettings.objects.filter(pk=1).first()
    if row is None:
        return TaxConfig()
    others = tuple(Tax.objects.filter(is_active=True).values_list('name', 'percentage'))
    return TaxConfig(
        gst_percentage=row.gst_percentage,
        service_tax_percentage=row.service_tax_percentage,
        other_taxes=others,
        tax_enabled=row.tax_enabled,
    )
