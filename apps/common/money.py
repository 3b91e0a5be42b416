from decimal import Decimal

CENT = Decimal("0.01")


def from_cents(cents):
    return (Decimal(int(cents)) / 100).quantize(CENT)


def format_cents(cents):
    return str(from_cents(cents))
