from __future__ import annotations

from decimal import Decimal, InvalidOperation

from brewops.errors import ValidationError

VOLUME_TOLERANCE = Decimal('0.01')


def parse_decimal(raw_value: object, *, field: str) -> Decimal:
    if raw_value is None or isinstance(raw_value, bool) or (isinstance(raw_value, str) and not raw_value.strip()):
        raise ValidationError(f'{field} is required')
    try:
        value = Decimal(str(raw_value).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f'{field} must be a number') from exc
    if not value.is_finite():
        raise ValidationError(f'{field} must be a number')
    return value


def parse_optional_decimal(raw_value: object, *, field: str) -> Decimal | None:
    if raw_value is None or (isinstance(raw_value, str) and not raw_value.strip()):
        return None
    return parse_decimal(raw_value, field=field)


def format_quantity(value: Decimal | int | float) -> str:
    # 40.0000 -> "40", 4.7330 -> "4.733"
    normalized = Decimal(str(value)).normalize()
    return f'{normalized:f}'


def format_barrels(value: Decimal) -> str:
    return f'{value.quantize(Decimal("0.001")):f}'
