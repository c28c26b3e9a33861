"""Conversions between decimal display strings and integer minor units.

Amounts are accumulated as integers in minor units (wei) everywhere inside
tipstream. Decimal strings exist only at the display boundary.
"""

from decimal import Decimal, InvalidOperation, localcontext

NATIVE_DECIMALS = 18


def to_minor_units(value: str | int | Decimal, decimals: int = NATIVE_DECIMALS) -> int:
    """Convert a display amount (e.g. ``"1.5"``) into minor units.

    Args:
        value: Decimal string, integer or Decimal in whole units.
        decimals: Number of decimals of the asset.

    Returns:
        The exact amount in minor units.

    Raises:
        ValueError: If the value is not a number, is negative, or has more
            fractional digits than the asset supports.

    Examples:
        >>> to_minor_units("1.5")
        1500000000000000000
        >>> to_minor_units("0.000000000000000001")
        1
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except InvalidOperation as err:
        raise ValueError(f"Invalid amount: {value!r}") from err

    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise ValueError(f"Amount must not be negative: {value!r}")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {value!r} has more than {decimals} decimal places")
        return int(scaled)


def format_minor_units(amount: int, decimals: int = NATIVE_DECIMALS) -> str:
    """Render minor units as a plain decimal string without trailing zeros.

    Examples:
        >>> format_minor_units(1500000000000000000)
        '1.5'
        >>> format_minor_units(0)
        '0'
    """
    if amount < 0:
        raise ValueError(f"Amount must not be negative: {amount!r}")
    whole, fraction = divmod(amount, 10**decimals)
    if fraction == 0:
        return str(whole)
    digits = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{digits}"
