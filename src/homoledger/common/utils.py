from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional, Union

from homoledger import config

Amount = Union[int, float, Decimal, str]


def serialize_int(value: Optional[int]) -> Optional[str]:
    """Converts an arbitrary-precision integer into a decimal string for JSON.

    Ciphertexts and moduli routinely exceed the range of 64-bit integers and of
    JSON number parsers, so they travel as base-10 strings.

    Args:
        value: The integer to serialize.

    Returns:
        The decimal string, or None if the input is None.
    """
    if value is None:
        return None
    return str(int(value))


def deserialize_int(data: Union[str, int, None]) -> Optional[int]:
    """Parses a decimal string produced by serialize_int back into an int.

    Plain ints are accepted as-is so hand-written JSON stays usable.
    """
    if data is None:
        return None
    if isinstance(data, bool):
        raise ValueError("Booleans are not valid integers")
    if isinstance(data, int):
        return data
    if not isinstance(data, str) or not data.strip().lstrip("-").isdigit():
        raise ValueError(f"Not a decimal integer string: {data!r}")
    return int(data.strip())


def serialize_int_list(values) -> List[str]:
    return [serialize_int(v) for v in values]


def to_minor_units(amount: Amount) -> int:
    """Converts a currency amount into integer minor units (cents), rounding half up.

    Floats go through their shortest repr so 0.1 + 0.2 style noise does not
    leak into the cents value.

    Raises:
        ValueError: the amount is negative or not a number.
    """
    if isinstance(amount, bool):
        raise ValueError("Amount must be numeric, got bool")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Amount is not a decimal number: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Amount must be finite: {amount!r}")
    if value < 0:
        raise ValueError(f"Amount must not be negative: {amount!r}")
    minor = (value * config.MINOR_UNITS_PER_MAJOR).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return int(minor)


def from_minor_units(minor: int) -> Decimal:
    """Inverse of to_minor_units for display: 150000 -> Decimal('1500.00')."""
    places = len(str(config.MINOR_UNITS_PER_MAJOR)) - 1
    return (Decimal(minor) / config.MINOR_UNITS_PER_MAJOR).quantize(
        Decimal(1).scaleb(-places)
    )
