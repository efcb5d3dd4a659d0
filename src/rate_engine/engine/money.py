"""Fixed-point helpers shared by every pricing step."""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional

D = Decimal

ZERO = D("0")
ONE = D("1")
HUNDRED = D("100")
FOUR_PLACES = D("0.0001")


def q4(value: D) -> D:
    """Quantize to 4 decimal places."""
    return value.quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


def clamp(value: D, minimum: Optional[D] = None, maximum: Optional[D] = None) -> D:
    """Clamp to [minimum, maximum]; either bound may be missing."""
    if minimum is not None:
        value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


def percent_of(amount: D, rate: D) -> D:
    return amount * rate / HUNDRED


def to_decimal(value, field_name: str = "value") -> D:
    """Convert a JSON/CSV scalar to Decimal, going through str to avoid float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field_name} must be a number, got {value!r}")
    try:
        return D(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{field_name} must be a number, got {value!r}") from None


def to_optional_decimal(value, field_name: str = "value") -> Optional[D]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return to_decimal(value, field_name)
