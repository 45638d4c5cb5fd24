from decimal import Decimal, InvalidOperation
from typing import Optional

from utils.errors import ValidationError

MIN_SCORE = Decimal("0")
MAX_SCORE = Decimal("10")
MAX_DECIMALS = 2


def _check_decimal(value: Decimal, raw) -> Decimal:
    if not value.is_finite():
        raise ValidationError(f"Score {raw!r} is not a number")
    if value < MIN_SCORE or value > MAX_SCORE:
        raise ValidationError(f"Score {raw!r} must be between 0 and 10")
    if value.as_tuple().exponent < -MAX_DECIMALS:
        raise ValidationError(
            f"Score {raw!r} has more than {MAX_DECIMALS} decimal places"
        )
    return value


def parse_score_input(value) -> Optional[float]:
    """Validate a grid input string.

    "" (or None) means no score yet and maps to None. Anything else must parse
    to a number in [0, 10] with at most two decimals, otherwise ValidationError.
    """
    if value is None:
        return None
    text = str(value).strip()
    if text == "":
        return None
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"Score {value!r} is not a number")
    return float(_check_decimal(parsed, value))


def validate_score_value(value) -> Optional[float]:
    """Validate a score already sent as a JSON number (or null) to the store."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(f"Score {value!r} must be a number or null")
    if isinstance(value, str):
        return parse_score_input(value)
    # repr keeps the shortest round-tripping form, so 7.25 stays two decimals
    return float(_check_decimal(Decimal(repr(float(value))), value))


def convert_scale_to_10(score) -> float:
    """Scores above 10 are treated as percentages and scaled down."""
    try:
        num = float(score or 0)
    except (TypeError, ValueError):
        return 0.0
    if num > 10:
        return num / 10
    return num


def format_score(score, decimals: int = 1) -> str:
    return f"{convert_scale_to_10(score):.{decimals}f}"

