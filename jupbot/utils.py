# jupbot/utils.py
import math
from datetime import datetime


def to_base_units(amount: float, decimals: int) -> int:
    """UI amount -> integer base units, rounded down."""
    return math.floor(amount * (10 ** decimals))


def from_base_units(amount: int, decimals: int) -> float:
    return amount / (10 ** decimals)


def safe_div(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator


def round_to_decimal(num: float, decimal_places: int) -> float:
    factor = 10 ** decimal_places
    return round(num * factor) / factor


def format_date(date: datetime) -> str:
    return date.strftime('%Y-%m-%d %H:%M:%S')


def format_time_difference(start: float, end: float) -> str:
    """Both arguments are epoch seconds."""
    difference = int(abs(end - start))
    days, difference = divmod(difference, 86400)
    hours, difference = divmod(difference, 3600)
    minutes, seconds = divmod(difference, 60)
    return f"{days} days {hours} hours {minutes} minutes {seconds} seconds"
