"""Billing period arithmetic"""
import calendar
from datetime import datetime


def add_months(value: datetime, months: int = 1) -> datetime:
    """
    Shift a datetime by calendar months

    The day is clamped to the length of the target month, so Jan 31 plus
    one month is Feb 28 (or 29).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
