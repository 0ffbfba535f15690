# orgpark/services/penalty_calculator.py
"""
Penalty Calculator: overstay duration and money, no I/O.

Policy: any overstay past the grace period is billed per started hour at
hourly_rate × PENALTY_RATE_MULTIPLIER. Free member bookings pay overstay too
unless MEMBER_OVERSTAY_PENALTY is switched off.
"""

import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from orgpark.config import settings

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def overstay_minutes(booking_end_time: datetime, exit_time: datetime) -> int:
    """Minutes past the booked end, rounded up. 0 when the exit is on time."""
    if exit_time <= booking_end_time:
        return 0
    return math.ceil((exit_time - booking_end_time).total_seconds() / 60)


def billed_hours(minutes: int) -> int:
    return math.ceil(minutes / 60) if minutes > 0 else 0


def penalty(overstay_minutes: int, hourly_rate, grace_minutes: int = None,
            rate_multiplier: float = None) -> Decimal:
    """Penalty for an overstay. Monotonic in overstay_minutes for a fixed rate."""
    grace = settings.OVERSTAY_GRACE_MINUTES if grace_minutes is None else grace_minutes
    multiplier = settings.PENALTY_RATE_MULTIPLIER if rate_multiplier is None else rate_multiplier
    if overstay_minutes <= grace:
        return to_money(0)
    hours = billed_hours(overstay_minutes)
    return to_money(Decimal(hours) * Decimal(str(hourly_rate)) * Decimal(str(multiplier)))


def penalty_for_booking(booking, exit_time: datetime, hourly_rate=None) -> tuple:
    """(overstay_minutes, penalty_amount) for a booking leaving at exit_time."""
    minutes = overstay_minutes(booking.booking_end_time, exit_time)
    if booking.is_member_booking and not settings.MEMBER_OVERSTAY_PENALTY:
        return minutes, to_money(0)
    rate = booking.hourly_rate if hourly_rate is None else hourly_rate
    return minutes, penalty(minutes, rate)
