# orgpark/utils/validators.py
"""Input normalisation shared by booking and walk-in flows."""

import re

from orgpark.utils.exceptions import InvalidVehicleNumber

_GENERIC_PLATE = re.compile(r"^[A-Z0-9]{6,10}$")
_INDIAN_PLATE = re.compile(r"^[A-Z]{2}[0-9]{1,2}[A-Z]{1,3}[0-9]{4}$")


def normalize_vehicle_number(vehicle_number: str) -> str:
    """
    Strip whitespace and upper-case a registration number.
    Accepts KA01AB1234-style plates and generic 6-10 character alphanumerics.
    """
    if not vehicle_number:
        raise InvalidVehicleNumber("Vehicle number is required.")
    cleaned = re.sub(r"\s+", "", vehicle_number).upper()
    if not (_GENERIC_PLATE.match(cleaned) or _INDIAN_PLATE.match(cleaned)):
        raise InvalidVehicleNumber(f"Vehicle number '{vehicle_number}' is not a valid registration.")
    return cleaned
