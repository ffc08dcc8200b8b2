"""
Field checks shared by the order and checkout schemas
"""
import math
import re
from typing import Optional

PHONE_PATTERN = re.compile(r"^\+?[0-9]{10,15}$")
MIN_ADDRESS_LENGTH = 5


def normalize_phone(value: str) -> str:
    cleaned = re.sub(r"[\s\-()]", "", value or "")
    if not PHONE_PATTERN.match(cleaned):
        raise ValueError("Phone number must contain 10 to 15 digits")
    return cleaned


def normalize_address(value: str) -> str:
    cleaned = " ".join((value or "").split())
    if len(cleaned) < MIN_ADDRESS_LENGTH:
        raise ValueError(f"Address must be at least {MIN_ADDRESS_LENGTH} characters")
    return cleaned


def valid_coordinates(lat: Optional[float], lng: Optional[float]) -> bool:
    if lat is None or lng is None:
        return False
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lng):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180
