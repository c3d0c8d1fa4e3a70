"""Card data validation (PAN cleaning, Luhn, brand detection, masking)."""
from .validator import (
    CardBrand,
    clean,
    is_valid_length,
    luhn_check,
    is_valid,
    detect_brand,
    mask,
    extract_bin,
    extract_last_four,
    card_fingerprint,
)

__all__ = [
    "CardBrand",
    "clean",
    "is_valid_length",
    "luhn_check",
    "is_valid",
    "detect_brand",
    "mask",
    "extract_bin",
    "extract_last_four",
    "card_fingerprint",
]
