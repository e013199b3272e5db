import re
from typing import Optional, Tuple


def normalize_indian_mobile(phone: str) -> str:
    """
    Reduce an Indian mobile number to its 10 significant digits.

    Handles formats like:
    - 9876543210 -> 9876543210
    - +919876543210 -> 9876543210
    - 09876543210 -> 9876543210
    - 91 98765 43210 -> 9876543210
    """
    digits = re.sub(r'\D', '', phone or "")

    if len(digits) == 12 and digits.startswith('91'):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith('0'):
        digits = digits[1:]

    return digits


def validate_indian_mobile(phone: str) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Validate an Indian mobile number.

    Returns: (is_valid, normalized_phone, error_message)
    """
    if not phone:
        return False, None, "Phone number is required"

    digits = normalize_indian_mobile(phone)

    if not re.fullmatch(r'[6-9]\d{9}', digits):
        return False, None, "Please provide a valid Indian phone number"

    return True, digits, None


def format_e164_india(phone: str) -> str:
    """Format a mobile number with the +91 country code for SMS gateways"""
    if phone.startswith('+'):
        return phone
    digits = normalize_indian_mobile(phone)
    return f"+91{digits}"


def validate_pincode(pincode: str) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Validate an Indian postal code (6 digits, first digit 1-9).

    Returns: (is_valid, formatted_pincode, error_message)
    """
    if not pincode:
        return False, None, "Pincode is required"

    cleaned = re.sub(r'\s', '', str(pincode))
    if not re.fullmatch(r'[1-9]\d{5}', cleaned):
        return False, None, "Valid pincode is required"

    return True, cleaned, None
