"""
Field validators for checkout forms and payment details.
"""
import re
from datetime import date
from typing import Dict, Optional

_PHONE_PATTERNS = (
    re.compile(r"^\+92\d{10}$"),  # Pakistan, international prefix
    re.compile(r"^0\d{10}$"),  # Pakistan, trunk prefix
    re.compile(r"^\+\d{7,15}$"),  # any country code
    re.compile(r"^\d{10,15}$"),  # bare local number
)
_EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")

INVALID_ROUTING_NUMBERS = frozenset({"123456789", "000000000", "111111111", "999999999"})


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def is_valid_phone_number(phone: str) -> bool:
    cleaned = re.sub(r"[^\d+]", "", phone or "")
    return any(pattern.match(cleaned) for pattern in _PHONE_PATTERNS)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.search(email or ""))


def luhn_checksum_ok(number: str) -> bool:
    total = 0
    for index, char in enumerate(reversed(number)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def is_valid_card_number(card_number: str) -> bool:
    """Luhn checksum plus a 13-19 digit length"""
    cleaned = re.sub(r"\s+", "", card_number or "")
    if not cleaned.isdigit():
        return False
    return 13 <= len(cleaned) <= 19 and luhn_checksum_ok(cleaned)


def get_card_type(card_number: str) -> str:
    cleaned = re.sub(r"\s+", "", card_number or "")
    if re.match(r"^4", cleaned):
        return "Visa"
    if re.match(r"^5[1-5]", cleaned):
        return "MasterCard"
    if re.match(r"^3[47]", cleaned):
        return "American Express"
    if re.match(r"^6", cleaned):
        return "Discover"
    return "Unknown"


def format_card_number(value: str) -> str:
    cleaned = digits_only(value)[:19]
    return " ".join(cleaned[i:i + 4] for i in range(0, len(cleaned), 4))


def is_valid_cvv(cvv: str, card_type: str) -> bool:
    cleaned = re.sub(r"\s+", "", cvv or "")
    length = 4 if card_type == "American Express" else 3
    return cleaned.isdigit() and len(cleaned) == length


def is_valid_expiry(month: str, year: str, today: Optional[date] = None) -> bool:
    try:
        exp_month = int(month)
        exp_year = int(year)
    except (TypeError, ValueError):
        return False
    if exp_year < 100:
        exp_year += 2000
    if not 1 <= exp_month <= 12:
        return False
    today = today or date.today()
    return (exp_year, exp_month) >= (today.year, today.month)


def routing_checksum_ok(routing_number: str) -> bool:
    """ABA checksum: 3/7/1 weighted digit sum divisible by 10"""
    if len(routing_number) != 9 or not routing_number.isdigit():
        return False
    d = [int(c) for c in routing_number]
    checksum = 3 * (d[0] + d[3] + d[6]) + 7 * (d[1] + d[4] + d[7]) + (d[2] + d[5] + d[8])
    return checksum % 10 == 0


def validate_account_number(account_number: str) -> Optional[str]:
    """Return an error message, or None when the account number is acceptable"""
    cleaned = re.sub(r"\s+", "", account_number or "")
    if not cleaned:
        return "Account number is required"
    if not cleaned.isdigit():
        return "Account number must contain only digits"
    if len(cleaned) < 8:
        return "Account number must be at least 8 digits"
    if len(cleaned) > 17:
        return "Account number cannot exceed 17 digits"
    if re.fullmatch(r"0+", cleaned):
        return "Invalid account number (all zeros)"
    if re.fullmatch(r"1+|9+", cleaned):
        return "Invalid account number pattern"
    return None


def validate_routing_number(routing_number: str) -> Optional[str]:
    cleaned = re.sub(r"\s+", "", routing_number or "")
    if not cleaned:
        return "Routing number is required"
    if len(cleaned) != 9:
        return "Routing number must be exactly 9 digits"
    if not cleaned.isdigit():
        return "Routing number must contain only digits"
    if cleaned in INVALID_ROUTING_NUMBERS:
        return "Invalid routing number"
    if not routing_checksum_ok(cleaned):
        return "Invalid routing number (checksum failed)"
    return None


def validate_bank_account(account_number: str, routing_number: str) -> Dict[str, str]:
    errors = {}
    account_error = validate_account_number(account_number)
    if account_error:
        errors["account_number"] = account_error
    routing_error = validate_routing_number(routing_number)
    if routing_error:
        errors["routing_number"] = routing_error
    return errors
