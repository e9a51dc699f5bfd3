"""
Phone number and carrier account identifier helpers.
"""
import re

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
ACCOUNT_SID_LENGTH = 34


def normalize_phone_e164(raw_phone: str) -> str:
    """
    Normalize a phone number to E.164 format, assuming North America.

    Rules:
    - 10 digits (e.g. '(555) 123-4567') -> '+1' + digits -> '+15551234567'.
    - 11 digits starting with '1' -> '+' + digits.
    - Already starting with '+' -> returned as-is.
    - Anything else -> '+' + digits.
    """
    if not raw_phone:
        return raw_phone

    phone = raw_phone.strip()
    digits = re.sub(r"\D", "", phone)

    if len(digits) == 10:
        return "+1" + digits

    if len(digits) == 11 and digits.startswith("1"):
        return "+" + digits

    if phone.startswith("+"):
        return phone

    return "+" + digits


def validate_e164(phone: str) -> bool:
    """Check a number is strict E.164: '+', non-zero country digit, at most 15 digits."""
    return bool(phone) and E164_PATTERN.match(phone) is not None


def validate_account_sid(account_sid: str) -> bool:
    """Check a Twilio account SID has the 'AC' prefix and 34 characters."""
    return bool(account_sid) and account_sid.startswith("AC") and len(account_sid) == ACCOUNT_SID_LENGTH


def mask_phone(phone: str, visible_digits: int = 4) -> str:
    """Mask a phone number for logs, keeping the last few digits ('***4567')."""
    if not phone:
        return ""

    digits = re.sub(r"\D", "", phone)
    if len(digits) <= visible_digits:
        return "*" * len(digits)

    return "***" + digits[-visible_digits:]
