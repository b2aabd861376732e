"""
WhatsApp click-to-chat links for sending sign requests to a boss.
"""

import re
from urllib.parse import quote

WA_BASE_URL = 'https://wa.me'


def format_phone_number(phone_number: str, country_code: str = '60') -> str:
    """
    Normalize a phone number to international format (+<digits>).
    Local numbers (leading 0, or no country code) get country_code.
    """
    cleaned = re.sub(r'\D', '', phone_number)

    if cleaned.startswith('0'):
        cleaned = country_code + cleaned[1:]

    if not cleaned.startswith(country_code):
        cleaned = country_code + cleaned

    return '+' + cleaned


def default_message(staff_name: str, shareable_link: str) -> str:
    return (
        f"Hello! {staff_name} has sent you a document to sign.\n\n"
        f"Please click the link below to review and sign:\n{shareable_link}\n\n"
        "Thank you!"
    )


def generate_link(phone_number: str, message: str) -> str:
    """wa.me link with a prefilled message."""
    clean_phone = re.sub(r'[+\s]', '', phone_number)
    # Same escaping as encodeURIComponent
    encoded_message = quote(message, safe="-_.!~*'()")
    return f"{WA_BASE_URL}/{clean_phone}?text={encoded_message}"
