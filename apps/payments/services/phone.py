"""Phone number normalisation for M-Pesa."""

import re

from .exceptions import InvalidPaymentRequestError

# Safaricom subscriber numbers: 2547XXXXXXXX and 2541XXXXXXXX
_MSISDN_RE = re.compile(r'^254[17]\d{8}$')


def normalize_phone_number(phone_number) -> str:
    """
    Return a phone number as ``254XXXXXXXXX``.

    Accepts ``07..``, ``01..``, ``7..``, ``+254..`` and ``254..`` forms
    with spaces or dashes.

    Raises:
        InvalidPaymentRequestError: If the number is not a Kenyan mobile number
    """
    digits = re.sub(r'[\s\-()]', '', str(phone_number or ''))
    if digits.startswith('+'):
        digits = digits[1:]

    if digits.startswith('0') and len(digits) == 10:
        digits = '254' + digits[1:]
    elif len(digits) == 9 and digits[0] in '17':
        digits = '254' + digits

    if not _MSISDN_RE.match(digits):
        raise InvalidPaymentRequestError(f"Invalid phone number: {phone_number}")
    return digits
