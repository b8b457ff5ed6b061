"""
Account identity derivation.

Maps a customer email to the opaque account identifier used for quota
lookups, so a payment event lands on the same account a client queries
without any explicit account creation step.
"""

HASH_SEED = 5381
_MASK_32 = 0xFFFFFFFF
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _utf16_code_units(text: str):
    """Yield UTF-16 code units, so astral characters count as two surrogates."""
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def normalize_email(email) -> str:
    """Strip surrounding whitespace and lowercase."""
    return str(email).strip().lower()


def email_hash(email) -> int:
    """Unsigned 32-bit djb2-xor hash of the normalized email.

    ``h = ((h * 33) mod 2**32) XOR code`` over the character codes,
    seeded with 5381.
    """
    h = HASH_SEED
    for code in _utf16_code_units(normalize_email(email)):
        h = ((h * 33) & _MASK_32) ^ code
    return h & _MASK_32


def resolve_account_id(email) -> str:
    """Derive the account identifier for an email address.

    Total and deterministic: any input, including an empty string or a
    non-ASCII address, maps to some ``u<base36>`` identifier.

    Args:
        email: Customer email, in any case and with any surrounding whitespace

    Returns:
        ``"u"`` followed by the base-36 encoding of the hash
    """
    return "u" + _to_base36(email_hash(email))
