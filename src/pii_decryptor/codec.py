"""Turn a raw cell value into the string shown on screen or written on export."""

import asyncio
import logging
import math
from datetime import date, datetime, time

from pii_decryptor.cipher import DecryptError, decrypt_value

logger = logging.getLogger(__name__)


def stringify(value):
    """
    Canonical string form of a cell value.

    Numbers are rendered in plain decimal form without locale formatting;
    whole floats drop their fraction so ``1.0`` reads the same as ``1``.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def resolve_value(value, is_encrypted, key):
    """
    Display/export string for one cell.

    Encrypted columns are decrypted with ``key``. A value that cannot be
    decrypted (no key, wrong key, not a ciphertext) comes back unchanged.
    """
    if value is None:
        return ""
    text = stringify(value)
    if not is_encrypted:
        return text

    try:
        return decrypt_value(key, text)
    except DecryptError as e:
        logger.debug("Decrypt fallback for %.24r: %s", text, e)
        return text


async def resolve(value, is_encrypted, key):
    """Async form of :func:`resolve_value`; decryption runs in a worker thread."""
    if value is None or not is_encrypted:
        return resolve_value(value, False, key)
    return await asyncio.to_thread(resolve_value, value, True, key)
