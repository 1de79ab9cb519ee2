"""AES-256-CBC encryption of single cell values.

Ciphertexts are laid out the way the crypsi ``aes256Cbc`` routines produce
them: a random 16-byte IV followed by the PKCS#7 padded CBC ciphertext, the
whole thing hex encoded. The key string is used as-is (UTF-8 bytes) and must
be exactly 32 bytes long; no key derivation happens here.
"""

import base64
import binascii
import os
import re

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

KEY_SIZE = 32
IV_SIZE = 16
BLOCK_SIZE_BITS = 128

ENCODINGS = ("hex", "base64")

_HEX_PATTERN = re.compile(r"^(?:[0-9a-fA-F]{2})+$")


class DecryptError(ValueError):
    """A value could not be decrypted with the given key."""


def _key_bytes(key):
    if not key:
        raise DecryptError("No encryption key set")
    try:
        key_bytes = key.encode("utf-8")
    except UnicodeEncodeError as e:
        raise DecryptError(f"Key is not encodable as UTF-8: {e}") from e
    if len(key_bytes) != KEY_SIZE:
        raise DecryptError(f"Key must be {KEY_SIZE} bytes for AES-256, got {len(key_bytes)}")
    return key_bytes


def _decode_ciphertext(ciphertext):
    """Turn hex (preferred) or standard base64 text into raw bytes."""
    text = ciphertext.strip()
    try:
        if _HEX_PATTERN.match(text):
            return bytes.fromhex(text)
        return base64.b64decode(text, validate=True)
    except (ValueError, binascii.Error) as e:
        raise DecryptError(f"Ciphertext is neither hex nor base64: {e}") from e


def encrypt_value(key, plaintext, encoding="hex"):
    """
    Encrypt a single string with AES-256-CBC and a fresh random IV.

    Returns the encoded ``IV || ciphertext`` string. Two calls with the same
    input produce different output.
    """
    if encoding not in ENCODINGS:
        raise ValueError(f"Unknown encoding {encoding!r}, expected one of {ENCODINGS}")
    key_bytes = _key_bytes(key)

    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(str(plaintext).encode("utf-8")) + padder.finalize()

    iv = os.urandom(IV_SIZE)
    encryptor = Cipher(algorithms.AES(key_bytes), modes.CBC(iv)).encryptor()
    raw = iv + encryptor.update(padded) + encryptor.finalize()

    if encoding == "base64":
        return base64.b64encode(raw).decode("ascii")
    return raw.hex()


def decrypt_value(key, ciphertext):
    """
    Reverse :func:`encrypt_value`.

    Raises DecryptError for an empty or badly sized key, undecodable text,
    truncated input, bad padding and plaintext that is not valid UTF-8.
    """
    key_bytes = _key_bytes(key)
    raw = _decode_ciphertext(str(ciphertext))

    body_len = len(raw) - IV_SIZE
    if body_len <= 0 or body_len % IV_SIZE:
        raise DecryptError("Ciphertext length is not a whole number of AES blocks")

    iv, body = raw[:IV_SIZE], raw[IV_SIZE:]
    decryptor = Cipher(algorithms.AES(key_bytes), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()

    unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptError("Invalid padding (wrong key?)") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptError("Decrypted bytes are not valid UTF-8 (wrong key?)") from e
