"""
kip - Cryptography Module

Two things live here:
- The password generator used by `kip add` and `kip gen`
- The built-in passphrase cipher (used when `[cipher] backend = passphrase`)

The default cipher is an external command (gpg); see tools.py. The built-in
cipher exists for machines without gpg and for tests.

Built-in cipher file layout:
    MAGIC (4) | salt (16) | nonce (12) | ciphertext + tag

    1. Passphrase + per-file salt -> scrypt -> 32-byte key
    2. Key + random nonce -> AES-256-GCM over the entry plaintext
"""

import os
import json
import secrets
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


# =============================================================================
# Configuration
# =============================================================================

MAGIC = b"KIP1"
KEY_SIZE = 32            # 256-bit key
SALT_SIZE = 16
NONCE_SIZE = 12          # 96-bit nonce for AES-GCM

# scrypt parameters (tuned for ~250ms on modern CPU)
# N = CPU/memory cost (power of 2), r = block size, p = parallelization
SCRYPT_N = 2**17         # 131072 - uses ~16 MB RAM
SCRYPT_R = 8
SCRYPT_P = 1

HEADER_SIZE = len(MAGIC) + SALT_SIZE + NONCE_SIZE


# =============================================================================
# Password Generation
# =============================================================================

def generate_password(charset: str, length: int, rng=None) -> str:
    """
    Generate a random password.

    Each position is an independent uniform pick from `charset` (repeats
    allowed); the picks are then shuffled before joining.

    Args:
        charset: Characters to draw from (any string, duplicates weight a char)
        length: Number of characters; 0 gives ""
        rng: random.Random-like source (default: secrets.SystemRandom())

    Returns:
        Random password string
    """
    if length < 0:
        raise ValueError(f"Password length cannot be negative: {length}")
    if length and not charset:
        raise ValueError("Cannot generate a password from an empty charset")

    # SystemRandom uses os.urandom()
    rng = rng or secrets.SystemRandom()
    chars = [rng.choice(charset) for _ in range(length)]
    rng.shuffle(chars)
    return ''.join(chars)


# =============================================================================
# Key Derivation
# =============================================================================

def derive_key(passphrase: str, salt: bytes, n: int = SCRYPT_N) -> bytes:
    """
    Derive a file key from the passphrase using scrypt.

    Args:
        passphrase: User's passphrase
        salt: 16-byte random salt (stored in the file header, NOT secret)
        n: scrypt cost; only lowered in tests

    Returns:
        32-byte key
    """
    kdf = Scrypt(
        salt=salt,
        length=KEY_SIZE,
        n=n,
        r=SCRYPT_R,
        p=SCRYPT_P,
    )
    return kdf.derive(passphrase.encode('utf-8'))


def canonical_ad(ad: dict) -> bytes:
    """Associated data as compact, key-sorted UTF-8 JSON."""
    json_str = json.dumps(ad, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return json_str.encode('utf-8')


# Binds every ciphertext to this file format and version
ENTRY_AD = canonical_ad({"ctx": "kip_entry", "aead": "aes256gcm", "version": 1})


# =============================================================================
# Encryption (AES-256-GCM)
# =============================================================================

def encrypt(key: bytes, plaintext: bytes, associated_data: bytes = ENTRY_AD) -> Tuple[bytes, bytes]:
    """
    Encrypt with AES-256-GCM.

    Returns:
        (nonce, ciphertext) tuple; ciphertext includes the 16-byte tag
    """
    # Generate random nonce (NEVER reuse with same key!)
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, associated_data)
    return nonce, ciphertext


def decrypt(key: bytes, nonce: bytes, ciphertext: bytes, associated_data: bytes = ENTRY_AD) -> bytes:
    """
    Decrypt AES-256-GCM ciphertext.

    Raises:
        cryptography.exceptions.InvalidTag: If tampered or wrong key
    """
    return AESGCM(key).decrypt(nonce, ciphertext, associated_data)


def seal(passphrase: str, plaintext: bytes, n: int = SCRYPT_N) -> bytes:
    """Encrypt `plaintext` into a self-contained blob (header + ciphertext)."""
    salt = os.urandom(SALT_SIZE)
    key = derive_key(passphrase, salt, n)
    nonce, ciphertext = encrypt(key, plaintext)
    return MAGIC + salt + nonce + ciphertext


def unseal(passphrase: str, blob: bytes, n: int = SCRYPT_N) -> bytes:
    """
    Reverse seal().

    Raises:
        ValueError: If the blob is not a kip file, was tampered with,
            or the passphrase is wrong
    """
    if len(blob) < HEADER_SIZE or not blob.startswith(MAGIC):
        raise ValueError("Not a kip encrypted file")

    salt = blob[len(MAGIC):len(MAGIC) + SALT_SIZE]
    nonce = blob[len(MAGIC) + SALT_SIZE:HEADER_SIZE]
    key = derive_key(passphrase, salt, n)
    try:
        return decrypt(key, nonce, blob[HEADER_SIZE:])
    except InvalidTag:
        raise ValueError("Wrong passphrase or corrupted file")
