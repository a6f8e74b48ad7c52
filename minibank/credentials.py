"""
Credential Hashing Module

One-way password hashing with scrypt and a random per-password salt.
Hashes are self-describing byte strings so cost parameters can change
without invalidating stored credentials:

    scrypt$<n>$<r>$<p>$<salt hex>$<digest hex>
"""

import hashlib
import hmac
import secrets


SCHEME = "scrypt"


class CredentialHasher:
    """Hashes and verifies passwords"""

    def __init__(self, n: int = 16384, r: int = 8, p: int = 1, salt_bytes: int = 16):
        self.n = n
        self.r = r
        self.p = p
        self.salt_bytes = salt_bytes

    def _derive(self, password: str, salt: bytes, n: int, r: int, p: int) -> bytes:
        return hashlib.scrypt(
            password.encode(),
            salt=salt,
            n=n, r=r, p=p,
            maxmem=256 * n * r + 1024 * 1024
        )

    def hash(self, password: str) -> bytes:
        """Hash a plaintext password"""
        salt = secrets.token_bytes(self.salt_bytes)
        digest = self._derive(password, salt, self.n, self.r, self.p)
        return f"{SCHEME}${self.n}${self.r}${self.p}${salt.hex()}${digest.hex()}".encode()

    def verify(self, password: str, hashed: bytes) -> bool:
        """
        Check a plaintext password against a stored hash.

        Returns False for a mismatch and for a hash this hasher cannot
        parse; it never raises.
        """
        if not isinstance(password, str):
            return False
        try:
            scheme, n, r, p, salt_hex, digest_hex = bytes(hashed).decode().split("$")
            if scheme != SCHEME:
                return False
            expected = bytes.fromhex(digest_hex)
            actual = self._derive(password, bytes.fromhex(salt_hex), int(n), int(r), int(p))
        except (TypeError, ValueError, OverflowError):
            return False
        return hmac.compare_digest(actual, expected)


default_hasher = CredentialHasher()


def hash_password(password: str) -> bytes:
    return default_hasher.hash(password)


def verify_password(password: str, hashed: bytes) -> bool:
    return default_hasher.verify(password, hashed)
