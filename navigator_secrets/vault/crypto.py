"""
Vault Crypto Core — Keyed digest that names and authenticates a secret.

The identifier of every secret is the hex encoding of a 16-byte keyed
BLAKE2s digest computed by the client over the stored fields:

    id = hex(BLAKE2s(salt || nonce || ciphertext, key=pepper, digest_size=16))

The pepper is a fixed, deployment-wide key used for domain separation only.

Security Note:
    Never log salt, nonce or ciphertext values. Comparisons against the
    claimed identifier are constant-time.
"""
import hashlib
import logging

from cryptography.hazmat.primitives import constant_time

logger = logging.getLogger("navigator.secrets")

DIGEST_SIZE = 16  # 128-bit output
ID_LENGTH = DIGEST_SIZE * 2  # hex encoded


class IntegrityVerifier:
    """Computes and checks the keyed digest of a secret payload."""

    def __init__(self, pepper: str):
        self._key = pepper.encode("utf-8")

    def compute_digest(self, salt: str, nonce: str, ciphertext: str) -> bytes:
        """Return the 16-byte keyed digest of ``salt + nonce + ciphertext``.

        Args:
            salt: Client key-derivation salt.
            nonce: Client encryption nonce.
            ciphertext: Client ciphertext.

        Returns:
            Raw digest bytes.
        """
        h = hashlib.blake2s(digest_size=DIGEST_SIZE, key=self._key)
        for part in (salt, nonce, ciphertext):
            h.update(part.encode("utf-8"))
        return h.digest()

    def hexdigest(self, salt: str, nonce: str, ciphertext: str) -> str:
        """Hex encoding of :meth:`compute_digest`, the expected identifier."""
        return self.compute_digest(salt, nonce, ciphertext).hex()

    def verify(
        self, claimed_id: str, salt: str, nonce: str, ciphertext: str
    ) -> bool:
        """Check that ``claimed_id`` is the digest of the payload.

        Args:
            claimed_id: Identifier the payload is (or will be) filed under.
            salt: Client key-derivation salt.
            nonce: Client encryption nonce.
            ciphertext: Client ciphertext.

        Returns:
            True if the identifier matches, False otherwise.
        """
        expected = self.hexdigest(salt, nonce, ciphertext).encode("ascii")
        try:
            claimed = claimed_id.encode("ascii")
        except UnicodeEncodeError:
            return False
        if constant_time.bytes_eq(expected, claimed):
            return True
        logger.warning("Digest mismatch for id=%s", claimed_id)
        return False
