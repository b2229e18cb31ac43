"""Token encryption using Fernet symmetric encryption.

Access and refresh tokens never reach the database in plaintext. A single
key is read from LINKSENSE_ENCRYPTION_KEY.
"""

from typing import Optional

from cryptography.fernet import Fernet


class CredentialEncryption:
    """Fernet encryption for provider tokens.

    Example:
        >>> encryptor = CredentialEncryption(Fernet.generate_key())
        >>> ciphertext = encryptor.encrypt("xoxb-token")
        >>> encryptor.decrypt(ciphertext)
        'xoxb-token'
    """

    def __init__(self, key: bytes) -> None:
        """Initialize encryption with a Fernet key.

        Args:
            key: Fernet encryption key (32 url-safe base64-encoded bytes)
        """
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt a token string to bytes."""
        return self._fernet.encrypt(plaintext.encode())

    def decrypt(self, ciphertext: bytes) -> str:
        """Decrypt token bytes to a string.

        Raises:
            cryptography.fernet.InvalidToken: If the ciphertext was produced with another key
        """
        return self._fernet.decrypt(ciphertext).decode()

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[bytes]:
        """Encrypt a token that may be absent."""
        return self.encrypt(plaintext) if plaintext else None

    def decrypt_optional(self, ciphertext: Optional[bytes]) -> Optional[str]:
        """Decrypt a token that may be absent."""
        return self.decrypt(ciphertext) if ciphertext else None


def generate_encryption_key() -> bytes:
    """Generate a new Fernet encryption key.

    Run once at deployment and store in LINKSENSE_ENCRYPTION_KEY.

    Returns:
        32 url-safe base64-encoded bytes suitable for Fernet encryption
    """
    return Fernet.generate_key()

