"""Encryption of provider tokens at rest."""

from linksense.integrations.credentials.encryption import (
    CredentialEncryption,
    generate_encryption_key,
)

__all__ = ["CredentialEncryption", "generate_encryption_key"]
