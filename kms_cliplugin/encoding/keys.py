"""PEM encoding of public keys carried in plugin responses."""

from typing import Any

from cryptography.hazmat.primitives import serialization


def marshal_public_key_to_pem(public_key: Any) -> bytes:
    """Encode a ``cryptography`` public key as SubjectPublicKeyInfo PEM."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )


def unmarshal_pem_to_public_key(pem: bytes) -> Any:
    """
    Decode a PEM public key.

    Raises:
        ValueError: If the data is not a PEM encoded public key
    """
    return serialization.load_pem_public_key(pem)
