"""
Local KMS Plugin

Reference plugin program backed by PEM private keys on disk.
Key resource IDs look like ``localkms:///path/to/key.pem``.

Useful for:
- Development and testing of plugin clients
- Air-gapped environments

Installed as the ``sigstore-kms-localkms`` executable.
"""

import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Tuple

import aiofiles
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa, utils

from .common import HashFunc, InitOptions
from .context import CallContext
from .handler import make_plugin_command
from .options import OptionValues, SignerOption, resolve_options
from .signer import CryptoSignerWrapper, ErrorCallback, Message, SignerVerifier, read_message

logger = logging.getLogger(__name__)

SCHEME = "localkms"

ALGORITHM_ECDSA_P256 = "ecdsa-p256-sha256"
ALGORITHM_ECDSA_P384 = "ecdsa-p384-sha384"
ALGORITHM_ED25519 = "ed25519"
ALGORITHM_RSA_2048 = "rsa-2048-pkcs1v15-sha256"

SUPPORTED_ALGORITHMS = [
    ALGORITHM_ECDSA_P256,
    ALGORITHM_ECDSA_P384,
    ALGORITHM_ED25519,
    ALGORITHM_RSA_2048,
]


class LocalKMSSignerVerifier(SignerVerifier):
    """
    SignerVerifier for a private key stored in a local PEM file.

    Supports ECDSA, Ed25519 and RSA (PKCS#1 v1.5) keys. ECDSA and RSA keys
    can sign precomputed digests; Ed25519 always signs the full message.
    """

    def __init__(self, key_resource_id: str, hash_func: HashFunc = HashFunc.SHA256):
        scheme, sep, key_path = key_resource_id.partition("://")
        if scheme != SCHEME or not sep or not key_path:
            raise ValueError(f"Not a {SCHEME} key resource ID: {key_resource_id!r}")

        self.key_resource_id = key_resource_id
        self.key_path = Path(key_path)
        self.hash_func = hash_func

    async def default_algorithm(self) -> str:
        return ALGORITHM_ECDSA_P256

    async def supported_algorithms(self) -> List[str]:
        return list(SUPPORTED_ALGORITHMS)

    async def create_key(self, ctx: CallContext, algorithm: str) -> Any:
        """Generate the key if it does not exist yet; return its public key."""
        if self.key_path.exists():
            logger.info(f"Key {self.key_path} already exists, not regenerating")
            private_key = await self._load_key()
            return private_key.public_key()

        if algorithm == ALGORITHM_ECDSA_P256:
            private_key = ec.generate_private_key(ec.SECP256R1())
        elif algorithm == ALGORITHM_ECDSA_P384:
            private_key = ec.generate_private_key(ec.SECP384R1())
        elif algorithm == ALGORITHM_ED25519:
            private_key = ed25519.Ed25519PrivateKey.generate()
        elif algorithm == ALGORITHM_RSA_2048:
            private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        else:
            raise ValueError(f"Unsupported algorithm: {algorithm}")

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )

        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.key_path, "wb") as f:
            await f.write(private_pem)
        os.chmod(self.key_path, 0o600)

        logger.info(f"Generated new {algorithm} key at {self.key_path}")
        return private_key.public_key()

    async def public_key(self, *opts: SignerOption) -> Any:
        values = resolve_options(opts, rpc_only=True)
        if values.key_version is not None:
            logger.debug(f"Ignoring key version {values.key_version}: local keys are unversioned")
        private_key = await self._load_key()
        return private_key.public_key()

    async def sign_message(self, message: Message, *opts: SignerOption) -> bytes:
        values = resolve_options(opts)
        private_key = await self._load_key()

        if isinstance(private_key, ed25519.Ed25519PrivateKey):
            if values.digest is not None:
                raise ValueError("Ed25519 keys cannot sign a precomputed digest")
            return private_key.sign(read_message(message))

        data, algorithm = self._signing_input(message, values)
        if isinstance(private_key, ec.EllipticCurvePrivateKey):
            return private_key.sign(data, ec.ECDSA(algorithm))
        if isinstance(private_key, rsa.RSAPrivateKey):
            return private_key.sign(data, padding.PKCS1v15(), algorithm)
        raise ValueError(f"Unsupported key type in {self.key_path}")

    async def verify_signature(self, signature: Message, message: Message, *opts: SignerOption) -> None:
        values = resolve_options(opts)
        public_key = (await self._load_key()).public_key()
        signature_bytes = read_message(signature)

        try:
            if isinstance(public_key, ed25519.Ed25519PublicKey):
                if values.digest is not None:
                    raise ValueError("Ed25519 keys cannot verify a precomputed digest")
                public_key.verify(signature_bytes, read_message(message))
                return

            data, algorithm = self._signing_input(message, values)
            if isinstance(public_key, ec.EllipticCurvePublicKey):
                public_key.verify(signature_bytes, data, ec.ECDSA(algorithm))
            elif isinstance(public_key, rsa.RSAPublicKey):
                public_key.verify(signature_bytes, data, padding.PKCS1v15(), algorithm)
            else:
                raise ValueError(f"Unsupported key type in {self.key_path}")
        except InvalidSignature as e:
            raise ValueError("Invalid signature") from e

    def crypto_signer(
        self,
        ctx: CallContext,
        err_func: Optional[ErrorCallback] = None
    ) -> Tuple[CryptoSignerWrapper, HashFunc]:
        err = ctx.err()
        if err is not None:
            raise err
        return CryptoSignerWrapper(ctx, self, self.hash_func, err_func), self.hash_func

    def _signing_input(self, message: Message, values: OptionValues) -> Tuple[bytes, Any]:
        """Data to sign and the matching hash algorithm (prehashed for digests)."""
        algorithm = (values.hash_func or self.hash_func).algorithm()
        if values.digest is not None:
            return values.digest, utils.Prehashed(algorithm)
        return read_message(message), algorithm

    async def _load_key(self) -> Any:
        """Load private key from file."""
        if not self.key_path.exists():
            raise FileNotFoundError(f"Signing key not found: {self.key_path}")

        async with aiofiles.open(self.key_path, "rb") as f:
            key_data = await f.read()

        return serialization.load_pem_private_key(key_data, password=None)


def _new_signer_verifier(init_options: InitOptions) -> LocalKMSSignerVerifier:
    return LocalKMSSignerVerifier(init_options.key_resource_id, init_options.hash_func)


main = make_plugin_command(_new_signer_verifier, name=f"sigstore-kms-{SCHEME}")


if __name__ == "__main__":
    main()
