"""
Signer/Verifier Capability Set

Defines the interface every key-management backend implements, both the
PluginClient on the host side and the concrete implementations plugin
programs dispatch to.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Callable, List, Optional, Tuple, Union

from cryptography.hazmat.primitives import hashes

from .common import HashFunc
from .context import CallContext
from .options import SignerOption, with_context, with_crypto_signer_opts, with_digest

logger = logging.getLogger(__name__)

# Raw bytes or a readable binary stream.
Message = Union[bytes, BinaryIO]

ErrorCallback = Callable[[Exception], None]


def read_message(message: Message) -> bytes:
    """Read all bytes from ``message``."""
    if isinstance(message, (bytes, bytearray, memoryview)):
        return bytes(message)
    return message.read()


class SignerVerifier(ABC):
    """
    Abstract signer/verifier.

    Public keys are ``cryptography`` public key objects. Failures are
    raised as exceptions.
    """

    @abstractmethod
    async def default_algorithm(self) -> str:
        """Algorithm used when the caller does not choose one."""
        pass

    @abstractmethod
    async def supported_algorithms(self) -> List[str]:
        """Algorithms this backend can create keys for."""
        pass

    @abstractmethod
    async def create_key(self, ctx: CallContext, algorithm: str) -> Any:
        """Create the key and return its public key."""
        pass

    @abstractmethod
    async def public_key(self, *opts: SignerOption) -> Any:
        """Public key of the bound key resource."""
        pass

    @abstractmethod
    async def sign_message(self, message: Message, *opts: SignerOption) -> bytes:
        """Sign ``message`` (or the digest given via ``with_digest``)."""
        pass

    @abstractmethod
    async def verify_signature(self, signature: Message, message: Message, *opts: SignerOption) -> None:
        """
        Verify ``signature`` over ``message``.

        Raises:
            Exception: If the signature does not verify
        """
        pass

    @abstractmethod
    def crypto_signer(
        self,
        ctx: CallContext,
        err_func: Optional[ErrorCallback] = None
    ) -> Tuple["CryptoSignerWrapper", HashFunc]:
        """Generic signer built on this SignerVerifier, plus its hash function."""
        pass


class CryptoSignerWrapper:
    """
    Generic signer composed from a SignerVerifier's public_key and
    sign_message.
    """

    def __init__(
        self,
        ctx: CallContext,
        signer_verifier: SignerVerifier,
        hash_func: HashFunc,
        err_func: Optional[ErrorCallback] = None
    ):
        self.ctx = ctx
        self.signer_verifier = signer_verifier
        self.hash_func = hash_func
        self.err_func = err_func

    async def public(self) -> Optional[Any]:
        """Public key, or None after reporting the failure to ``err_func``."""
        try:
            return await self.signer_verifier.public_key(with_context(self.ctx))
        except Exception as e:
            logger.warning(f"Could not fetch public key: {e}")
            if self.err_func is not None:
                self.err_func(e)
            return None

    async def sign(
        self,
        digest: bytes,
        hash_func: Optional[Union[HashFunc, hashes.HashAlgorithm]] = None
    ) -> bytes:
        """Sign a precomputed digest."""
        return await self.signer_verifier.sign_message(
            b"",
            with_context(self.ctx),
            with_digest(digest),
            with_crypto_signer_opts(hash_func if hash_func is not None else self.hash_func),
        )
