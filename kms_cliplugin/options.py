"""
Functional options for signer/verifier calls.

Options are applied in the order given; when two options set the same
field the later one wins. Fields no option touches stay None.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from cryptography.hazmat.primitives import hashes

from .common import HashFunc
from .context import CallContext

RPC_OPTION = "rpc"
MESSAGE_OPTION = "message"


@dataclass(frozen=True)
class SignerOption:
    """A single override of one option field."""

    kind: str
    name: str
    value: Any

    def apply(self, values: "OptionValues") -> None:
        setattr(values, self.name, self.value)


@dataclass
class OptionValues:
    """Accumulated result of applying a sequence of options."""

    context: Optional[CallContext] = None
    key_version: Optional[str] = None
    remote_verification: Optional[bool] = None
    digest: Optional[bytes] = None
    hash_func: Optional[HashFunc] = None

    @property
    def ctx(self) -> CallContext:
        """The context option, or a background context when none was given."""
        return self.context or CallContext.background()


def with_context(ctx: CallContext) -> SignerOption:
    return SignerOption(RPC_OPTION, "context", ctx)


def with_key_version(key_version: str) -> SignerOption:
    return SignerOption(RPC_OPTION, "key_version", key_version)


def with_remote_verification(remote_verification: bool = True) -> SignerOption:
    return SignerOption(RPC_OPTION, "remote_verification", remote_verification)


def with_digest(digest: bytes) -> SignerOption:
    """Sign or verify a precomputed digest instead of hashing the message."""
    return SignerOption(MESSAGE_OPTION, "digest", bytes(digest))


def with_crypto_signer_opts(hash_func: Union[HashFunc, int, hashes.HashAlgorithm]) -> SignerOption:
    """Select the hash function used for signing or verification."""
    return SignerOption(MESSAGE_OPTION, "hash_func", HashFunc.from_algorithm(hash_func))


def resolve_options(opts: Iterable[SignerOption], rpc_only: bool = False) -> OptionValues:
    """
    Apply options in order, last write wins.

    Args:
        opts: Options to apply
        rpc_only: Reject message options (digest, hash function)

    Raises:
        TypeError: If a message option is passed where only RPC options apply
    """
    values = OptionValues()
    for opt in opts:
        if rpc_only and opt.kind != RPC_OPTION:
            raise TypeError(f"{opt.name} is not an RPC option")
        opt.apply(values)
    return values
