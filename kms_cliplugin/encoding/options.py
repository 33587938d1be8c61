"""
Option Codec

Converts functional options into the protocol's option bags and back.
The client packs before sending; the handler unpacks before calling the
implementation, so implementations see the same option interface they
would if called directly.
"""

from typing import Iterable, List

from ..common import (
    MessageOptions,
    PublicKeyOptions,
    RPCOptions,
    SignOptions,
    VerifyOptions,
)
from ..context import CallContext
from ..options import (
    OptionValues,
    SignerOption,
    resolve_options,
    with_context,
    with_crypto_signer_opts,
    with_digest,
    with_key_version,
    with_remote_verification,
)


def _rpc_fields(values: OptionValues) -> dict:
    return {
        "ctx_deadline": values.context.deadline if values.context else None,
        "key_version": values.key_version,
        "remote_verification": values.remote_verification,
    }


def _message_fields(values: OptionValues) -> dict:
    return {
        "digest": values.digest,
        "hash_func": values.hash_func,
    }


def pack_rpc_options(opts: Iterable[SignerOption]) -> RPCOptions:
    return RPCOptions(**_rpc_fields(resolve_options(opts, rpc_only=True)))


def pack_message_options(opts: Iterable[SignerOption]) -> MessageOptions:
    return MessageOptions(**_message_fields(resolve_options(opts)))


def pack_public_key_options(opts: Iterable[SignerOption]) -> PublicKeyOptions:
    return PublicKeyOptions(**_rpc_fields(resolve_options(opts, rpc_only=True)))


def pack_sign_options(opts: Iterable[SignerOption]) -> SignOptions:
    values = resolve_options(opts)
    return SignOptions(**_rpc_fields(values), **_message_fields(values))


def pack_verify_options(opts: Iterable[SignerOption]) -> VerifyOptions:
    values = resolve_options(opts)
    return VerifyOptions(**_rpc_fields(values), **_message_fields(values))


def unpack_rpc_options(bag: RPCOptions) -> List[SignerOption]:
    """
    Rebuild RPC options from a bag.

    A serialized deadline becomes a fresh CallContext bound to it; with no
    deadline no context option is produced and the callee runs unbounded.
    """
    opts: List[SignerOption] = []
    if bag.ctx_deadline is not None:
        opts.append(with_context(CallContext(deadline=bag.ctx_deadline)))
    if bag.key_version is not None:
        opts.append(with_key_version(bag.key_version))
    if bag.remote_verification is not None:
        opts.append(with_remote_verification(bag.remote_verification))
    return opts


def unpack_message_options(bag: MessageOptions) -> List[SignerOption]:
    opts: List[SignerOption] = []
    if bag.digest is not None:
        opts.append(with_digest(bag.digest))
    if bag.hash_func is not None:
        opts.append(with_crypto_signer_opts(bag.hash_func))
    return opts


def unpack_public_key_options(bag: PublicKeyOptions) -> List[SignerOption]:
    return unpack_rpc_options(bag)


def unpack_sign_options(bag: SignOptions) -> List[SignerOption]:
    return unpack_rpc_options(bag) + unpack_message_options(bag)


def unpack_verify_options(bag: VerifyOptions) -> List[SignerOption]:
    return unpack_rpc_options(bag) + unpack_message_options(bag)
