"""
Plugin Handler

Plugin-side counterpart of the PluginClient: rebuilds the request from
process arguments, routes it to a concrete SignerVerifier and writes the
response to stdout.
"""

import logging
from typing import Awaitable, BinaryIO, Callable, Dict, List

from pydantic import ValidationError

from ..common import (
    PROTOCOL_VERSION,
    CreateKeyResp,
    DefaultAlgorithmResp,
    MethodArgs,
    MethodName,
    PluginArgs,
    PluginResp,
    PublicKeyResp,
    SignMessageResp,
    SupportedAlgorithmsResp,
    VerifySignatureResp,
)
from ..context import CallContext
from ..encoding import (
    marshal_public_key_to_pem,
    unpack_public_key_options,
    unpack_sign_options,
    unpack_verify_options,
)
from ..errors import PluginArgsError, ProtocolVersionError
from ..options import resolve_options
from ..signer import SignerVerifier

logger = logging.getLogger(__name__)


def get_plugin_args(argv: List[str]) -> PluginArgs:
    """
    Parse the plugin process arguments.

    Expects ``[program, protocol_version, plugin_args_json]``.

    Raises:
        ProtocolVersionError: If the client speaks another protocol version
        PluginArgsError: If the arguments are missing or malformed
    """
    if len(argv) != 3:
        raise PluginArgsError(
            f"Expected protocol version and plugin args, got {len(argv) - 1} arguments"
        )

    protocol_version = argv[1]
    if protocol_version != PROTOCOL_VERSION:
        raise ProtocolVersionError(
            f"Protocol version mismatch: plugin supports {PROTOCOL_VERSION}, "
            f"client sent {protocol_version!r}"
        )

    try:
        plugin_args = PluginArgs.model_validate_json(argv[2])
    except ValidationError as e:
        raise PluginArgsError(f"Invalid plugin args: {e}") from e

    if plugin_args.init_options.protocol_version != PROTOCOL_VERSION:
        raise ProtocolVersionError(
            f"Protocol version mismatch in init options: "
            f"{plugin_args.init_options.protocol_version!r}"
        )
    return plugin_args


def write_response(stdout: BinaryIO, resp: PluginResp) -> int:
    """Write ``resp`` to ``stdout`` and return the number of bytes written."""
    data = resp.to_json().encode("utf-8")
    stdout.write(data)
    stdout.flush()
    return len(data)


async def _default_algorithm(args: MethodArgs, stdin: BinaryIO, impl: SignerVerifier) -> PluginResp:
    return PluginResp(default_algorithm=DefaultAlgorithmResp(
        default_algorithm=await impl.default_algorithm()
    ))


async def _supported_algorithms(args: MethodArgs, stdin: BinaryIO, impl: SignerVerifier) -> PluginResp:
    return PluginResp(supported_algorithms=SupportedAlgorithmsResp(
        supported_algorithms=await impl.supported_algorithms()
    ))


async def _create_key(args: MethodArgs, stdin: BinaryIO, impl: SignerVerifier) -> PluginResp:
    ctx = CallContext(deadline=args.create_key.ctx_deadline)
    public_key = await ctx.run(impl.create_key(ctx, args.create_key.algorithm))
    return PluginResp(create_key=CreateKeyResp(public_key_pem=marshal_public_key_to_pem(public_key)))


async def _public_key(args: MethodArgs, stdin: BinaryIO, impl: SignerVerifier) -> PluginResp:
    opts = unpack_public_key_options(args.public_key.public_key_options)
    ctx = resolve_options(opts).ctx
    public_key = await ctx.run(impl.public_key(*opts))
    return PluginResp(public_key=PublicKeyResp(public_key_pem=marshal_public_key_to_pem(public_key)))


async def _sign_message(args: MethodArgs, stdin: BinaryIO, impl: SignerVerifier) -> PluginResp:
    opts = unpack_sign_options(args.sign_message.sign_options)
    ctx = resolve_options(opts).ctx
    signature = await ctx.run(impl.sign_message(stdin, *opts))
    return PluginResp(sign_message=SignMessageResp(signature=signature))


async def _verify_signature(args: MethodArgs, stdin: BinaryIO, impl: SignerVerifier) -> PluginResp:
    opts = unpack_verify_options(args.verify_signature.verify_options)
    ctx = resolve_options(opts).ctx
    await ctx.run(impl.verify_signature(args.verify_signature.signature, stdin, *opts))
    return PluginResp(verify_signature=VerifySignatureResp())


MethodHandler = Callable[[MethodArgs, BinaryIO, SignerVerifier], Awaitable[PluginResp]]

METHOD_HANDLERS: Dict[MethodName, MethodHandler] = {
    MethodName.DEFAULT_ALGORITHM: _default_algorithm,
    MethodName.SUPPORTED_ALGORITHMS: _supported_algorithms,
    MethodName.CREATE_KEY: _create_key,
    MethodName.PUBLIC_KEY: _public_key,
    MethodName.SIGN_MESSAGE: _sign_message,
    MethodName.VERIFY_SIGNATURE: _verify_signature,
}


async def dispatch(
    stdout: BinaryIO,
    stdin: BinaryIO,
    plugin_args: PluginArgs,
    impl: SignerVerifier
) -> int:
    """
    Run the requested method on ``impl`` and write the response.

    Errors raised by ``impl`` are written as the response's error message
    instead of propagating, so the plugin can exit cleanly either way.

    Returns:
        Number of bytes written to ``stdout``
    """
    method_name = plugin_args.method_args.method_name
    logger.debug(f"Dispatching {method_name.value}")

    try:
        resp = await METHOD_HANDLERS[method_name](plugin_args.method_args, stdin, impl)
    except Exception as e:
        logger.error(f"{method_name.value} failed: {e}")
        resp = PluginResp(error_message=str(e) or type(e).__name__)

    return write_response(stdout, resp)
