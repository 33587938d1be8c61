"""
Plugin Client

Host-side SignerVerifier that forwards every call to a plugin program.
Each call spawns one process; the only state shared between calls is the
immutable InitOptions, so one client can serve concurrent callers.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from cryptography.hazmat.primitives import hashes

from .common import (
    CreateKeyArgs,
    DefaultAlgorithmArgs,
    HashFunc,
    InitOptions,
    MethodArgs,
    PluginResp,
    PublicKeyArgs,
    SignMessageArgs,
    SupportedAlgorithmsArgs,
    VerifySignatureArgs,
    WireModel,
)
from .config import ClientConfig, create_default_config, load_config
from .context import CallContext
from .encoding import (
    pack_public_key_options,
    pack_sign_options,
    pack_verify_options,
    unmarshal_pem_to_public_key,
)
from .errors import InvalidKeyResourceIDError
from .invoke import CommandFactory, PluginInvoker, SubprocessCommand
from .options import SignerOption, resolve_options
from .signer import (
    CryptoSignerWrapper,
    ErrorCallback,
    Message,
    SignerVerifier,
    read_message,
)

logger = logging.getLogger(__name__)


class PluginClient(SignerVerifier):
    """
    SignerVerifier backed by a plugin executable.

    Errors raised by the invoker (context, execution, parse and
    plugin-reported errors) propagate unchanged.
    """

    def __init__(
        self,
        executable: str,
        init_options: InitOptions,
        make_command: CommandFactory = SubprocessCommand,
        stderr: Optional[Any] = None
    ):
        """
        Args:
            executable: Plugin program name or path
            init_options: Binding attached to every request
            make_command: Process factory, replaceable in tests
            stderr: Destination for the plugin's stderr (None inherits ours)
        """
        self.executable = executable
        self.init_options = init_options
        self._invoker = PluginInvoker(executable, make_command, stderr)

    async def invoke_plugin(self, ctx: CallContext, stdin: bytes, payload: WireModel) -> PluginResp:
        """Invoke the plugin with the method args built from ``payload``."""
        return await self._invoker.invoke(ctx, stdin, self.init_options, MethodArgs.of(payload))

    async def default_algorithm(self) -> str:
        resp = await self.invoke_plugin(CallContext.background(), b"", DefaultAlgorithmArgs())
        return resp.default_algorithm.default_algorithm

    async def supported_algorithms(self) -> List[str]:
        resp = await self.invoke_plugin(CallContext.background(), b"", SupportedAlgorithmsArgs())
        return resp.supported_algorithms.supported_algorithms

    async def create_key(self, ctx: CallContext, algorithm: str) -> Any:
        args = CreateKeyArgs(ctx_deadline=ctx.deadline, algorithm=algorithm)
        resp = await self.invoke_plugin(ctx, b"", args)
        return unmarshal_pem_to_public_key(resp.create_key.public_key_pem)

    async def public_key(self, *opts: SignerOption) -> Any:
        ctx = resolve_options(opts, rpc_only=True).ctx
        args = PublicKeyArgs(public_key_options=pack_public_key_options(opts))
        resp = await self.invoke_plugin(ctx, b"", args)
        return unmarshal_pem_to_public_key(resp.public_key.public_key_pem)

    async def sign_message(self, message: Message, *opts: SignerOption) -> bytes:
        ctx = resolve_options(opts).ctx
        args = SignMessageArgs(sign_options=pack_sign_options(opts))
        resp = await self.invoke_plugin(ctx, read_message(message), args)
        return resp.sign_message.signature

    async def verify_signature(self, signature: Message, message: Message, *opts: SignerOption) -> None:
        ctx = resolve_options(opts).ctx
        args = VerifySignatureArgs(
            signature=read_message(signature),
            verify_options=pack_verify_options(opts)
        )
        await self.invoke_plugin(ctx, read_message(message), args)

    def crypto_signer(
        self,
        ctx: CallContext,
        err_func: Optional[ErrorCallback] = None
    ) -> Tuple[CryptoSignerWrapper, HashFunc]:
        """
        Wrap this client as a generic signer.

        Purely local: the wrapper calls back into public_key and
        sign_message, there is no remote method for it.
        """
        err = ctx.err()
        if err is not None:
            raise err
        hash_func = self.init_options.hash_func
        return CryptoSignerWrapper(ctx, self, hash_func, err_func), hash_func


def load_signer_verifier(
    key_resource_id: str,
    hash_func: Optional[Union[HashFunc, hashes.HashAlgorithm]] = None,
    config: Optional[ClientConfig] = None,
    make_command: CommandFactory = SubprocessCommand,
    config_path: Optional[Union[str, Path]] = None
) -> PluginClient:
    """
    Create a PluginClient for a key resource.

    The plugin executable is ``<executable_prefix><scheme>`` for a key
    resource ID ``<scheme>://...``, looked up on PATH unless
    ``config.plugin_dir`` is set. Settings come from ``config``, else
    from the file at ``config_path``, else the defaults.

    Raises:
        InvalidKeyResourceIDError: If the ID has no ``scheme://`` prefix
        FileNotFoundError: If ``config_path`` does not exist
        ValueError: If ``config_path`` holds invalid settings
    """
    scheme, sep, _ = key_resource_id.partition("://")
    if not sep or not scheme:
        raise InvalidKeyResourceIDError(
            f"Key resource ID must be of the form <scheme>://<key>: {key_resource_id!r}"
        )

    if config is None:
        config = load_config(config_path) if config_path is not None else create_default_config()
    if config.log_level is not None:
        logging.getLogger(__package__).setLevel(config.log_level)

    executable = f"{config.executable_prefix}{scheme}"
    if config.plugin_dir:
        executable = str(Path(config.plugin_dir) / executable)

    init_options = InitOptions(
        key_resource_id=key_resource_id,
        hash_func=HashFunc.from_algorithm(hash_func) if hash_func is not None else config.hash_func,
    )
    stderr = None if config.forward_stderr else asyncio.subprocess.DEVNULL

    logger.info(f"Using plugin {executable} for {scheme} keys")
    return PluginClient(executable, init_options, make_command, stderr)
