"""
KMS CLI Plugins

Lets signing backends live in separate executables. The host uses a
PluginClient, a SignerVerifier that runs the plugin program once per
call; plugin programs use kms_cliplugin.handler to serve those calls.
"""

from .client import PluginClient, load_signer_verifier
from .config import ClientConfig, load_config
from .context import CallContext
from .errors import (
    CLIPluginError,
    ContextCanceledError,
    ContextDeadlineExceededError,
    ContextError,
    InvalidKeyResourceIDError,
    PluginArgsError,
    PluginExecutionError,
    PluginReturnedError,
    ProtocolVersionError,
    ResponseParseError,
)
from .invoke import PluginInvoker, SubprocessCommand
from .options import (
    with_context,
    with_crypto_signer_opts,
    with_digest,
    with_key_version,
    with_remote_verification,
)
from .signer import CryptoSignerWrapper, SignerVerifier

__all__ = [
    # Client
    "PluginClient",
    "load_signer_verifier",
    "PluginInvoker",
    "SubprocessCommand",
    # Capability set
    "SignerVerifier",
    "CryptoSignerWrapper",
    "CallContext",
    # Options
    "with_context",
    "with_key_version",
    "with_remote_verification",
    "with_digest",
    "with_crypto_signer_opts",
    # Configuration
    "ClientConfig",
    "load_config",
    # Errors
    "CLIPluginError",
    "PluginExecutionError",
    "ResponseParseError",
    "PluginReturnedError",
    "InvalidKeyResourceIDError",
    "PluginArgsError",
    "ProtocolVersionError",
    "ContextError",
    "ContextCanceledError",
    "ContextDeadlineExceededError",
]
