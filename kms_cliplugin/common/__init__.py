"""
Protocol types shared by the plugin client and plugin programs.
"""

from .interface import (
    PAYLOAD_FIELDS,
    PROTOCOL_VERSION,
    CreateKeyArgs,
    CreateKeyResp,
    DefaultAlgorithmArgs,
    DefaultAlgorithmResp,
    HashFunc,
    InitOptions,
    MessageOptions,
    MethodArgs,
    MethodName,
    PluginArgs,
    PluginResp,
    PublicKeyArgs,
    PublicKeyOptions,
    PublicKeyResp,
    RPCOptions,
    SignMessageArgs,
    SignMessageResp,
    SignOptions,
    SupportedAlgorithmsArgs,
    SupportedAlgorithmsResp,
    VerifyOptions,
    VerifySignatureArgs,
    VerifySignatureResp,
    WireModel,
)

__all__ = [
    # Protocol constants
    "PROTOCOL_VERSION",
    "PAYLOAD_FIELDS",
    "HashFunc",
    "MethodName",
    # Envelopes
    "WireModel",
    "InitOptions",
    "MethodArgs",
    "PluginArgs",
    "PluginResp",
    # Option bags
    "RPCOptions",
    "MessageOptions",
    "PublicKeyOptions",
    "SignOptions",
    "VerifyOptions",
    # Method args
    "DefaultAlgorithmArgs",
    "SupportedAlgorithmsArgs",
    "CreateKeyArgs",
    "PublicKeyArgs",
    "SignMessageArgs",
    "VerifySignatureArgs",
    # Method results
    "DefaultAlgorithmResp",
    "SupportedAlgorithmsResp",
    "CreateKeyResp",
    "PublicKeyResp",
    "SignMessageResp",
    "VerifySignatureResp",
]
