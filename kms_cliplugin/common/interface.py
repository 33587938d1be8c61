"""
Plugin Protocol Schema

Wire messages exchanged between a PluginClient and a plugin program.
Every model serializes to camelCase JSON with absent optional fields
omitted, so an unset option never overrides a plugin-side default.
"""

import base64
from datetime import datetime
from enum import Enum, IntEnum
from typing import Annotated, Any, Dict, List, Optional, Type, Union

from cryptography.hazmat.primitives import hashes
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

# Must match exactly between client and plugin; a mismatch is never negotiated.
PROTOCOL_VERSION = "v1"


def _decode_base64(value: Any) -> Any:
    if isinstance(value, str):
        return base64.b64decode(value, validate=True)
    return value


# Standard base64 on the wire, raw bytes in Python.
WireBytes = Annotated[
    bytes,
    BeforeValidator(_decode_base64),
    PlainSerializer(lambda b: base64.b64encode(b).decode("ascii"), return_type=str, when_used="json"),
]


class HashFunc(IntEnum):
    """Wire identifiers for hash functions."""

    MD5 = 2
    SHA1 = 3
    SHA224 = 4
    SHA256 = 5
    SHA384 = 6
    SHA512 = 7
    SHA3_224 = 10
    SHA3_256 = 11
    SHA3_384 = 12
    SHA3_512 = 13
    SHA512_224 = 14
    SHA512_256 = 15

    def algorithm(self) -> hashes.HashAlgorithm:
        """Matching ``cryptography`` hash algorithm instance."""
        return _HASH_ALGORITHMS[self]()

    @classmethod
    def from_algorithm(cls, algorithm: Union["HashFunc", int, hashes.HashAlgorithm]) -> "HashFunc":
        """
        Convert a ``cryptography`` hash algorithm (or wire id) to a HashFunc.

        Raises:
            ValueError: If the algorithm has no wire identifier
        """
        if isinstance(algorithm, HashFunc):
            return algorithm
        if isinstance(algorithm, int):
            return cls(algorithm)
        for hash_func, algorithm_class in _HASH_ALGORITHMS.items():
            if algorithm.name == algorithm_class.name:
                return hash_func
        raise ValueError(f"Unsupported hash function: {algorithm.name}")


_HASH_ALGORITHMS: Dict[HashFunc, Type[hashes.HashAlgorithm]] = {
    HashFunc.MD5: hashes.MD5,
    HashFunc.SHA1: hashes.SHA1,
    HashFunc.SHA224: hashes.SHA224,
    HashFunc.SHA256: hashes.SHA256,
    HashFunc.SHA384: hashes.SHA384,
    HashFunc.SHA512: hashes.SHA512,
    HashFunc.SHA3_224: hashes.SHA3_224,
    HashFunc.SHA3_256: hashes.SHA3_256,
    HashFunc.SHA3_384: hashes.SHA3_384,
    HashFunc.SHA3_512: hashes.SHA3_512,
    HashFunc.SHA512_224: hashes.SHA512_224,
    HashFunc.SHA512_256: hashes.SHA512_256,
}


class MethodName(str, Enum):
    """Signer/verifier operations a plugin can be asked to perform."""

    DEFAULT_ALGORITHM = "defaultAlgorithm"
    SUPPORTED_ALGORITHMS = "supportedAlgorithms"
    CREATE_KEY = "createKey"
    PUBLIC_KEY = "publicKey"
    SIGN_MESSAGE = "signMessage"
    VERIFY_SIGNATURE = "verifySignature"


# Payload attribute carrying each method's args or result.
PAYLOAD_FIELDS: Dict[MethodName, str] = {
    MethodName.DEFAULT_ALGORITHM: "default_algorithm",
    MethodName.SUPPORTED_ALGORITHMS: "supported_algorithms",
    MethodName.CREATE_KEY: "create_key",
    MethodName.PUBLIC_KEY: "public_key",
    MethodName.SIGN_MESSAGE: "sign_message",
    MethodName.VERIFY_SIGNATURE: "verify_signature",
}


class WireModel(BaseModel):
    """Base for all protocol messages."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        """Serialize to the wire form, omitting absent fields."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class InitOptions(WireModel):
    """Per-client binding, attached unchanged to every request."""

    model_config = ConfigDict(frozen=True)

    protocol_version: str = PROTOCOL_VERSION
    key_resource_id: str = Field("", alias="keyResourceID")
    hash_func: HashFunc = HashFunc.SHA256


# Option bags

class RPCOptions(WireModel):
    """Cross-cutting call overrides. None means "use the plugin default"."""

    ctx_deadline: Optional[datetime] = None
    key_version: Optional[str] = None
    remote_verification: Optional[bool] = None


class MessageOptions(WireModel):
    """Message-specific overrides."""

    digest: Optional[WireBytes] = None
    hash_func: Optional[HashFunc] = None


class PublicKeyOptions(RPCOptions):
    pass


class SignOptions(RPCOptions, MessageOptions):
    pass


class VerifyOptions(RPCOptions, MessageOptions):
    pass


# Method arguments

class DefaultAlgorithmArgs(WireModel):
    pass


class SupportedAlgorithmsArgs(WireModel):
    pass


class CreateKeyArgs(WireModel):
    ctx_deadline: Optional[datetime] = None
    algorithm: str


class PublicKeyArgs(WireModel):
    public_key_options: PublicKeyOptions = Field(default_factory=PublicKeyOptions)


class SignMessageArgs(WireModel):
    sign_options: SignOptions = Field(default_factory=SignOptions)


class VerifySignatureArgs(WireModel):
    signature: WireBytes
    verify_options: VerifyOptions = Field(default_factory=VerifyOptions)


_ARGS_METHODS: Dict[type, MethodName] = {
    DefaultAlgorithmArgs: MethodName.DEFAULT_ALGORITHM,
    SupportedAlgorithmsArgs: MethodName.SUPPORTED_ALGORITHMS,
    CreateKeyArgs: MethodName.CREATE_KEY,
    PublicKeyArgs: MethodName.PUBLIC_KEY,
    SignMessageArgs: MethodName.SIGN_MESSAGE,
    VerifySignatureArgs: MethodName.VERIFY_SIGNATURE,
}


class MethodArgs(WireModel):
    """
    Tagged variant naming the requested operation.

    Exactly one payload is populated and it must be the one matching
    ``method_name``; anything else fails validation.
    """

    method_name: MethodName
    default_algorithm: Optional[DefaultAlgorithmArgs] = None
    supported_algorithms: Optional[SupportedAlgorithmsArgs] = None
    create_key: Optional[CreateKeyArgs] = None
    public_key: Optional[PublicKeyArgs] = None
    sign_message: Optional[SignMessageArgs] = None
    verify_signature: Optional[VerifySignatureArgs] = None

    @model_validator(mode="after")
    def _check_payload(self) -> "MethodArgs":
        populated = [name for name in PAYLOAD_FIELDS.values() if getattr(self, name) is not None]
        expected = PAYLOAD_FIELDS[self.method_name]
        if populated != [expected]:
            raise ValueError(
                f"method {self.method_name.value} requires exactly the "
                f"{to_camel(expected)} payload, got {[to_camel(p) for p in populated]}"
            )
        return self

    @classmethod
    def of(cls, payload: WireModel) -> "MethodArgs":
        """Build the variant for a payload, deriving the tag from its type."""
        method_name = _ARGS_METHODS[type(payload)]
        return cls(method_name=method_name, **{PAYLOAD_FIELDS[method_name]: payload})

    @property
    def payload(self) -> WireModel:
        return getattr(self, PAYLOAD_FIELDS[self.method_name])


class PluginArgs(WireModel):
    """
    Request envelope.

    On the wire the method args sit at the top level next to
    ``initOptions``.
    """

    init_options: InitOptions
    method_args: MethodArgs

    @model_validator(mode="before")
    @classmethod
    def _unflatten(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "method_args" in data or "methodArgs" in data:
            return data
        data = dict(data)
        init_options = data.pop("initOptions", None)
        if init_options is None:
            init_options = data.pop("init_options", None)
        return {"init_options": init_options, "method_args": data}

    @model_serializer(mode="wrap")
    def _flatten(self, handler: Any) -> Dict[str, Any]:
        data = handler(self)
        method_key = "methodArgs" if "methodArgs" in data else "method_args"
        method_args = data.pop(method_key)
        return {**method_args, **data}


# Method results

class DefaultAlgorithmResp(WireModel):
    default_algorithm: str


class SupportedAlgorithmsResp(WireModel):
    supported_algorithms: List[str]


class CreateKeyResp(WireModel):
    public_key_pem: WireBytes = Field(alias="publicKeyPEM")


class PublicKeyResp(WireModel):
    public_key_pem: WireBytes = Field(alias="publicKeyPEM")


class SignMessageResp(WireModel):
    signature: WireBytes


class VerifySignatureResp(WireModel):
    pass


class PluginResp(WireModel):
    """
    Response envelope.

    A non-empty ``error_message`` means failure regardless of any result
    that is also present.
    """

    error_message: Optional[str] = None
    default_algorithm: Optional[DefaultAlgorithmResp] = None
    supported_algorithms: Optional[SupportedAlgorithmsResp] = None
    create_key: Optional[CreateKeyResp] = None
    public_key: Optional[PublicKeyResp] = None
    sign_message: Optional[SignMessageResp] = None
    verify_signature: Optional[VerifySignatureResp] = None

    def result_for(self, method_name: MethodName) -> Optional[WireModel]:
        """Result payload for ``method_name``, or None if absent."""
        return getattr(self, PAYLOAD_FIELDS[method_name])
