"""
Codecs between host-side values and protocol messages.
"""

from .keys import marshal_public_key_to_pem, unmarshal_pem_to_public_key
from .options import (
    pack_message_options,
    pack_public_key_options,
    pack_rpc_options,
    pack_sign_options,
    pack_verify_options,
    unpack_message_options,
    unpack_public_key_options,
    unpack_rpc_options,
    unpack_sign_options,
    unpack_verify_options,
)

__all__ = [
    # Option bags
    "pack_rpc_options",
    "pack_message_options",
    "pack_public_key_options",
    "pack_sign_options",
    "pack_verify_options",
    "unpack_rpc_options",
    "unpack_message_options",
    "unpack_public_key_options",
    "unpack_sign_options",
    "unpack_verify_options",
    # Keys
    "marshal_public_key_to_pem",
    "unmarshal_pem_to_public_key",
]
