"""Pytest configuration and fixtures."""

import io
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from kms_cliplugin.common import HashFunc, InitOptions
from kms_cliplugin.context import CallContext
from kms_cliplugin.encoding import (
    pack_public_key_options,
    pack_sign_options,
    pack_verify_options,
    unmarshal_pem_to_public_key,
)
from kms_cliplugin.handler import dispatch, get_plugin_args
from kms_cliplugin.signer import SignerVerifier, read_message

TEST_EXECUTABLE = "sigstore-kms-test"
TEST_KEY_RESOURCE_ID = "testkms://testkey"
TEST_DEFAULT_ALGORITHM = "alg1"
TEST_SUPPORTED_ALGORITHMS = [TEST_DEFAULT_ALGORITHM, "alg2"]
TEST_MESSAGE = b"my-message"
TEST_SIGNATURE = b"my-signature"
TEST_KEY_VERSION = "my-key-version"
TEST_DIGEST = b"my-digest"

TEST_PUBLIC_KEY_PEM = b"""-----BEGIN PUBLIC KEY-----
MFkwEwYHKoZIzj0CAQYIKoZIzj0DAQcDQgAEcCPm8ay9sb2hrueFvuwL8pGjQBnd
HrgLLNu5Gj06Y2S8vvR3MBWbChpOIKGh1YrDoa4lt/XfjaNcHq7vcuYXwg==
-----END PUBLIC KEY-----
"""


@pytest.fixture(scope="session")
def test_public_key():
    """Fixed public key, parsed once for the whole session."""
    return unmarshal_pem_to_public_key(TEST_PUBLIC_KEY_PEM)


@pytest.fixture
def test_deadline() -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=7)


@pytest.fixture
def init_options() -> InitOptions:
    return InitOptions(key_resource_id=TEST_KEY_RESOURCE_ID, hash_func=HashFunc.SHA512)


class FakeCommand:
    """Command whose output is produced by a coroutine function."""

    def __init__(self, output_func: Callable[[], Any]):
        self.output_func = output_func

    async def output(self) -> bytes:
        return await self.output_func()


class RecordingSignerVerifier(SignerVerifier):
    """
    SignerVerifier returning canned values and recording what it received
    after the options went through the codec.
    """

    def __init__(self, public_key: Any, error: Optional[Exception] = None):
        self._public_key = public_key
        self.error = error
        self.calls: Dict[str, Dict[str, Any]] = {}
        self.crypto_signer_called = False

    def _maybe_fail(self) -> None:
        if self.error is not None:
            raise self.error

    async def default_algorithm(self) -> str:
        return TEST_DEFAULT_ALGORITHM

    async def supported_algorithms(self) -> List[str]:
        return list(TEST_SUPPORTED_ALGORITHMS)

    async def create_key(self, ctx: CallContext, algorithm: str) -> Any:
        self.calls["create_key"] = {"algorithm": algorithm, "deadline": ctx.deadline}
        self._maybe_fail()
        return self._public_key

    async def public_key(self, *opts) -> Any:
        self.calls["public_key"] = {"options": pack_public_key_options(opts)}
        self._maybe_fail()
        return self._public_key

    async def sign_message(self, message, *opts) -> bytes:
        self.calls["sign_message"] = {
            "message": read_message(message),
            "options": pack_sign_options(opts),
        }
        self._maybe_fail()
        return TEST_SIGNATURE

    async def verify_signature(self, signature, message, *opts) -> None:
        self.calls["verify_signature"] = {
            "signature": read_message(signature),
            "message": read_message(message),
            "options": pack_verify_options(opts),
        }
        self._maybe_fail()

    def crypto_signer(self, ctx, err_func=None):
        self.crypto_signer_called = True
        raise NotImplementedError("crypto_signer is not served by plugins")


@pytest.fixture
def recording_impl(test_public_key) -> RecordingSignerVerifier:
    return RecordingSignerVerifier(test_public_key)


@pytest.fixture
def dispatching_command_factory():
    """
    Build a make_command that simulates a plugin program in-process: it
    parses the arguments and dispatches to ``impl`` like a real plugin.
    """
    def factory(impl: SignerVerifier):
        def make_command(ctx, stdin, stderr, name, *args):
            async def output() -> bytes:
                plugin_args = get_plugin_args([name, *args])
                stdout = io.BytesIO()
                await dispatch(stdout, io.BytesIO(stdin), plugin_args, impl)
                return stdout.getvalue()
            return FakeCommand(output)
        return make_command
    return factory
