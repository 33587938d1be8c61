"""Tests for the process invoker's failure classification."""

import asyncio
import subprocess

import pytest

from conftest import TEST_DEFAULT_ALGORITHM, TEST_EXECUTABLE, FakeCommand
from kms_cliplugin.common import (
    PROTOCOL_VERSION,
    DefaultAlgorithmArgs,
    DefaultAlgorithmResp,
    MethodArgs,
    PluginArgs,
    PluginResp,
    SupportedAlgorithmsResp,
)
from kms_cliplugin.context import CallContext
from kms_cliplugin.errors import (
    ContextCanceledError,
    ContextDeadlineExceededError,
    PluginExecutionError,
    PluginReturnedError,
    ResponseParseError,
)
from kms_cliplugin.handler import get_plugin_args
from kms_cliplugin.invoke import PluginInvoker

TEST_STDIN = b"my-stdin"
TEST_PLUGIN_ERROR_MESSAGE = "404: not found"

METHOD_ARGS = MethodArgs.of(DefaultAlgorithmArgs())
GOOD_RESP = PluginResp(default_algorithm=DefaultAlgorithmResp(default_algorithm=TEST_DEFAULT_ALGORITHM))
GOOD_OUTPUT = GOOD_RESP.to_json().encode()
ERROR_OUTPUT = PluginResp(error_message=TEST_PLUGIN_ERROR_MESSAGE).to_json().encode()


def _exit_error(returncode: int, output: bytes = GOOD_OUTPUT) -> subprocess.CalledProcessError:
    return subprocess.CalledProcessError(returncode, [TEST_EXECUTABLE], output=output)


class RecordingCommandFactory:
    """make_command that records each call and replays a canned outcome."""

    def __init__(self, output: bytes = b"", error: Exception = None):
        self.output = output
        self.error = error
        self.calls = []

    def __call__(self, ctx, stdin, stderr, name, *args):
        self.calls.append({"name": name, "args": list(args), "stdin": stdin})

        async def output() -> bytes:
            if self.error is not None:
                raise self.error
            return self.output

        return FakeCommand(output)


class TestInvokeClassification:
    """Each outcome of running the plugin maps to one result."""

    @pytest.mark.parametrize(
        "output,error,expected_error,message_substring",
        [
            pytest.param(GOOD_OUTPUT, None, None, "", id="success"),
            pytest.param(b"", _exit_error(1), None, "", id="continue if command exits non-zero"),
            pytest.param(GOOD_OUTPUT, _exit_error(0), PluginExecutionError, "", id="command error even if exit 0"),
            pytest.param(GOOD_OUTPUT, _exit_error(-1), PluginExecutionError, "", id="killed by signal"),
            pytest.param(GOOD_OUTPUT, RuntimeError("exec-error"), PluginExecutionError, "exec-error", id="other exec error"),
            pytest.param(
                GOOD_OUTPUT, FileNotFoundError("no such file"), PluginExecutionError, "", id="executable missing"
            ),
            pytest.param(
                ERROR_OUTPUT, None, PluginReturnedError, TEST_PLUGIN_ERROR_MESSAGE, id="plugin program error"
            ),
            pytest.param(b"", None, ResponseParseError, "", id="empty response"),
            pytest.param(b"abc", None, ResponseParseError, "", id="invalid json response"),
        ],
    )
    @pytest.mark.asyncio
    async def test_invoke(self, init_options, output, error, expected_error, message_substring):
        """Each process outcome maps to its result or error class."""
        make_command = RecordingCommandFactory(output, error)
        invoker = PluginInvoker(TEST_EXECUTABLE, make_command)

        if expected_error is None:
            resp = await invoker.invoke(CallContext.background(), TEST_STDIN, init_options, METHOD_ARGS)
            assert resp == GOOD_RESP
        else:
            with pytest.raises(expected_error) as exc_info:
                await invoker.invoke(CallContext.background(), TEST_STDIN, init_options, METHOD_ARGS)
            assert message_substring in str(exc_info.value)

        # The process was built from the expected name, arguments and stdin.
        [call] = make_command.calls
        assert call["name"] == TEST_EXECUTABLE
        assert call["args"][0] == PROTOCOL_VERSION
        assert call["stdin"] == TEST_STDIN
        plugin_args = get_plugin_args([call["name"], *call["args"]])
        assert plugin_args == PluginArgs(init_options=init_options, method_args=METHOD_ARGS)

    @pytest.mark.asyncio
    async def test_plugin_error_message_is_recoverable(self, init_options):
        """The plugin's error text is available on the exception."""
        invoker = PluginInvoker(TEST_EXECUTABLE, RecordingCommandFactory(ERROR_OUTPUT))

        with pytest.raises(PluginReturnedError) as exc_info:
            await invoker.invoke(CallContext.background(), b"", init_options, METHOD_ARGS)

        assert exc_info.value.message == TEST_PLUGIN_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_error_message_wins_over_result(self, init_options):
        """An error message overrides a valid result in the same response."""
        output = PluginResp(
            error_message="key disabled",
            default_algorithm=DefaultAlgorithmResp(default_algorithm=TEST_DEFAULT_ALGORITHM),
        ).to_json().encode()
        invoker = PluginInvoker(TEST_EXECUTABLE, RecordingCommandFactory(output))

        with pytest.raises(PluginReturnedError, match="key disabled"):
            await invoker.invoke(CallContext.background(), b"", init_options, METHOD_ARGS)

    @pytest.mark.parametrize(
        "output",
        [
            b'{"errorMessage": "404: not found", "signMessage": {}}',
            b'{"errorMessage": "404: not found", "signMessage": {"signature": "!!"}}',
            b'{"errorMessage": "404: not found", "defaultAlgorithm": 42}',
        ],
    )
    @pytest.mark.asyncio
    async def test_error_message_wins_over_invalid_result(self, init_options, output):
        """A malformed result next to an error message does not hide the error."""
        invoker = PluginInvoker(TEST_EXECUTABLE, RecordingCommandFactory(output))

        with pytest.raises(PluginReturnedError) as exc_info:
            await invoker.invoke(CallContext.background(), b"", init_options, METHOD_ARGS)

        assert exc_info.value.message == TEST_PLUGIN_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_response_without_requested_result(self, init_options):
        """A response lacking the requested result is a parse error."""
        output = PluginResp(
            supported_algorithms=SupportedAlgorithmsResp(supported_algorithms=["alg1"])
        ).to_json().encode()
        invoker = PluginInvoker(TEST_EXECUTABLE, RecordingCommandFactory(output))

        with pytest.raises(ResponseParseError):
            await invoker.invoke(CallContext.background(), b"", init_options, METHOD_ARGS)


class TestInvokeContext:
    """Context errors take precedence over every other outcome."""

    @pytest.mark.asyncio
    async def test_canceled_context_does_not_spawn(self, init_options):
        """A canceled context fails before any process is built."""
        make_command = RecordingCommandFactory(GOOD_OUTPUT)
        invoker = PluginInvoker(TEST_EXECUTABLE, make_command)
        ctx = CallContext.background()
        ctx.cancel()

        with pytest.raises(ContextCanceledError):
            await invoker.invoke(ctx, b"", init_options, METHOD_ARGS)

        assert make_command.calls == []

    @pytest.mark.asyncio
    async def test_expired_deadline_does_not_spawn(self, init_options):
        """An expired deadline fails before any process is built."""
        make_command = RecordingCommandFactory(GOOD_OUTPUT)
        invoker = PluginInvoker(TEST_EXECUTABLE, make_command)
        ctx = CallContext.with_timeout(-1)

        with pytest.raises(ContextDeadlineExceededError):
            await invoker.invoke(ctx, b"", init_options, METHOD_ARGS)

        assert make_command.calls == []

    @pytest.mark.asyncio
    async def test_cancel_during_execution_stops_command(self, init_options):
        """Canceling mid-call stops the running command."""
        started = asyncio.Event()
        stopped = []

        async def output() -> bytes:
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                stopped.append(True)
                raise
            return GOOD_OUTPUT

        invoker = PluginInvoker(TEST_EXECUTABLE, lambda *args: FakeCommand(output))
        ctx = CallContext.background()
        task = asyncio.ensure_future(invoker.invoke(ctx, b"", init_options, METHOD_ARGS))

        await started.wait()
        ctx.cancel()

        with pytest.raises(ContextCanceledError):
            await task
        assert stopped == [True]

    @pytest.mark.asyncio
    async def test_deadline_during_execution(self, init_options):
        """A deadline reached mid-call raises the deadline error."""
        async def output() -> bytes:
            await asyncio.sleep(30)
            return GOOD_OUTPUT

        invoker = PluginInvoker(TEST_EXECUTABLE, lambda *args: FakeCommand(output))

        with pytest.raises(ContextDeadlineExceededError):
            await invoker.invoke(CallContext.with_timeout(0.05), b"", init_options, METHOD_ARGS)

    @pytest.mark.asyncio
    async def test_context_error_bypasses_classification(self, init_options):
        """A context error wins over a simultaneous process failure."""
        ctx = CallContext.background()

        async def output() -> bytes:
            # The plugin fails at the same time the caller gives up.
            ctx.cancel()
            raise _exit_error(-1)

        invoker = PluginInvoker(TEST_EXECUTABLE, lambda *args: FakeCommand(output))

        with pytest.raises(ContextCanceledError):
            await invoker.invoke(ctx, b"", init_options, METHOD_ARGS)
