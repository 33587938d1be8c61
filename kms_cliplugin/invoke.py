"""
Process Invoker

Runs one plugin call as a subprocess and classifies every way it can
fail. This is the only place plugin failures are classified; callers
forward the resulting exceptions unchanged.
"""

import asyncio
import contextlib
import logging
import subprocess
from typing import Any, Callable, List, Optional, Protocol

from pydantic import ValidationError

from .common import InitOptions, MethodArgs, MethodName, PluginArgs, PluginResp, WireModel
from .context import CallContext
from .errors import (
    ContextError,
    PluginExecutionError,
    PluginReturnedError,
    ResponseParseError,
)

logger = logging.getLogger(__name__)


class _ErrorReply(WireModel):
    """Just the error field of a PluginResp; any result is ignored."""

    error_message: Optional[str] = None


class Command(Protocol):
    """A prepared plugin process."""

    async def output(self) -> bytes:
        """
        Run to completion and return standard output.

        Raises:
            subprocess.CalledProcessError: On a non-zero exit; ``output``
                holds whatever the process wrote to stdout.
        """
        ...


# make_command(ctx, stdin, stderr, name, *args) -> Command
CommandFactory = Callable[..., Command]


class SubprocessCommand:
    """Command backed by a real child process."""

    def __init__(self, ctx: CallContext, stdin: bytes, stderr: Any, name: str, *args: str):
        self.stdin = stdin
        self.stderr = stderr
        self.name = name
        self.args: List[str] = list(args)

    async def output(self) -> bytes:
        proc = await asyncio.create_subprocess_exec(
            self.name,
            *self.args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=self.stderr,
        )
        try:
            stdout, _ = await proc.communicate(self.stdin)
        except asyncio.CancelledError:
            # The caller gave up; do not leave the plugin running.
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            logger.info(f"Terminated plugin {self.name} (pid {proc.pid})")
            raise

        if proc.returncode != 0:
            raise subprocess.CalledProcessError(
                proc.returncode, [self.name, *self.args], output=stdout
            )
        return stdout


class PluginInvoker:
    """Performs single plugin calls against one executable."""

    def __init__(
        self,
        executable: str,
        make_command: CommandFactory = SubprocessCommand,
        stderr: Optional[Any] = None
    ):
        """
        Args:
            executable: Plugin program name or path
            make_command: Builds the process for a call; tests substitute fakes
            stderr: Where the plugin's stderr goes (None inherits ours)
        """
        self.executable = executable
        self.make_command = make_command
        self.stderr = stderr

    async def invoke(
        self,
        ctx: CallContext,
        stdin: bytes,
        init_options: InitOptions,
        method_args: MethodArgs
    ) -> PluginResp:
        """
        Invoke the plugin for one method call.

        Raises:
            ContextError: The context was done before or during the call
            PluginExecutionError: The process could not be run to completion
            ResponseParseError: Stdout was not a valid response
            PluginReturnedError: The plugin replied with an error message
        """
        err = ctx.err()
        if err is not None:
            raise err

        plugin_args = PluginArgs(init_options=init_options, method_args=method_args)
        args = [init_options.protocol_version, plugin_args.to_json()]
        method_name = method_args.method_name

        logger.debug(f"Invoking plugin {self.executable} for {method_name.value}")
        command = self.make_command(ctx, stdin, self.stderr, self.executable, *args)

        try:
            stdout = await ctx.run(command.output())
        except ContextError:
            raise
        except Exception as e:
            stdout = self._output_after_failure(ctx, e)

        err = ctx.err()
        if err is not None:
            raise err

        return self._parse_response(stdout, method_name)

    def _output_after_failure(self, ctx: CallContext, error: Exception) -> bytes:
        """Stdout to parse despite ``error``, or raise the classified error."""
        err = ctx.err()
        if err is not None:
            raise err from error

        # Positive exit codes are the plugin's business; its stdout decides.
        if isinstance(error, subprocess.CalledProcessError) and error.returncode > 0:
            logger.debug(f"Plugin {self.executable} exited with status {error.returncode}")
            return error.output or b""

        raise PluginExecutionError(
            f"Error executing plugin {self.executable}: {error}"
        ) from error

    def _parse_response(self, stdout: bytes, method_name: MethodName) -> PluginResp:
        if not stdout:
            raise ResponseParseError(f"Plugin {self.executable} wrote an empty response")
        try:
            # The error message decides before any result is looked at.
            error_message = _ErrorReply.model_validate_json(stdout).error_message
            if error_message:
                raise PluginReturnedError(error_message)
            resp = PluginResp.model_validate_json(stdout)
        except ValidationError as e:
            raise ResponseParseError(
                f"Error parsing response from plugin {self.executable}: {e}"
            ) from e

        if resp.result_for(method_name) is None:
            raise ResponseParseError(
                f"Plugin {self.executable} response has no {method_name.value} result"
            )
        return resp
