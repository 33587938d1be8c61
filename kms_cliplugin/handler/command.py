"""
Entry point helpers for plugin programs.

A plugin author supplies a factory that builds their SignerVerifier from
the request's InitOptions; everything else is handled here.
"""

import asyncio
import logging
import os
import sys
from typing import BinaryIO, Callable, List, Optional

import click

from ..common import InitOptions, PluginResp
from ..errors import PluginArgsError
from ..signer import SignerVerifier
from .dispatch import dispatch, get_plugin_args, write_response

logger = logging.getLogger(__name__)

ImplFactory = Callable[[InitOptions], SignerVerifier]

LOG_LEVEL_ENV = "SIGSTORE_KMS_PLUGIN_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


def plugin_log_level() -> str:
    """Level named by $SIGSTORE_KMS_PLUGIN_LOG_LEVEL, or WARNING if unset or unknown."""
    level = os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    if not isinstance(logging.getLevelName(level), int):
        return DEFAULT_LOG_LEVEL
    return level


def run_plugin(
    impl_factory: ImplFactory,
    argv: Optional[List[str]] = None,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None
) -> int:
    """
    Serve one request.

    Returns:
        Process exit status: 0 once a response for the request was written,
        1 if the request could not be parsed or the implementation could
        not be built (an error response is still written)
    """
    argv = sys.argv if argv is None else argv
    stdin = stdin or sys.stdin.buffer
    stdout = stdout or sys.stdout.buffer

    try:
        plugin_args = get_plugin_args(argv)
    except PluginArgsError as e:
        logger.error(f"Rejecting request: {e}")
        write_response(stdout, PluginResp(error_message=str(e)))
        return 1

    try:
        impl = impl_factory(plugin_args.init_options)
    except Exception as e:
        logger.error(f"Failed to initialize signer for {plugin_args.init_options.key_resource_id}: {e}")
        write_response(stdout, PluginResp(error_message=str(e)))
        return 1

    asyncio.run(dispatch(stdout, stdin, plugin_args, impl))
    return 0


def make_plugin_command(impl_factory: ImplFactory, name: Optional[str] = None) -> click.Command:
    """
    Build a click command serving requests with ``impl_factory``.

    Logging goes to stderr; stdout carries only the response.
    """
    @click.command(
        name=name,
        context_settings={"ignore_unknown_options": True, "help_option_names": []}
    )
    @click.argument("plugin_args", nargs=-1, type=click.UNPROCESSED)
    @click.pass_context
    def command(ctx: click.Context, plugin_args):
        logging.basicConfig(
            stream=sys.stderr,
            level=plugin_log_level(),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        ctx.exit(run_plugin(impl_factory, [ctx.info_name, *plugin_args]))

    return command
