"""
Errors raised by the plugin client, the process invoker and the handler.

The invoker is the only component that classifies a failed plugin call;
everything above it forwards these exceptions unchanged.
"""


class CLIPluginError(Exception):
    """Base class for plugin protocol errors."""


class PluginExecutionError(CLIPluginError):
    """The plugin process could not be run to a trustworthy completion."""


class ResponseParseError(CLIPluginError):
    """The plugin's standard output was not a valid response envelope."""


class PluginReturnedError(CLIPluginError):
    """The plugin ran and replied with a populated error message."""

    def __init__(self, message: str):
        super().__init__(f"plugin returned error: {message}")
        self.message = message


class InvalidKeyResourceIDError(CLIPluginError, ValueError):
    """Key resource ID is not of the form ``scheme://...``."""


class PluginArgsError(CLIPluginError, ValueError):
    """The plugin process arguments could not be parsed."""


class ProtocolVersionError(PluginArgsError):
    """Client and plugin disagree on the protocol version."""


class ContextError(Exception):
    """Base class for call-context errors."""


class ContextCanceledError(ContextError):
    """The call context was canceled."""

    def __init__(self, message: str = "context canceled"):
        super().__init__(message)


class ContextDeadlineExceededError(ContextError, TimeoutError):
    """The call context deadline passed."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)
