"""Error types raised by the automation assistant."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from automatron.models.conversation import ModelErrorLogEntry


class AutomatronError(Exception):
    """Base class for all automatron errors."""


class ConfigurationError(AutomatronError):
    """Raised when a required setting is missing or malformed."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Invalid configuration for {key}: {reason}")
        self.key = key


class ToolDiscoveryError(AutomatronError):
    """Raised when the tool context cannot be acquired.

    This is fatal for an agent run: no iteration executes and no state is produced.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to discover tools: {reason}")


class ModelInvocationError(AutomatronError):
    """Raised when the language model call fails.

    Carries the ``model-error`` log entry so the failure is recorded in the
    transcript even though no response was produced.
    """

    def __init__(self, log_entry: "ModelErrorLogEntry") -> None:
        super().__init__(f"Failed to invoke model: {log_entry.error}")
        self.log_entry = log_entry
