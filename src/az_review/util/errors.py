from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    RULES_ERROR = 3
    AZURE_ERROR = 4
    RUNTIME_ERROR = 5


class ReviewError(Exception):
    """Base error for the review pipeline."""


class ConfigError(ReviewError):
    """Raised for configuration or argument issues."""


class RulesNotFoundError(ReviewError):
    """Raised when no rule documents or no workflows are available at startup."""


class RuleDocumentError(ReviewError):
    """Raised when a rule document cannot be parsed or has an invalid shape."""


class AzureClientError(ReviewError):
    """Raised when an Azure SDK or ARM call fails."""


class ExportError(ReviewError):
    """Raised when writing report artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, (RulesNotFoundError, RuleDocumentError)):
        return int(ExitCode.RULES_ERROR)
    if isinstance(exc, AzureClientError):
        return int(ExitCode.AZURE_ERROR)
    if isinstance(exc, (ExportError, ReviewError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1


def is_azure_error(exc: BaseException) -> bool:
    """
    Return True if the exception comes from the Azure SDK or the HTTP layer used for ARM calls.
    """
    module = exc.__class__.__module__
    return module.startswith(("azure.", "requests.", "msrest."))


def map_azure_error(exc: BaseException, context: str) -> AzureClientError | None:
    """
    Wrap Azure SDK / ARM HTTP errors with AzureClientError for consistent exit codes.
    """
    if not is_azure_error(exc):
        return None
    return AzureClientError(f"{context}: {exc}")
