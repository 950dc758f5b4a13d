"""codestream exception hierarchy.

Base exceptions for all application layers with correlation ID support.

Usage:
    from codestream.exceptions import ActionError, FileWriteError, LLMError

    try:
        await writer.write(path, content)
    except FileWriteError as e:
        logger.error("Write failed (%s): %s", e.correlation_id, e)
"""

import uuid


class CodestreamError(Exception):
    """Base exception for all codestream application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class LLMError(CodestreamError):
    """Errors from LLM provider operations."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        **kwargs,
    ):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, **kwargs)


class UpstreamStreamError(LLMError):
    """The provider reported an error in the middle of a response stream."""

    pass


class FileWriteError(CodestreamError):
    """Errors from materializing a generated file."""

    def __init__(self, message: str, *, path: str | None = None, **kwargs):
        self.path = path
        super().__init__(message, **kwargs)


class ActionError(CodestreamError):
    """Errors from invoking a data-layer action."""

    def __init__(
        self,
        message: str,
        *,
        module: str | None = None,
        action: str | None = None,
        **kwargs,
    ):
        self.module = module
        self.action = action
        super().__init__(message, **kwargs)


class UnsupportedOperationError(ActionError):
    """No handler is registered for the requested (module, action) pair."""

    pass


class RegistrationError(CodestreamError):
    """Errors from registering a capability handler."""

    pass


class ConfigurationError(CodestreamError):
    """Errors from application configuration."""

    pass
