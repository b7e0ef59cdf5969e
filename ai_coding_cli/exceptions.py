"""Custom exceptions for AI Coding CLI."""


class AICodingCLIError(Exception):
    """Base exception for AI Coding CLI."""

    pass


class ConfigurationError(AICodingCLIError):
    """Configuration-related errors."""

    pass


class LLMError(AICodingCLIError):
    """Inference service errors."""

    pass


class LLMAPIError(LLMError):
    """Inference API errors (bad status, connection failure, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CommandError(AICodingCLIError):
    """Command execution errors."""

    pass


class CommandBlockedError(CommandError):
    """Command refused by the blocked-pattern policy."""

    def __init__(self, command: str, reason: str):
        super().__init__(f"Command blocked: {reason}")
        self.command = command
        self.reason = reason


class SessionError(AICodingCLIError):
    """Conversation persistence errors."""

    pass


class SessionNotFoundError(SessionError):
    """Conversation not found."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ValidationError(AICodingCLIError):
    """Validation errors."""

    pass
