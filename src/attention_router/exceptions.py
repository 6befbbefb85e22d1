"""Exception hierarchy for the routing engine."""


class AttentionRouterError(Exception):
    """Base exception for the package."""


class EmbeddingError(AttentionRouterError):
    """Embedding provider or network failure."""


class LLMError(AttentionRouterError):
    """Generic LLM provider failure."""


class LLMTimeoutError(LLMError):
    """The LLM call exceeded its timeout."""


class LLMRateLimitError(LLMError):
    """The LLM provider rejected the call with a rate limit."""


class LLMServerError(LLMError):
    """The LLM provider returned a 5xx error."""


class UnknownToolError(AttentionRouterError, KeyError):
    """A tool name is not registered."""


class ToolExecutionError(AttentionRouterError):
    """A tool handler failed."""
