"""Custom exception hierarchy for the campus RAG core."""


class RAGEngineError(Exception):
    """Base exception for all campus RAG errors."""


class InvalidInputError(RAGEngineError):
    """Caller input rejected before any retrieval work."""


class EmbeddingError(RAGEngineError):
    """Error generating embeddings."""


class RetrievalError(RAGEngineError):
    """Error during retrieval."""


class IndexMissingError(RetrievalError):
    """The search index does not exist yet."""


class GenerationError(RAGEngineError):
    """Error during completion or answer generation."""


class GenerationTimeoutError(GenerationError):
    """The completion provider did not finish in time."""


class PersistenceError(RAGEngineError):
    """Error reading from or writing to a store."""


class ConfigurationError(RAGEngineError):
    """Error in system configuration."""


class ServiceUnavailableError(RAGEngineError):
    """Fatal turn failure. The message is safe to show to end users."""

    def __init__(self, message: str = "服务暂时不可用，请稍后重试") -> None:
        super().__init__(message)
