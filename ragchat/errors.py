"""Exception hierarchy shared by the retrieval engine and its collaborators."""


class RagChatError(Exception):
    """Base class for all ragchat errors."""


class InvalidChunkConfig(RagChatError, ValueError):
    """Window and overlap sizes do not give a positive stride."""


class ZeroMagnitudeVector(RagChatError):
    """Cosine similarity is undefined for an all-zero vector."""


class EmbeddingError(RagChatError):
    """The embedding model could not be reached or returned bad data."""


class GenerationError(RagChatError):
    """The completion model could not be reached or returned bad data."""


class FetchError(RagChatError):
    """A source document could not be downloaded or read."""


class ConvertError(RagChatError):
    """A source document could not be turned into plain text."""


class SerializationError(RagChatError):
    """A persisted vector store is malformed."""
