"""Error types raised by chunkscribe."""


class ChunkscribeError(Exception):
    """Base class for all chunkscribe errors."""


class BackendUnavailableError(ChunkscribeError):
    """The inference backend could not be loaded or is not ready."""


class InferenceFailure(ChunkscribeError):
    """A single window's inference call failed."""


class BackendTimeoutError(InferenceFailure):
    """A single window's inference call exceeded the configured timeout."""


class StreamConsumerError(ChunkscribeError):
    """The downstream consumer of transcribed text failed."""
