"""chunkscribe - streaming speech-to-text over fixed 30-second windows."""
from .errors import (
    BackendTimeoutError,
    BackendUnavailableError,
    ChunkscribeError,
    InferenceFailure,
    StreamConsumerError,
)
from .transcriber import ChunkedTranscriber, GenerationParameters

__version__ = "0.1.0"

__all__ = [
    "BackendTimeoutError",
    "BackendUnavailableError",
    "ChunkedTranscriber",
    "ChunkscribeError",
    "GenerationParameters",
    "InferenceFailure",
    "StreamConsumerError",
]
