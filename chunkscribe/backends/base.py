"""Base protocol for inference backends."""
from typing import TYPE_CHECKING, Protocol

import numpy as np

from ..errors import InferenceFailure

if TYPE_CHECKING:
    from ..transcriber import GenerationParameters


class InferenceBackend(Protocol):
    """Protocol for speech-to-text inference backends.

    Any engine (ONNX Runtime, CTranslate2, cloud APIs, etc.) can implement this
    interface. A backend owns its model weights and execution resources and is
    invoked by one transcriber at a time.
    """

    def is_ready(self) -> bool:
        """Return True once the model is loaded and can run inference."""
        ...

    def run(self, window: np.ndarray, params: "GenerationParameters", beams: int = 1) -> str:
        """Decode one audio window to text.

        Args:
            window: 1-D float32 PCM samples, at most one window long
            params: Decoding parameters fixed for the transcriber's lifetime
            beams: Beam count for this call

        Returns:
            Decoded text for the window

        Raises:
            InferenceFailure: If the window is malformed or decoding fails
        """
        ...


def validate_window(window) -> np.ndarray:
    """Return the window as a 1-D float32 array, rejecting malformed shapes."""
    audio = np.asarray(window, dtype=np.float32)
    if audio.ndim != 1 or audio.size == 0:
        raise InferenceFailure(f"Malformed audio window with shape {audio.shape}")
    return audio
