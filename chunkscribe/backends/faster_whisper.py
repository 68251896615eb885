"""Faster Whisper backend (CTranslate2) - NVIDIA GPUs and CPU."""
import os
import numpy as np

from .base import validate_window

# Decoder context of every Whisper checkpoint, prompt tokens included
MAX_DECODER_TOKENS = 448


class FasterWhisperBackend:
    """Backend using faster-whisper (CTranslate2).

    Best for: NVIDIA GPUs with CUDA support
    Pros: Fastest inference on NVIDIA, excellent quality
    Cons: Requires CTranslate2 wheels matching the CUDA runtime
    """

    def __init__(
        self,
        model_name: str = "large-v3-turbo",
        device: str = "cuda",
        compute_type: str = "float16",
        model_cache: str = ""
    ):
        # Set cache paths BEFORE importing faster_whisper
        if model_cache:
            os.environ['HF_HOME'] = model_cache
            os.environ['HF_HUB_CACHE'] = os.path.join(model_cache, 'hub')

        from faster_whisper import WhisperModel

        self.model_name = model_name
        self.model = None
        print(f"[INFO] Loading Faster Whisper model: {model_name} on {device}...")
        try:
            self.model = WhisperModel(model_name, device=device, compute_type=compute_type)
            print("[OK] Model loaded and ready")
        except Exception as e:
            msg = str(e).lower()
            if any(kw in msg for kw in ("corrupt", "model", "load", "download")):
                print(f"[ERR] Failed to load model '{model_name}': {e}")
                print("      The model cache may be corrupt. Delete and re-download:")
                print("      Delete the model from your cache directory, then restart chunkscribe.")
            raise

    def is_ready(self) -> bool:
        return self.model is not None

    def run(self, window: np.ndarray, params, beams: int = 1) -> str:
        """Decode one window with the fixed generation parameters."""
        audio = validate_window(window)

        # faster-whisper already stops at the decoder limit; only tighter ceilings are passed
        max_new_tokens = params.max_length if params.max_length < MAX_DECODER_TOKENS else None

        segments, _ = self.model.transcribe(
            audio,
            language=None,  # Auto-detect
            beam_size=beams,
            length_penalty=params.length_penalty,
            repetition_penalty=params.repetition_penalty,
            max_new_tokens=max_new_tokens,
            vad_filter=False,
        )

        return " ".join(seg.text.strip() for seg in segments).strip()
