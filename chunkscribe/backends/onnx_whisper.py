"""ONNX Runtime backend for Whisper end-to-end (beam search) models."""
from typing import List

import numpy as np

from ..storage import DEFAULT_MODEL_URI, resolve_model_source
from .base import validate_window


def _select_providers(available: List[str], device: str) -> List[str]:
    """Pick execution providers for the requested device, CPU always last."""
    providers = []
    if device == "cuda" and "CUDAExecutionProvider" in available:
        providers.append("CUDAExecutionProvider")
    elif device == "cuda":
        print("[WARN] CUDAExecutionProvider not available, running on CPU")
    providers.append("CPUExecutionProvider")
    return providers


class OnnxWhisperBackend:
    """Whisper exported with its decoding loop built into the ONNX graph.

    Best for: CPU-only machines and portable int8 models
    Pros: Single model file, no PyTorch, decoding parameters are graph inputs
    Cons: Slower than CTranslate2 on NVIDIA GPUs
    """

    def __init__(
        self,
        model_path: str = DEFAULT_MODEL_URI,
        device: str = "cpu",
        num_threads: int = 1,
        model_cache: str = "",
        log_severity_level: int = 3,
    ):
        import onnxruntime as ort

        source = resolve_model_source(model_path, model_cache or None)

        options = ort.SessionOptions()
        options.intra_op_num_threads = num_threads
        options.log_severity_level = log_severity_level
        options.log_verbosity_level = log_severity_level

        providers = _select_providers(ort.get_available_providers(), device)

        self.model_path = str(source)
        self.session = None
        print(f"[INFO] Loading ONNX Whisper model: {source} on {providers[0]}...")
        try:
            self.session = ort.InferenceSession(
                self.model_path, sess_options=options, providers=providers
            )
            print("[OK] Model loaded and ready")
        except Exception as e:
            print(f"[ERR] Failed to load model '{source}': {e}")
            print("      Check that the file is a Whisper end-to-end ONNX export.")
            raise

    def is_ready(self) -> bool:
        return self.session is not None

    def run(self, window: np.ndarray, params, beams: int = 1) -> str:
        """Decode one window through the exported beam-search graph."""
        audio = validate_window(window)
        feed = {
            "audio_pcm": audio.reshape(1, -1),
            "max_length": np.array([params.max_length], dtype=np.int32),
            "min_length": np.array([params.min_length], dtype=np.int32),
            "num_beams": np.array([beams], dtype=np.int32),
            "num_return_sequences": np.array([params.num_return_sequences], dtype=np.int32),
            "length_penalty": np.array([params.length_penalty], dtype=np.float32),
            "repetition_penalty": np.array([params.repetition_penalty], dtype=np.float32),
        }

        outputs = self.session.run(["str"], feed)
        text = np.asarray(outputs[0]).reshape(-1)[0]
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        return str(text)
