"""Backend factory for model-agnostic inference."""
from typing import Dict, Any
from .base import InferenceBackend
from ..errors import BackendUnavailableError
from ..storage import resolve_model_cache_root


def _detect_best_backend() -> str:
    """Auto-detect the best available backend based on hardware."""
    try:
        import torch
        if torch.cuda.is_available():
            # NVIDIA GPU detected - faster-whisper is fastest
            return "faster-whisper"
    except ImportError:
        pass

    # ONNX Runtime runs the int8 export on any CPU
    return "onnx"


def create_backend(config: Dict[str, Any]) -> InferenceBackend:
    """Factory function to create the appropriate inference backend.

    Args:
        config: Configuration dictionary with model settings

    Returns:
        InferenceBackend instance, already loaded

    Raises:
        ValueError: If the backend name is unknown
        BackendUnavailableError: If the backend's dependencies are missing
    """
    model = config["model"]
    backend = model.get("backend", "auto")

    # Auto-detect if requested
    if backend == "auto":
        backend = _detect_best_backend()
        print(f"[INFO] Auto-detected backend: {backend}")

    device = model.get("device", "cpu")
    model_cache = str(resolve_model_cache_root(config))

    if backend == "onnx":
        try:
            from .onnx_whisper import OnnxWhisperBackend
            return OnnxWhisperBackend(
                model_path=model["path"],
                device=device,
                num_threads=model.get("num_threads", 1),
                model_cache=model_cache
            )
        except ImportError as e:
            raise BackendUnavailableError(
                f"onnx backend requires onnxruntime package. "
                f"Install with: pip install onnxruntime\n"
                f"Error: {e}"
            ) from e

    elif backend == "faster-whisper":
        try:
            from .faster_whisper import FasterWhisperBackend
            return FasterWhisperBackend(
                model_name=model["name"],
                device=device,
                compute_type=model.get("compute_type", "int8"),
                model_cache=model_cache
            )
        except ImportError as e:
            raise BackendUnavailableError(
                f"faster-whisper backend requires faster-whisper package. "
                f"Install with: pip install faster-whisper\n"
                f"Error: {e}"
            ) from e

    else:
        raise ValueError(
            f"Unknown backend: {backend}. "
            f"Valid options: 'auto', 'onnx', 'faster-whisper'"
        )


__all__ = ["InferenceBackend", "create_backend"]
