"""Model cache paths and model location resolution."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlparse

DEFAULT_MODEL_URI = "whisper_cpu_int8_0_model.onnx"
HF_SCHEME = "hf://"


def _expanded_path(value: str) -> Path:
    return Path(value).expanduser()


def _default_hf_hub_cache_path() -> Path:
    try:
        from huggingface_hub.constants import HF_HUB_CACHE

        return Path(HF_HUB_CACHE).expanduser()
    except Exception:
        return Path.home() / ".cache" / "huggingface" / "hub"


def _normalize_model_cache_root(path: Path) -> Path:
    return path.parent if path.name.lower() == "hub" else path


def resolve_model_cache_root(config: Dict[str, Any]) -> Path:
    configured = config.get("paths", {}).get("model_cache", "")
    if isinstance(configured, str) and configured.strip():
        return _normalize_model_cache_root(_expanded_path(configured.strip()))

    # Keep compatibility with default Hugging Face cache behavior.
    return _default_hf_hub_cache_path().parent


def _split_hf_uri(uri: str) -> tuple[str, str]:
    """Split ``hf://owner/repo/path/in/repo.onnx`` into repo id and filename."""
    parts = uri[len(HF_SCHEME):].strip("/").split("/")
    if len(parts) < 3 or not all(parts):
        raise ValueError(
            f"Invalid Hugging Face model URI '{uri}'. Expected hf://<owner>/<repo>/<filename>"
        )
    return "/".join(parts[:2]), "/".join(parts[2:])


def resolve_model_source(uri: str, cache_root: Optional[str | Path] = None) -> Path:
    """Resolve a model location to a local file.

    Supported forms:
        - local paths (``~`` is expanded)
        - ``file://`` URIs
        - ``hf://<owner>/<repo>/<filename>``, downloaded into ``<cache_root>/hub``

    Raises:
        ValueError: For unsupported URI schemes
        FileNotFoundError: If a local model file does not exist
    """
    uri = uri.strip()
    if not uri:
        raise ValueError("Model location is empty")

    if uri.startswith(HF_SCHEME):
        repo_id, filename = _split_hf_uri(uri)
        try:
            from huggingface_hub import hf_hub_download
        except Exception as exc:
            raise RuntimeError(f"huggingface_hub is required for model download: {exc}") from exc

        cache_dir = None
        if cache_root:
            cache_dir = str(_normalize_model_cache_root(_expanded_path(str(cache_root))) / "hub")
        print(f"[INFO] Resolving model {filename} from {repo_id}...")
        return Path(hf_hub_download(repo_id=repo_id, filename=filename, cache_dir=cache_dir))

    parsed = urlparse(uri)
    if parsed.scheme == "file":
        path = Path(unquote(parsed.path))
    elif parsed.scheme in ("http", "https"):
        raise ValueError(
            f"Unsupported model location '{uri}'. Direct downloads are not supported; "
            f"host the model on the Hugging Face Hub and use hf://<owner>/<repo>/<filename>"
        )
    elif parsed.scheme and len(parsed.scheme) > 1:
        raise ValueError(
            f"Unsupported model location '{uri}'. Use a local path, file:// or hf:// URI"
        )
    else:
        # Windows drive letters parse as one-letter schemes
        path = _expanded_path(uri)

    if not path.is_file():
        raise FileNotFoundError(f"Model file not found: {path}")
    return path
