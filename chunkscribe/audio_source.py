"""File-backed PCM chunk source. Samples must already be decoded mono float32."""
from pathlib import Path
from typing import Iterator, Union

import numpy as np


def read_pcm_chunks(path: Union[str, Path], chunk_samples: int) -> Iterator[np.ndarray]:
    """Yield float32 chunks of at most chunk_samples from a PCM file.

    ``.npy`` files are memory-mapped and flattened; anything else is read as
    raw little-endian float32 samples.
    """
    if chunk_samples < 1:
        raise ValueError(f"chunk_samples must be >= 1, got {chunk_samples}")

    path = Path(path)
    if path.suffix.lower() == ".npy":
        samples = np.load(path, mmap_mode="r").reshape(-1)
        for start in range(0, len(samples), chunk_samples):
            yield np.asarray(samples[start:start + chunk_samples], dtype=np.float32)
        return

    with open(path, "rb") as f:
        while True:
            chunk = np.fromfile(f, dtype="<f4", count=chunk_samples)
            if chunk.size == 0:
                break
            yield chunk.astype(np.float32, copy=False)
