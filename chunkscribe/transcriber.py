"""Chunked streaming transcription on top of an inference backend."""
import asyncio
import numbers
import threading
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, Iterator, Optional, Union

import numpy as np

from .errors import BackendTimeoutError, BackendUnavailableError, InferenceFailure

WINDOW_SECONDS = 30

AudioChunk = Union[np.ndarray, Iterable[float]]


@dataclass(frozen=True)
class GenerationParameters:
    """Decoding parameters passed unchanged to every inference call.

    Attributes:
        min_length: Floor on generated token count
        max_length: Ceiling on generated token count
        num_return_sequences: Candidate sequences returned per window (always 1)
        length_penalty: Multiplicative bias favoring longer/shorter output
        repetition_penalty: Multiplicative bias discouraging repeated tokens
        num_beams: Default beam count, overridable per transcribe call
    """

    min_length: int = 1
    max_length: int = 448
    num_return_sequences: int = 1
    length_penalty: float = 1.0
    repetition_penalty: float = 1.0
    num_beams: int = 1

    def __post_init__(self) -> None:
        if self.min_length < 1:
            raise ValueError(f"min_length must be >= 1, got {self.min_length}")
        if self.max_length < self.min_length:
            raise ValueError(
                f"max_length ({self.max_length}) must be >= min_length ({self.min_length})"
            )
        if self.num_return_sequences != 1:
            raise ValueError("num_return_sequences is fixed to 1")
        if self.num_beams < 1:
            raise ValueError(f"num_beams must be >= 1, got {self.num_beams}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "GenerationParameters":
        """Build parameters from the [generation] table of a config dict."""
        gen = config.get("generation", {})
        return cls(
            min_length=int(gen.get("min_length", 1)),
            max_length=int(gen.get("max_length", 448)),
            length_penalty=float(gen.get("length_penalty", 1.0)),
            repetition_penalty=float(gen.get("repetition_penalty", 1.0)),
            num_beams=int(gen.get("num_beams", 1)),
        )


def _check_backend(backend: Any) -> None:
    if backend is None or not callable(getattr(backend, "run", None)):
        raise BackendUnavailableError("Inference backend is missing or has no run() method")

    is_ready = getattr(backend, "is_ready", None)
    if callable(is_ready) and not is_ready():
        raise BackendUnavailableError("Inference backend is not ready")


async def _aiter_chunks(audio_stream: Union[AsyncIterable, Iterable]) -> AsyncIterator:
    if hasattr(audio_stream, "__aiter__"):
        async for chunk in audio_stream:
            yield chunk
    else:
        for chunk in audio_stream:
            yield chunk


class ChunkedTranscriber:
    """Splits audio chunks into fixed-duration windows and transcribes them in order.

    Every input chunk is windowed on its own, starting at offset 0, and yields
    exactly one text item: the concatenation of its windows' texts. Windows
    never span two chunks.
    """

    def __init__(
        self,
        backend,
        sample_rate: Union[int, float],
        params: Optional[GenerationParameters] = None,
        window_seconds: Union[int, float] = WINDOW_SECONDS,
        inference_timeout: Optional[float] = None,
    ):
        _check_backend(backend)
        if isinstance(sample_rate, bool) or not isinstance(sample_rate, numbers.Real) or sample_rate <= 0:
            raise ValueError(f"sample_rate must be a positive number, got {sample_rate!r}")

        window_size = int(sample_rate * window_seconds)
        if window_size < 1:
            raise ValueError(
                f"Window of {window_seconds}s at {sample_rate} Hz holds no samples"
            )

        self._backend = backend
        self._params = params if params is not None else GenerationParameters()
        self._sample_rate = sample_rate
        self._window_size = window_size
        self._inference_timeout = inference_timeout or None
        # One backend call at a time, including calls abandoned after a timeout
        self._backend_lock = threading.Lock()

    @classmethod
    def create(cls, config: Dict[str, Any], backend=None) -> "ChunkedTranscriber":
        """Build a transcriber (and, unless given, its backend) from config."""
        if backend is None:
            from .backends import create_backend

            try:
                backend = create_backend(config)
            except (BackendUnavailableError, ValueError):
                raise
            except Exception as e:
                raise BackendUnavailableError(f"Failed to load inference backend: {e}") from e

        audio = config.get("audio", {})
        timeout = config.get("runtime", {}).get("inference_timeout", 0)
        return cls(
            backend,
            sample_rate=audio.get("sample_rate", 16000),
            params=GenerationParameters.from_config(config),
            window_seconds=audio.get("window_seconds", WINDOW_SECONDS),
            inference_timeout=float(timeout) if timeout else None,
        )

    @property
    def sample_rate(self) -> Union[int, float]:
        return self._sample_rate

    @property
    def window_size(self) -> int:
        """Samples per inference window."""
        return self._window_size

    @property
    def params(self) -> GenerationParameters:
        return self._params

    def windows(self, chunk: AudioChunk) -> Iterator[np.ndarray]:
        """Yield read-only windows of a chunk, starting at offset 0."""
        samples = np.asarray(chunk, dtype=np.float32).reshape(-1)
        for start in range(0, len(samples), self._window_size):
            window = samples[start:start + self._window_size].copy()
            window.flags.writeable = False
            yield window

    def transcribe_chunk(self, chunk: AudioChunk, beams: Optional[int] = None) -> str:
        """Transcribe one chunk window by window and return the joined text."""
        beams = self._resolve_beams(beams)
        parts = []
        for window in self.windows(chunk):
            parts.append(self._run_window(window, beams))
        return "".join(parts)

    def iter_transcribe(
        self, chunks: Iterable[AudioChunk], beams: Optional[int] = None
    ) -> Iterator[str]:
        """Blocking generator: one text item per input chunk, in order."""
        for chunk in chunks:
            yield self.transcribe_chunk(chunk, beams)

    async def transcribe(
        self,
        audio_stream: Union[AsyncIterable[AudioChunk], Iterable[AudioChunk]],
        beams: Optional[int] = None,
    ) -> AsyncIterator[str]:
        """Stream one text item per input chunk.

        The next chunk is only pulled after the previous chunk's text has been
        consumed. Closing the generator stops further inference calls.

        Args:
            audio_stream: Async or plain iterable of float32 PCM chunks
            beams: Beam count for this stream (defaults to params.num_beams)

        Raises:
            InferenceFailure: A window's backend call failed
            BackendTimeoutError: A window's backend call exceeded the timeout
        """
        beams = self._resolve_beams(beams)
        async for chunk in _aiter_chunks(audio_stream):
            parts = []
            for window in self.windows(chunk):
                parts.append(await self._run_window_async(window, beams))
            yield "".join(parts)

    def _resolve_beams(self, beams: Optional[int]) -> int:
        if beams is None:
            return self._params.num_beams
        if beams < 1:
            raise ValueError(f"beams must be >= 1, got {beams}")
        return beams

    def _run_window(
        self, window: np.ndarray, beams: int, abandoned: Optional[threading.Event] = None
    ) -> Optional[str]:
        with self._backend_lock:
            # The awaiting caller may have gone while this call waited for the lock
            if abandoned is not None and abandoned.is_set():
                return None
            try:
                text = self._backend.run(window, self._params, beams)
            except InferenceFailure:
                raise
            except Exception as e:
                raise InferenceFailure(
                    f"Inference failed on window of {len(window)} samples: {e}"
                ) from e

        if isinstance(text, bytes):
            text = text.decode("utf-8", errors="replace")
        if not isinstance(text, str):
            raise InferenceFailure(
                f"Backend returned {type(text).__name__} instead of text "
                f"for window of {len(window)} samples"
            )
        return text

    async def _run_window_async(self, window: np.ndarray, beams: int) -> str:
        """Run one window on a daemon thread and await its result.

        A cancelled or timed-out caller marks the call abandoned; an abandoned
        call still waiting for the backend lock never reaches the backend.
        """
        loop = asyncio.get_running_loop()
        result = loop.create_future()
        abandoned = threading.Event()

        def settle(value, error):
            if result.done():
                return
            if error is not None:
                result.set_exception(error)
            else:
                result.set_result(value)

        def worker():
            try:
                value, error = self._run_window(window, beams, abandoned), None
            except Exception as e:
                value, error = None, e
            try:
                loop.call_soon_threadsafe(settle, value, error)
            except RuntimeError:
                pass  # loop already closed

        threading.Thread(target=worker, daemon=True, name="chunkscribe-inference").start()

        try:
            if self._inference_timeout is None:
                return await result
            return await asyncio.wait_for(result, timeout=self._inference_timeout)
        except asyncio.TimeoutError as e:
            abandoned.set()
            raise BackendTimeoutError(
                f"Inference exceeded {self._inference_timeout:.1f}s "
                f"on window of {len(window)} samples"
            ) from e
        except BaseException:
            abandoned.set()
            raise
