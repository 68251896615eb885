"""Transcription worker pipeline: runs chunked inference off the audio capture thread."""
import queue
import threading
from typing import Any, Callable, Optional

from .errors import StreamConsumerError

_END = object()


class TranscriptionPipeline:
    """Worker thread that owns the inference loop for one transcriber.

    The producer calls enqueue(chunk), which blocks while max_pending chunks
    are waiting. The worker takes the next chunk only after output_fn has
    returned for the previous one, so at most one chunk is being transcribed.
    """

    def __init__(
        self,
        transcriber,
        output_fn: Callable[[str], None],
        max_pending: int = 1,
        beams: Optional[int] = None,
    ):
        """
        Args:
            transcriber: ChunkedTranscriber with .transcribe_chunk(chunk, beams) -> str
            output_fn: Called with each chunk's text on the worker thread
            max_pending: Chunks allowed to wait before enqueue() blocks
            beams: Beam count override passed to every chunk
        """
        self._transcriber = transcriber
        self._output_fn = output_fn
        self._beams = beams
        self._queue: queue.Queue = queue.Queue(maxsize=max_pending)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None
        self._closed = False

        # Callbacks wired by caller (all called from worker thread)
        self.transcription_started: Optional[Callable[[], None]] = None
        self.transcription_completed: Optional[Callable[[str], None]] = None
        self.error_occurred: Optional[Callable[[str], None]] = None

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def start(self) -> None:
        """Start the worker thread."""
        self._stop.clear()
        self._error = None
        self._closed = False
        self._thread = threading.Thread(
            target=self._worker, daemon=True, name="chunkscribe-pipeline"
        )
        self._thread.start()

    def enqueue(self, chunk: Any, poll_interval: float = 0.1) -> None:
        """Submit a chunk, blocking while the queue is full.

        Raises:
            InferenceFailure, StreamConsumerError: If the worker already failed
            RuntimeError: If the pipeline is stopped or closed
        """
        if self._closed:
            raise RuntimeError("Pipeline is closed")
        self._put(chunk, poll_interval)

    def close(self) -> None:
        """Signal end of stream; the worker exits after the queued chunks."""
        self._put(_END, 0.1)
        self._closed = True

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the worker to finish and re-raise its failure, if any."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if not self._thread.is_alive():
                self._thread = None
        self._raise_if_failed()

    def stop(self) -> None:
        """Signal stop and join the worker thread (timeout=5s)."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error

    def _put(self, item: Any, poll_interval: float) -> None:
        while True:
            self._raise_if_failed()
            if self._stop.is_set():
                raise RuntimeError("Pipeline is stopped")
            try:
                self._queue.put(item, timeout=poll_interval)
                return
            except queue.Full:
                continue

    def _worker(self) -> None:
        """Worker loop, runs on the dedicated thread."""
        while not self._stop.is_set():
            try:
                chunk = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue

            if chunk is _END:
                break

            try:
                if self.transcription_started:
                    self.transcription_started()

                text = self._transcriber.transcribe_chunk(chunk, self._beams)

                try:
                    self._output_fn(text)
                except Exception as exc:
                    raise StreamConsumerError(f"Text consumer failed: {exc}") from exc

                if self.transcription_completed:
                    self.transcription_completed(text)

            except Exception as exc:
                self._error = exc
                self._stop.set()
                message = str(exc)
                if self.error_occurred:
                    self.error_occurred(message)
                print(f"[ERR] Transcription failed: {message}")
                break
