"""Microphone audio source."""
import sounddevice as sd
import numpy as np
import queue
from typing import Iterator, List, Optional


class AudioRecorder:
    """Records mono float32 audio and hands it out in fixed-length chunks."""

    def __init__(
        self,
        sample_rate: int = 16000,
        input_device: str = "default",
        chunk_seconds: float = 30.0,
    ):
        self.sample_rate = sample_rate
        self.input_device = None if input_device == "default" else input_device
        self.chunk_samples = max(1, int(sample_rate * chunk_seconds))
        self.is_recording = False
        self.audio_queue: Optional[queue.Queue] = None
        self.stream: Optional[sd.InputStream] = None
        self._pending: List[np.ndarray] = []
        self._pending_len = 0

    def _audio_callback(self, indata, frames, time, status):
        """Callback for audio stream."""
        if self.is_recording and self.audio_queue is not None:
            self.audio_queue.put(indata.copy())

    def start(self) -> None:
        """Start recording audio."""
        if self.is_recording:
            return

        self.is_recording = True
        self.audio_queue = queue.Queue()
        self._pending = []
        self._pending_len = 0
        print("[REC] Recording...")

        try:
            self.stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype='float32',
                callback=self._audio_callback,
                device=self.input_device
            )
            self.stream.start()
        except sd.PortAudioError as e:
            print(f"[ERR] Could not open input device: {e}")
            print("      Available devices:")
            print(sd.query_devices())
            print("      Set [audio] input_device in config.toml to one of the above.")
            self.is_recording = False
            self.audio_queue = None
            self.stream = None
            raise

    def stop(self) -> None:
        """Stop recording. Frames already captured stay available to chunks()."""
        if not self.is_recording:
            return

        self.is_recording = False

        if self.stream:
            self.stream.stop()
            self.stream.close()
            self.stream = None

        print("[INFO] Recording stopped")

    def chunks(self, poll_interval: float = 0.1) -> Iterator[np.ndarray]:
        """Yield chunks of chunk_samples while recording, then the remaining tail.

        Calling it again after an interruption resumes where the last call left off.
        """
        if self.audio_queue is None:
            raise RuntimeError("Recorder has not been started")

        while True:
            try:
                block = self.audio_queue.get(timeout=poll_interval)
            except queue.Empty:
                if not self.is_recording:
                    break
                continue

            block = block.reshape(-1)
            self._pending.append(block)
            self._pending_len += len(block)

            while self._pending_len >= self.chunk_samples:
                buffered = np.concatenate(self._pending)
                rest = buffered[self.chunk_samples:]
                self._pending = [rest] if len(rest) else []
                self._pending_len = len(rest)
                yield buffered[:self.chunk_samples]

        if self._pending_len:
            tail = np.concatenate(self._pending)
            self._pending = []
            self._pending_len = 0
            yield tail
