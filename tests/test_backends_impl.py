"""Tests for backend implementation modules with mocked third-party deps."""
import os
import sys
import types

import numpy as np
import pytest

from chunkscribe.backends.faster_whisper import FasterWhisperBackend
from chunkscribe.backends.onnx_whisper import OnnxWhisperBackend, _select_providers
from chunkscribe.errors import InferenceFailure
from chunkscribe.transcriber import ChunkedTranscriber, GenerationParameters


def _fake_ort(calls, providers=("CPUExecutionProvider",), output=None, fail_load=False):
    class FakeSessionOptions:
        pass

    class FakeSession:
        def __init__(self, path, sess_options=None, providers=None):
            if fail_load:
                raise RuntimeError("invalid model file")
            calls["init"] = (path, sess_options, providers)

        def run(self, output_names, feed):
            calls["run"] = (output_names, feed)
            if output is not None:
                return [output]
            return [np.array([["decoded text"]], dtype=object)]

    return types.SimpleNamespace(
        SessionOptions=FakeSessionOptions,
        InferenceSession=FakeSession,
        get_available_providers=lambda: list(providers),
    )


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "whisper.onnx"
    path.write_bytes(b"onnx")
    return path


def test_select_providers_cpu_only_by_default():
    assert _select_providers(["CUDAExecutionProvider", "CPUExecutionProvider"], "cpu") == [
        "CPUExecutionProvider"
    ]


def test_select_providers_prefers_cuda_when_requested():
    assert _select_providers(["CUDAExecutionProvider", "CPUExecutionProvider"], "cuda") == [
        "CUDAExecutionProvider",
        "CPUExecutionProvider",
    ]


def test_select_providers_warns_when_cuda_missing(capsys):
    assert _select_providers(["CPUExecutionProvider"], "cuda") == ["CPUExecutionProvider"]
    assert "[WARN]" in capsys.readouterr().out


def test_onnx_backend_init_sets_session_options(monkeypatch, model_file, capsys):
    calls = {}
    monkeypatch.setitem(sys.modules, "onnxruntime", _fake_ort(calls))

    backend = OnnxWhisperBackend(model_path=str(model_file))

    path, options, providers = calls["init"]
    assert path == str(model_file)
    assert options.intra_op_num_threads == 1
    assert options.log_severity_level == 3
    assert options.log_verbosity_level == 3
    assert providers == ["CPUExecutionProvider"]
    assert backend.is_ready() is True
    assert "[OK] Model loaded and ready" in capsys.readouterr().out


def test_onnx_backend_run_builds_feed_from_parameters(monkeypatch, model_file):
    calls = {}
    monkeypatch.setitem(sys.modules, "onnxruntime", _fake_ort(calls))
    backend = OnnxWhisperBackend(model_path=str(model_file))
    params = GenerationParameters(min_length=2, max_length=300, length_penalty=0.8, repetition_penalty=1.2)

    text = backend.run(np.array([0.1, 0.2, 0.3], dtype=np.float32), params, beams=4)

    output_names, feed = calls["run"]
    assert text == "decoded text"
    assert output_names == ["str"]
    assert feed["audio_pcm"].shape == (1, 3)
    assert feed["audio_pcm"].dtype == np.float32
    assert feed["max_length"].tolist() == [300]
    assert feed["max_length"].dtype == np.int32
    assert feed["min_length"].tolist() == [2]
    assert feed["num_beams"].tolist() == [4]
    assert feed["num_return_sequences"].tolist() == [1]
    assert feed["length_penalty"].dtype == np.float32
    assert feed["length_penalty"].tolist() == pytest.approx([0.8])
    assert feed["repetition_penalty"].tolist() == pytest.approx([1.2])


def test_onnx_backend_decodes_byte_outputs(monkeypatch, model_file):
    calls = {}
    output = np.array([[b"caf\xc3\xa9"]], dtype=object)
    monkeypatch.setitem(sys.modules, "onnxruntime", _fake_ort(calls, output=output))
    backend = OnnxWhisperBackend(model_path=str(model_file))

    assert backend.run(np.array([0.1], dtype=np.float32), GenerationParameters()) == "café"


def test_onnx_backend_rejects_malformed_window(monkeypatch, model_file):
    calls = {}
    monkeypatch.setitem(sys.modules, "onnxruntime", _fake_ort(calls))
    backend = OnnxWhisperBackend(model_path=str(model_file))

    with pytest.raises(InferenceFailure):
        backend.run(np.zeros((2, 2), dtype=np.float32), GenerationParameters())
    assert "run" not in calls


def test_onnx_backend_missing_model_file_raises(monkeypatch, tmp_path):
    monkeypatch.setitem(sys.modules, "onnxruntime", _fake_ort({}))
    with pytest.raises(FileNotFoundError):
        OnnxWhisperBackend(model_path=str(tmp_path / "missing.onnx"))


def test_onnx_backend_load_failure_prints_hint_and_reraises(monkeypatch, model_file, capsys):
    monkeypatch.setitem(sys.modules, "onnxruntime", _fake_ort({}, fail_load=True))
    with pytest.raises(RuntimeError, match="invalid model file"):
        OnnxWhisperBackend(model_path=str(model_file))
    assert "[ERR] Failed to load model" in capsys.readouterr().out


def test_onnx_backend_drives_chunked_transcriber(monkeypatch, model_file):
    calls = {}
    monkeypatch.setitem(sys.modules, "onnxruntime", _fake_ort(calls))
    backend = OnnxWhisperBackend(model_path=str(model_file))
    transcriber = ChunkedTranscriber(backend, sample_rate=10, window_seconds=1)

    text = transcriber.transcribe_chunk(np.zeros(25, dtype=np.float32))

    assert text == "decoded text" * 3
    assert calls["run"][1]["audio_pcm"].shape == (1, 5)


def test_faster_whisper_backend_init_and_run(monkeypatch):
    calls = {}

    class Seg:
        def __init__(self, text):
            self.text = text

    class FakeModel:
        def __init__(self, model_name, device, compute_type):
            calls["init"] = (model_name, device, compute_type)

        def transcribe(self, audio, **kwargs):
            calls["transcribe"] = (len(audio), kwargs)
            return [Seg(" hello "), Seg("world")], None

    monkeypatch.setitem(sys.modules, "faster_whisper", types.SimpleNamespace(WhisperModel=FakeModel))

    backend = FasterWhisperBackend(model_name="tiny", device="cpu", compute_type="int8")
    params = GenerationParameters(length_penalty=0.9, repetition_penalty=1.1)
    text = backend.run(np.array([0.1, 0.2], dtype=np.float32), params, beams=3)

    assert calls["init"] == ("tiny", "cpu", "int8")
    length, kwargs = calls["transcribe"]
    assert length == 2
    assert kwargs["beam_size"] == 3
    assert kwargs["length_penalty"] == 0.9
    assert kwargs["repetition_penalty"] == 1.1
    assert kwargs["max_new_tokens"] is None
    assert kwargs["language"] is None
    assert text == "hello world"
    assert backend.is_ready() is True


def test_faster_whisper_backend_forwards_tighter_token_ceiling(monkeypatch):
    calls = {}

    class FakeModel:
        def __init__(self, *args, **kwargs):
            pass

        def transcribe(self, audio, **kwargs):
            calls.update(kwargs)
            return [], None

    monkeypatch.setitem(sys.modules, "faster_whisper", types.SimpleNamespace(WhisperModel=FakeModel))
    backend = FasterWhisperBackend()

    assert backend.run(np.array([0.1], dtype=np.float32), GenerationParameters(max_length=64)) == ""
    assert calls["max_new_tokens"] == 64


def test_faster_whisper_backend_propagates_errors(monkeypatch):
    class FakeModel:
        def __init__(self, *args, **kwargs):
            pass

        def transcribe(self, *args, **kwargs):
            raise RuntimeError("boom")

    monkeypatch.setitem(sys.modules, "faster_whisper", types.SimpleNamespace(WhisperModel=FakeModel))
    backend = FasterWhisperBackend()
    transcriber = ChunkedTranscriber(backend, sample_rate=10)

    with pytest.raises(InferenceFailure, match="boom"):
        transcriber.transcribe_chunk(np.array([1.0], dtype=np.float32))


def test_faster_whisper_backend_rejects_empty_window(monkeypatch):
    class FakeModel:
        def __init__(self, *args, **kwargs):
            pass

    monkeypatch.setitem(sys.modules, "faster_whisper", types.SimpleNamespace(WhisperModel=FakeModel))
    backend = FasterWhisperBackend()
    with pytest.raises(InferenceFailure):
        backend.run(np.array([], dtype=np.float32), GenerationParameters())


def test_faster_whisper_backend_sets_model_cache(monkeypatch):
    class FakeModel:
        def __init__(self, *args, **kwargs):
            pass

    monkeypatch.setitem(sys.modules, "faster_whisper", types.SimpleNamespace(WhisperModel=FakeModel))
    monkeypatch.setenv("HF_HOME", "unset")
    monkeypatch.setenv("HF_HUB_CACHE", "unset")
    FasterWhisperBackend(model_cache="D:/cache")
    assert os.environ["HF_HOME"] == "D:/cache"
    assert os.environ["HF_HUB_CACHE"] == os.path.join("D:/cache", "hub")


def test_faster_whisper_backend_load_failure_prints_hint(monkeypatch, capsys):
    class FakeModel:
        def __init__(self, *args, **kwargs):
            raise RuntimeError("Unable to load model.bin")

    monkeypatch.setitem(sys.modules, "faster_whisper", types.SimpleNamespace(WhisperModel=FakeModel))
    with pytest.raises(RuntimeError):
        FasterWhisperBackend(model_name="tiny")
    out = capsys.readouterr().out
    assert "[ERR] Failed to load model 'tiny'" in out
    assert "restart chunkscribe" in out
