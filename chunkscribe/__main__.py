"""Main entry point for chunkscribe."""
import argparse
import asyncio
import contextlib
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from .audio_source import read_pcm_chunks
from .config import load_config, save_config
from .errors import ChunkscribeError
from .pipeline import TranscriptionPipeline
from .transcriber import ChunkedTranscriber


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chunkscribe",
        description="chunkscribe - Stream decoded PCM audio through Whisper in 30-second windows"
    )
    parser.add_argument(
        "audio",
        nargs="?",
        help="Raw little-endian float32 PCM file or .npy array (mono, already decoded)"
    )
    parser.add_argument("--config", type=Path, help="Path to config.toml")
    parser.add_argument(
        "--backend",
        choices=["auto", "onnx", "faster-whisper"],
        help="Inference backend (overrides config)"
    )
    parser.add_argument("--sample-rate", type=int, help="Sample rate of the input audio")
    parser.add_argument(
        "--chunk-seconds",
        type=float,
        help="Seconds of audio per input chunk (overrides config)"
    )
    parser.add_argument("--beams", type=int, help="Beam count for decoding")
    parser.add_argument(
        "--mic",
        action="store_true",
        help="Transcribe from the default microphone until Ctrl+C"
    )
    parser.add_argument(
        "--write-config",
        type=Path,
        metavar="PATH",
        help="Write the effective configuration (config file plus overrides) to PATH and exit"
    )
    return parser


def _apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    if args.backend:
        config["model"]["backend"] = args.backend
    if args.sample_rate:
        config["audio"]["sample_rate"] = args.sample_rate
    if args.chunk_seconds:
        config["audio"]["chunk_seconds"] = args.chunk_seconds
    return config


def _chunk_samples(config: Dict[str, Any]) -> int:
    audio = config["audio"]
    return max(1, int(audio["sample_rate"] * audio["chunk_seconds"]))


async def _transcribe_file(
    transcriber: ChunkedTranscriber,
    path: Path,
    chunk_samples: int,
    beams: Optional[int],
    out: TextIO,
) -> int:
    count = 0
    async for text in transcriber.transcribe(read_pcm_chunks(path, chunk_samples), beams=beams):
        print(text, file=out, flush=True)
        count += 1
    return count


def _transcribe_mic(
    transcriber: ChunkedTranscriber,
    config: Dict[str, Any],
    beams: Optional[int],
    out: TextIO,
) -> None:
    from .recorder import AudioRecorder

    recorder = AudioRecorder(
        sample_rate=config["audio"]["sample_rate"],
        input_device=config["audio"]["input_device"],
        chunk_seconds=config["audio"]["chunk_seconds"],
    )
    pipeline = TranscriptionPipeline(
        transcriber,
        output_fn=lambda text: print(text, file=out, flush=True),
        beams=beams,
    )

    pipeline.start()
    recorder.start()
    print("[INFO] Press Ctrl+C to stop")
    try:
        for chunk in recorder.chunks():
            pipeline.enqueue(chunk)
    except KeyboardInterrupt:
        # Flush what was captured before the interrupt
        recorder.stop()
        for chunk in recorder.chunks():
            pipeline.enqueue(chunk)
    finally:
        recorder.stop()

    pipeline.close()
    pipeline.join()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.write_config:
        config = _apply_overrides(load_config(path=args.config, quiet=True), args)
        try:
            save_config(args.write_config, config)
        except OSError as e:
            print(f"[ERR] Failed to write {args.write_config}: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"[OK] Wrote config to {args.write_config}", file=sys.stderr)
        return

    if not args.mic and not args.audio:
        parser.error("an audio file is required unless --mic is given")

    if args.audio and not Path(args.audio).is_file():
        parser.error(f"audio file not found: {args.audio}")

    config = _apply_overrides(load_config(path=args.config, quiet=True), args)

    # Transcripts own stdout; status lines from every component go to stderr
    out = sys.stdout
    with contextlib.redirect_stdout(sys.stderr):
        print("[INFO] Initializing chunkscribe...")
        try:
            transcriber = ChunkedTranscriber.create(config)

            if args.mic:
                _transcribe_mic(transcriber, config, args.beams, out)
            else:
                count = asyncio.run(_transcribe_file(
                    transcriber, Path(args.audio), _chunk_samples(config), args.beams, out
                ))
                print(f"[OK] Transcribed {count} chunk(s)")

        except KeyboardInterrupt:
            print("\n[INFO] Interrupted by user")
        except (ChunkscribeError, OSError, ValueError) as e:
            print(f"\n[ERR] Fatal error: {e}")
            sys.exit(1)


if __name__ == "__main__":
    main()
