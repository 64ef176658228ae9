"""Audio channel tooling — probe channel count/duration, split stereo recordings and cut long ones into chunks.

ffprobe/ffmpeg are invoked as opaque subprocesses; callers only see channel counts, durations
and output paths.
"""

import math
import subprocess
from pathlib import Path

from loguru import logger

from config.schemas import ChannelStrategy


SPLIT_FILTER = "pan=mono|c0={channel},loudnorm=I=-16:TP=-1.5:LRA=7"


def probe_channels(audio_path: str | Path) -> int:
    """Return the channel count of the first audio stream, or 0 if it cannot be determined."""
    try:
        result = subprocess.run(
            [
                "ffprobe", "-v", "error", "-select_streams", "a:0",
                "-show_entries", "stream=channels",
                "-of", "default=noprint_wrappers=1:nokey=1", str(audio_path),
            ],
            capture_output=True, text=True, timeout=30,
        )
        if result.returncode != 0:
            logger.warning(f"ffprobe channel probe failed on {audio_path}: {result.stderr.strip()}")
            return 0
        return int(result.stdout.strip().splitlines()[0])
    except Exception as e:
        logger.warning(f"Could not determine channel count for {audio_path}: {e}")
        return 0


def probe_duration(audio_path: str | Path) -> float:
    """Duration in seconds via ffprobe, 0.0 on failure."""
    try:
        result = subprocess.run(
            [
                "ffprobe", "-v", "error", "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1", str(audio_path),
            ],
            capture_output=True, text=True, timeout=30,
        )
        return float(result.stdout.strip()) if result.returncode == 0 else 0.0
    except Exception as e:
        logger.warning(f"Could not determine duration for {audio_path}: {e}")
        return 0.0


def select_strategy(channel_count: int) -> ChannelStrategy:
    """Stereo recordings carry one party per channel; everything else is diarized."""
    if channel_count == 2:
        return ChannelStrategy.DUAL_CHANNEL
    return ChannelStrategy.DIARIZED_MONO


def split_stereo(audio_path: str | Path, output_dir: str | Path) -> tuple[Path, Path]:
    """Split a stereo recording into loudness-normalized mono mp3 files.

    Args:
        audio_path: Stereo input file
        output_dir: Directory owned by the caller; it is responsible for deleting it

    Returns:
        (left_path, right_path); left carries the agent, right the customer
    """
    audio_path = Path(audio_path)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    outputs = []
    for side, channel in (("left", "c0"), ("right", "c1")):
        out = output_dir / f"{audio_path.stem}_{side}.mp3"
        result = subprocess.run(
            [
                "ffmpeg", "-i", str(audio_path), "-map", "0:a",
                "-af", SPLIT_FILTER.format(channel=channel),
                "-ac", "1", "-c:a", "libmp3lame", "-b:a", "128k", "-ar", "16000",
                "-y", str(out),
            ],
            capture_output=True, text=True,
        )
        if result.returncode != 0:
            raise RuntimeError(f"ffmpeg {side} channel split failed: {result.stderr[-500:]}")
        outputs.append(out)

    logger.info(f"Split {audio_path.name} into {outputs[0].name} (agent) and {outputs[1].name} (customer)")
    return outputs[0], outputs[1]


def split_into_chunks(
    audio_path: str | Path,
    output_dir: str | Path,
    chunk_seconds: float,
    duration: float,
) -> list[tuple[Path, float]]:
    """Cut a long recording into consecutive stream-copied chunks.

    Args:
        audio_path: Input file
        output_dir: Directory owned by the caller; it is responsible for deleting it
        chunk_seconds: Length of every chunk but the last
        duration: Total duration of the input in seconds

    Returns:
        [(chunk_path, start_offset_seconds), ...] in timeline order
    """
    audio_path = Path(audio_path)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    chunks = []
    count = math.ceil(duration / chunk_seconds)
    for i in range(count):
        start = i * chunk_seconds
        out = output_dir / f"{audio_path.stem}_chunk{i}{audio_path.suffix}"
        result = subprocess.run(
            [
                "ffmpeg", "-i", str(audio_path), "-ss", str(start), "-t", str(chunk_seconds),
                "-c", "copy", "-y", str(out),
            ],
            capture_output=True, text=True,
        )
        if result.returncode != 0:
            raise RuntimeError(f"ffmpeg chunk {i} failed: {result.stderr[-500:]}")
        chunks.append((out, float(start)))

    logger.info(f"Split {audio_path.name} ({duration:.1f}s) into {count} chunks of {chunk_seconds:.0f}s")
    return chunks
