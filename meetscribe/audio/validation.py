"""Sanity checks for captured segment files."""

import logging
import wave
from pathlib import Path

from ..errors import ValidationFailure
from ..models.audio import AudioArtifact

logger = logging.getLogger(__name__)

MIN_SEGMENT_BYTES = 1024


def validate_artifact(artifact: AudioArtifact, min_bytes: int = MIN_SEGMENT_BYTES) -> None:
    """Reject segment files that cannot contain usable speech.

    A missing file or one below ``min_bytes`` means the device delivered no
    signal. Anything else must open as a WAV file with at least one frame.

    Raises:
        ValidationFailure: With a short reason when the segment must be discarded
    """
    path = Path(artifact.path)
    if not path.exists():
        raise ValidationFailure("segment file not found", str(path))

    size = path.stat().st_size
    logger.debug(f"Validating {path.name}: {size / 1024:.2f} KB")
    if size < min_bytes:
        raise ValidationFailure(f"segment file too small ({size} bytes)", str(path))

    try:
        with wave.open(str(path), 'rb') as wf:
            frames = wf.getnframes()
    except (wave.Error, EOFError) as e:
        raise ValidationFailure(f"unreadable WAV file ({e})", str(path))

    if frames == 0:
        raise ValidationFailure("segment file has no audio frames", str(path))
