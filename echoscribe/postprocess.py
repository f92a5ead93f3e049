"""
echoscribe.postprocess - Transcript normalization and speaker labelling.

Pure text transforms over whisper.cpp plain-text output. Whether diarization
is allowed for a language/model pair is decided by the caller.
"""

from __future__ import annotations

SPEAKER_TURN_MARKER = "[SPEAKER_TURN]"
SPEAKER_LABELS = ("Speaker A", "Speaker B")


def normalize_transcript(text: str) -> str:
    """Trim every line and strip leading/trailing blank lines."""
    return "\n".join(line.strip() for line in text.splitlines()).strip()


def apply_speaker_labels(text: str) -> tuple[str, bool]:
    """Split tinydiarize output into alternating two-speaker blocks.

    Blocks between ``[SPEAKER_TURN]`` markers have their whitespace collapsed
    and are labelled Speaker A / Speaker B in turn. Empty blocks are dropped
    without advancing the alternation.

    Args:
        text: Raw engine output

    Returns:
        (transcript, applied). When no marker is present, or every block is
        empty, the normalized text is returned with applied=False.
    """
    if SPEAKER_TURN_MARKER not in text:
        return normalize_transcript(text), False

    segments = []
    for block in text.split(SPEAKER_TURN_MARKER):
        cleaned = " ".join(block.split())
        if not cleaned:
            continue
        speaker = SPEAKER_LABELS[len(segments) % len(SPEAKER_LABELS)]
        segments.append(f"{speaker}: {cleaned}")

    if not segments:
        return normalize_transcript(text), False

    return "\n\n".join(segments), True
