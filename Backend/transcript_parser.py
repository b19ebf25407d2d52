"""
Transcript Parsing - Turns speaker/timestamp transcripts into segments
"""

import re
from dataclasses import asdict, dataclass

import config
from errors import TranscriptParseError

BRACKET_RE = re.compile(r'^\[([^\]]*)\]\s*')
SPEAKER_RE = re.compile(r'^(Speaker \d+):\s*')

DEFAULT_SPEAKER = "Speaker 1"


@dataclass
class TranscriptSegment:
    text: str
    start: int  # seconds
    end: int
    speaker: str = DEFAULT_SPEAKER

    def to_dict(self):
        return asdict(self)


def parse_timestamp(stamp):
    """
    Converts an MM:SS stamp to seconds.

    Raises TranscriptParseError for anything that is not MM:SS with seconds < 60.
    """
    match = re.fullmatch(r'(\d+):(\d{2})', stamp.strip())
    if not match:
        raise TranscriptParseError(f"Invalid timestamp: [{stamp}]")
    minutes, seconds = map(int, match.groups())
    if seconds >= 60:
        raise TranscriptParseError(f"Invalid timestamp: [{stamp}]")
    return minutes * 60 + seconds


def _looks_like_timestamp(inner):
    # Bracketed prefixes such as [Music] are kept as text, only digit:digit forms are stamps
    return bool(re.match(r'^\s*\d+\s*:', inner))


def parse_line(line):
    """
    Splits one transcript line into (timestamp_or_None, speaker_or_None, text).
    """
    text = line.strip()
    timestamp = None
    speaker = None

    # Either prefix may come first: "[00:05] Speaker 1: hi" or "Speaker 1: [00:05] hi"
    for _ in range(2):
        bracket = BRACKET_RE.match(text)
        if timestamp is None and bracket and _looks_like_timestamp(bracket.group(1)):
            timestamp = parse_timestamp(bracket.group(1))
            text = text[bracket.end():]

        speaker_match = SPEAKER_RE.match(text)
        if speaker is None and speaker_match:
            speaker = speaker_match.group(1)
            text = text[speaker_match.end():]

    return timestamp, speaker, text.strip()


def parse_transcript(transcript, default_segment_seconds=config.DEFAULT_SEGMENT_SECONDS):
    """
    Parses transcription output into a list of TranscriptSegment.

    Lines look like "[MM:SS] Speaker N: text"; both prefixes are optional.
    A timestamp resets the running clock. Each segment lasts
    default_segment_seconds and advances the clock by that amount.
    """
    segments = []
    current_time = 0

    for line_no, line in enumerate(transcript.splitlines(), start=1):
        if not line.strip():
            continue

        try:
            timestamp, speaker, text = parse_line(line)
        except TranscriptParseError as e:
            raise TranscriptParseError(f"Line {line_no}: {e}") from e

        if timestamp is not None:
            current_time = timestamp
        if not text:
            continue

        segments.append(TranscriptSegment(
            text=text,
            start=current_time,
            end=current_time + default_segment_seconds,
            speaker=speaker or DEFAULT_SPEAKER,
        ))
        current_time += default_segment_seconds

    return segments
