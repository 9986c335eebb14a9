"""
FFmpeg progress parsing.

Real-time progress extraction from FFmpeg stderr.

FFmpeg announces the input length once:
    Duration: 00:00:42.17, start: 0.000000, bitrate: 320 kb/s

and then redraws a status line (terminated by carriage return):
    frame=   24 fps= 12 q=28.0 size=       0kB time=00:00:01.00 bitrate=   0.0kbits/s

When muxing finishes it prints a summary:
    [out#0/mp4 @ 0x...] video:1024kB audio:320kB subtitle:0kB ...

We parse, in priority order:
- finalizing markers → jump to a fixed plateau and freeze time-based updates
- time=HH:MM:SS.ff → current position / duration
- frame=N → N / assumed frame rate / duration (only when no time= is present)

Machine-readable progress output (-progress pipe:1) differs between FFmpeg
builds, so the text patterns are the contract here.
"""

import logging
import re
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


# Matches: Duration: 00:01:23.45 (hours may be one or two digits)
DURATION_PATTERN = re.compile(r'Duration: (\d{1,2}):(\d{2}):(\d{2})\.(\d{2})')

# Matches: time=00:00:01.00 or time=0:01:23.45
TIME_PATTERN = re.compile(r'time=(\d{1,2}):(\d{2}):(\d{2})\.(\d{2})')

# Regex to extract frame count
FRAME_PATTERN = re.compile(r'frame=\s*(\d+)')

# Substrings FFmpeg prints while writing the container trailer / stream summary
FINALIZING_MARKERS = ("[out#0/", "video:", "audio:", "subtitle:")

DEFAULT_FINALIZING_PROGRESS = 98
DEFAULT_MAX_UPDATES = 100
DEFAULT_ASSUMED_FRAME_RATE = 25.0

# Still-image inputs announce a one-frame length (e.g. 00:00:00.04); the
# first Duration at or above this belongs to the audio track.
MIN_DURATION_SECONDS = 1.0

_LINE_BREAK = re.compile(r'[\r\n]')


def parse_clock(hours: str, minutes: str, seconds: str, centiseconds: str = "0") -> float:
    """Convert matched HH, MM, SS, ff groups to seconds."""
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(centiseconds) / 100.0


def percent_of(position: float, duration: float) -> int:
    """floor(position / duration * 100), capped at 100."""
    if duration <= 0:
        return 0
    return min(int((position / duration) * 100), 100)


class ProgressParser:
    """
    Turn FFmpeg stderr into a normalized 0-100 progress signal.

    Usage:
        parser = ProgressParser(target_duration=30.0, on_progress=update_job)
        for chunk in ffmpeg_stderr_chunks:
            parser.feed(chunk)
        parser.flush()
        parser.complete()  # only on exit code 0

    Every reported value is a genuine advance over the previous one.
    """

    def __init__(
        self,
        target_duration: Optional[float] = None,
        on_progress: Optional[Callable[[int], None]] = None,
        on_duration: Optional[Callable[[float], None]] = None,
        finalizing_progress: int = DEFAULT_FINALIZING_PROGRESS,
        max_updates: int = DEFAULT_MAX_UPDATES,
        assumed_frame_rate: float = DEFAULT_ASSUMED_FRAME_RATE,
    ):
        """
        Initialize progress parser.

        Args:
            target_duration: Intended output length in seconds. When given it
                wins over the Duration: line FFmpeg prints for the input.
            on_progress: Called with each new integer percentage
            on_duration: Called once when the duration is detected from output
            finalizing_progress: Plateau value used once muxing starts
            max_updates: Cap on ordinary progress callbacks per run
            assumed_frame_rate: Frame rate used by the frame= fallback
        """
        self.duration: Optional[float] = target_duration if target_duration and target_duration > 0 else None
        self.on_progress = on_progress
        self.on_duration = on_duration
        self.finalizing_progress = finalizing_progress
        self.max_updates = max_updates
        self.assumed_frame_rate = assumed_frame_rate

        self.last_progress = 0
        self.update_count = 0
        self.is_finalizing = False
        self.position = 0.0

        self._partial = ""

    def feed(self, chunk: str) -> List[int]:
        """
        Parse a chunk of stderr text.

        Status lines end with \\r and summary lines with \\n; an incomplete
        trailing line is kept until the next chunk (or flush()).

        Returns:
            Progress values reported while handling this chunk
        """
        data = self._partial + chunk
        lines = _LINE_BREAK.split(data)
        self._partial = lines.pop()

        reported = []
        for line in lines:
            value = self.parse_line(line)
            if value is not None:
                reported.append(value)
        return reported

    def flush(self) -> Optional[int]:
        """Parse whatever is left in the line buffer."""
        rest, self._partial = self._partial, ""
        if not rest:
            return None
        return self.parse_line(rest)

    def parse_line(self, line: str) -> Optional[int]:
        """
        Parse a single line of FFmpeg stderr output.

        Returns:
            The new progress value if one was reported, None otherwise
        """
        if not line:
            return None

        if self.duration is None:
            match = DURATION_PATTERN.search(line)
            if match:
                duration = parse_clock(*match.groups())
                if duration >= MIN_DURATION_SECONDS:
                    self.duration = duration
                    logger.info(f"[FFmpeg] Duration detected: {duration:g}s")
                    if self.on_duration:
                        self.on_duration(duration)

        if self.is_finalizing:
            return None

        if any(marker in line for marker in FINALIZING_MARKERS):
            self.is_finalizing = True
            logger.info("[FFmpeg] Finalizing stage detected")
            if self.duration is not None and self.last_progress < self.finalizing_progress:
                return self._report(self.finalizing_progress, counted=False)
            return None

        if self.duration is None or self.update_count >= self.max_updates:
            return None

        time_match = TIME_PATTERN.search(line)
        if time_match:
            self.position = parse_clock(*time_match.groups())
        else:
            frame_match = FRAME_PATTERN.search(line)
            if not frame_match:
                return None
            self.position = int(frame_match.group(1)) / self.assumed_frame_rate

        candidate = percent_of(self.position, self.duration)
        if candidate > self.last_progress:
            return self._report(candidate)
        return None

    def complete(self) -> int:
        """Force exactly 100 after a clean exit, whatever was seen last."""
        self.last_progress = 100
        if self.on_progress:
            self.on_progress(100)
        return 100

    def _report(self, value: int, counted: bool = True) -> int:
        self.last_progress = value
        if counted:
            self.update_count += 1
        if self.on_progress:
            self.on_progress(value)
        return value


def format_clock(seconds: float) -> str:
    """Format seconds as M:SS for display."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def format_progress_bar(
    progress: int,
    current_time: Optional[float] = None,
    duration: Optional[float] = None,
    width: int = 50,
) -> str:
    """
    Render a one-line terminal progress bar.

    Args:
        progress: Percentage 0-100
        current_time: Encoded position in seconds
        duration: Total duration in seconds

    Returns:
        e.g. "[█████░░░░░] 50% (0:05/0:10)"
    """
    progress = max(0, min(100, int(progress)))
    filled = progress * width // 100
    bar = "█" * filled + "░" * (width - filled)
    line = f"[{bar}] {progress}%"
    if current_time is not None and duration:
        line += f" ({format_clock(current_time)}/{format_clock(duration)})"
    return line
