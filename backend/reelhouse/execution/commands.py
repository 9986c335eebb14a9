"""
FFmpeg argument builders.

Builders return the argument vector WITHOUT the binary; the runner
prepends the resolved ffmpeg path.
"""

from typing import List, Optional


# Still image + music track → H.264/AAC mp4
VIDEO_CODEC = "libx264"
VIDEO_TUNE = "stillimage"
PIXEL_FORMAT = "yuv420p"
AUDIO_CODEC = "aac"


def build_still_video_args(
    image_path: str,
    audio_path: str,
    output_path: str,
    duration_sec: Optional[float] = None,
) -> List[str]:
    """
    Build arguments that loop a still image over an audio track.

    Args:
        image_path: Absolute path of the cover image
        audio_path: Absolute path of the music track
        output_path: Absolute path of the mp4 to write (overwritten)
        duration_sec: Optional clamp on the output length

    Returns:
        Argument list for ffmpeg
    """
    args = ["-y", "-loop", "1", "-i", image_path, "-i", audio_path]
    if duration_sec and duration_sec > 0:
        args.extend(["-t", f"{duration_sec:g}"])
    else:
        # A looped image never ends on its own; stop with the audio.
        args.append("-shortest")
    args.extend([
        "-c:v", VIDEO_CODEC,
        "-tune", VIDEO_TUNE,
        "-pix_fmt", PIXEL_FORMAT,
        "-c:a", AUDIO_CODEC,
        output_path,
    ])
    return args
