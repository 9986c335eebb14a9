"""
Reelhouse: still-image video rendering service.

Jobs combine an uploaded image and music track into an MP4 with ffmpeg,
tracked in a persistent job store and streamed to clients over SSE.
"""

__version__ = "0.1.0"
