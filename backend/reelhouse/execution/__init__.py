"""
Encode execution: run FFmpeg as a child process and report progress.

This package knows nothing about jobs. It takes an argument vector and
hooks, and either returns (exit code 0) or raises an ExecutionError.
"""

from .errors import (
    ExecutionError,
    ProcessFailure,
    ProcessLaunchFailure,
    ProcessTimeout,
)
from .ffmpeg import FFmpegInvocation, FFmpegRunner, ProgressHooks, find_ffmpeg
from .progress import ProgressParser
from .commands import build_still_video_args

__all__ = [
    # Errors
    "ExecutionError",
    "ProcessFailure",
    "ProcessLaunchFailure",
    "ProcessTimeout",
    # Runner
    "FFmpegInvocation",
    "FFmpegRunner",
    "ProgressHooks",
    "find_ffmpeg",
    # Parsing
    "ProgressParser",
    # Commands
    "build_still_video_args",
]
