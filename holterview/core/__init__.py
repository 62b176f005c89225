"""GUI-free engine for the Holter waveform viewer."""

# Re-export commonly used modules for convenience.
from . import (
    cache,
    chunked,
    diagnostics,
    downsample,
    errors,
    interaction,
    loader,
    quality,
    recorder,
    render,
    samples,
    timebase,
    timeline,
    transform,
    transport,
    window,
)

__all__ = [
    "cache",
    "chunked",
    "diagnostics",
    "downsample",
    "errors",
    "interaction",
    "loader",
    "quality",
    "recorder",
    "render",
    "samples",
    "timebase",
    "timeline",
    "transform",
    "transport",
    "window",
]
