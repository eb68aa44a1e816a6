"""Bitrate budget, resolution tier selection and the source bitrate guard.

All functions here are pure: they take immutable values and return new ones.
"""
from typing import List, Optional, Tuple, Union
from vtc.domain.errors import InfeasibleTarget, InvalidInput
from vtc.domain.models import (
    BitrateBudget, BitrateOrigin, Resolution, ResolutionDecision, SourceBitrate
)

AUDIO_RESERVE_KBPS = 128
BITS_PER_MB = 8192 * 1024

# Evaluated highest first; the first satisfied threshold wins
RESOLUTION_THRESHOLDS: List[Tuple[int, Resolution]] = [
    (5000, Resolution.P1080),
    (2500, Resolution.P720),
    (1000, Resolution.P480),
    (600, Resolution.P360),
]
FLOOR_RESOLUTION = Resolution.P360


def compute_video_kbps(target_size_mb: float, duration_seconds: int) -> float:
    """Raw formula, without the feasibility check."""
    if duration_seconds <= 0:
        raise InvalidInput(f"Duration must be positive, got {duration_seconds}")
    total_bits = target_size_mb * BITS_PER_MB
    return total_bits / duration_seconds / 1024 - AUDIO_RESERVE_KBPS


def compute_budget(target_size_mb: float, duration_seconds: int) -> BitrateBudget:
    """Video bitrate left after reserving 128 kbps for audio.

    Raises InfeasibleTarget when less than 1 kbps remains.
    """
    video_kbps = compute_video_kbps(target_size_mb, duration_seconds)
    if video_kbps < 1:
        raise InfeasibleTarget(target_size_mb, duration_seconds, video_kbps)
    return BitrateBudget(video_kbps=video_kbps)


def select_resolution(budget: Union[BitrateBudget, float], override: Optional[Resolution] = None) -> ResolutionDecision:
    """Manual override wins; otherwise the first threshold met by the truncated kbps, floor 360p."""
    if override is not None:
        return ResolutionDecision(height=override, was_manual=True)

    kbps = budget.whole_kbps if isinstance(budget, BitrateBudget) else int(budget)
    for threshold, resolution in RESOLUTION_THRESHOLDS:
        if kbps >= threshold:
            return ResolutionDecision(height=resolution)
    return ResolutionDecision(height=FLOOR_RESOLUTION)


def estimate_source_bitrate(
    stream_bit_rate: Optional[float],
    file_size_bytes: Optional[int],
    duration_seconds: int,
) -> SourceBitrate:
    """Source bitrate in kbps from the probe, or estimated from the file size.

    ``stream_bit_rate`` is in bits per second, as ffprobe reports it.
    """
    if stream_bit_rate:
        return SourceBitrate(kbps=stream_bit_rate / 1000, origin=BitrateOrigin.PROBED)
    if file_size_bytes and duration_seconds > 0:
        return SourceBitrate(
            kbps=file_size_bytes * 8 / duration_seconds / 1000,
            origin=BitrateOrigin.ESTIMATED,
        )
    return SourceBitrate()


def guard_bitrate(video_kbps: float, source: SourceBitrate) -> float:
    """Never encode above a known source bitrate."""
    if not source.known:
        return video_kbps
    return min(video_kbps, source.kbps)


def scale_height(source_height: int, decision: ResolutionDecision) -> Optional[int]:
    """Height to scale down to, or None when scaling must be skipped (no upscaling)."""
    target = int(decision.height)
    if source_height > target:
        return target
    return None
