from typing import Iterable, List, Optional


class VtcError(Exception):
    """Base class for all fatal conditions of a compression run."""
    exit_code = 1


class MissingDependency(VtcError):
    def __init__(self, missing: Iterable[str], hint: Optional[str] = None):
        self.missing: List[str] = list(missing)
        self.hint = hint
        message = f"Missing dependencies: {' '.join(self.missing)}"
        if hint:
            message += f"\n{hint}"
        super().__init__(message)


class InvalidInput(VtcError):
    pass


class MetadataFailure(VtcError):
    pass


class InfeasibleTarget(VtcError):
    def __init__(self, target_size_mb: float, duration_seconds: int, video_kbps: float):
        self.target_size_mb = target_size_mb
        self.duration_seconds = duration_seconds
        self.video_kbps = video_kbps
        super().__init__(
            f"Target size {target_size_mb}MB is too small for a {duration_seconds}-second video "
            f"({video_kbps:.2f} kbps left for video after audio)"
        )


class DimensionProbeFailure(VtcError):
    pass


class DownloadFailure(VtcError):
    pass


class EncodeFailure(VtcError):
    pass
