import re
from pathlib import Path
from typing import Optional
from vtc.domain.models import OutputArtifact, Resolution

DEFAULT_CONTAINER = "mp4"
FALLBACK_BASE_NAME = "video"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_\- ]")


def sanitize_title(title: Optional[str], fallback: Optional[str] = None) -> str:
    """Keeps ASCII letters, digits, '-', '_' and spaces."""
    cleaned = _UNSAFE_CHARS.sub("", title or "").strip()
    if cleaned:
        return cleaned
    fallback = _UNSAFE_CHARS.sub("", fallback or "").strip()
    return fallback or FALLBACK_BASE_NAME


def format_size(size_mb: float) -> str:
    if float(size_mb).is_integer():
        return str(int(size_mb))
    return f"{size_mb:g}"


def output_name(base_name: str, resolution: Resolution, size_mb: float, container: str = DEFAULT_CONTAINER) -> str:
    return f"{base_name}_{resolution.tag}_{format_size(size_mb)}M.{container}"


def actual_size_mb(path: Path) -> int:
    return path.stat().st_size // 1024 // 1024


def finalize_output(path: Path, base_name: str, resolution: Resolution, target_size_mb: float,
                    container: str = DEFAULT_CONTAINER) -> OutputArtifact:
    """Renames the output to carry its real size when it came out smaller than requested.

    A larger output keeps its name; nothing is ever re-encoded here.
    """
    size_mb = actual_size_mb(path)
    if size_mb < target_size_mb:
        renamed = path.with_name(output_name(base_name, resolution, size_mb, container))
        if renamed != path:
            path = path.rename(renamed)
    return OutputArtifact(path=path, actual_size_mb=size_mb)
