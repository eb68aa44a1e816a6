import shutil
from typing import Iterable, List, Optional
from vtc.domain.errors import MissingDependency

REQUIRED_TOOLS = ("ffmpeg", "ffprobe")


def install_hint(missing: List[str]) -> str:
    """Install command for the package manager found on this machine."""
    names = " ".join(missing)
    if shutil.which("apt-get"):
        return f"Install on Debian/Ubuntu:\n  sudo apt update && sudo apt install {names}"
    if shutil.which("brew"):
        return f"Install on macOS with Homebrew:\n  brew install {names}"
    return "Please install the missing tools via your OS package manager."


def find_missing(tools: Iterable[str] = REQUIRED_TOOLS) -> List[str]:
    return [tool for tool in tools if shutil.which(tool) is None]


def check_dependencies(tools: Optional[Iterable[str]] = None):
    """Raises MissingDependency listing every tool not found on PATH."""
    missing = find_missing(tools if tools is not None else REQUIRED_TOOLS)
    if missing:
        raise MissingDependency(missing, install_hint(missing))
