import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional
from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

DEFAULT_CONTAINERS = ("mp4", "mkv", "mov", "webm")

class YtDlpAdapter:
    """Wrapper around yt-dlp for remote metadata and capped-height downloads."""

    def __init__(self, containers: Optional[Iterable[str]] = None):
        self.containers = tuple(containers or DEFAULT_CONTAINERS)
        self.logger = logging.getLogger(__name__)

    def _base_opts(self) -> Dict[str, Any]:
        return {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
        }

    def fetch_metadata(self, url: str) -> Dict[str, Any]:
        """Returns title, duration (seconds, may be None) and id of a remote video."""
        try:
            with YoutubeDL(self._base_opts()) as ydl:
                info = ydl.extract_info(url, download=False)
        except DownloadError as e:
            raise RuntimeError(f"Failed to fetch metadata for {url}: {e}")

        if not info:
            raise RuntimeError(f"No metadata returned for {url}")

        return {
            "title": info.get("title"),
            "duration": info.get("duration"),
            "id": info.get("id"),
        }

    @staticmethod
    def format_selector(max_height: int) -> str:
        return f"bestvideo[height<={max_height}]+bestaudio"

    def download(self, url: str, base_name: str, max_height: int, work_dir: Path) -> Path:
        """Downloads best video up to max_height merged with best audio."""
        work_dir.mkdir(parents=True, exist_ok=True)
        opts = self._base_opts()
        opts.update({
            "format": self.format_selector(max_height),
            "outtmpl": str(work_dir / f"{base_name}.%(ext)s"),
        })
        self.logger.info(f"Downloading {url} (height<={max_height}) to {work_dir}")

        try:
            with YoutubeDL(opts) as ydl:
                ydl.download([url])
        except DownloadError as e:
            raise RuntimeError(f"Download failed for {url}: {e}")

        downloaded = self.locate(base_name, work_dir)
        if downloaded is None:
            raise RuntimeError(f"Couldn't locate downloaded file for {base_name} in {work_dir}")
        return downloaded

    def locate(self, base_name: str, work_dir: Path) -> Optional[Path]:
        """First file named <base_name>.<ext> with a known video container extension."""
        for path in sorted(work_dir.glob(f"{base_name}.*")):
            if path.is_file() and path.suffix.lower().lstrip(".") in self.containers:
                return path
        return None
