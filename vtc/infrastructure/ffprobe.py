import subprocess
import json
from pathlib import Path
from typing import Dict, Any, Optional

class FFprobeAdapter:
    """Wrapper around ffprobe to extract duration, dimensions and bitrate."""

    def _run(self, file_path: Path) -> Dict[str, Any]:
        cmd = [
            "ffprobe",
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]

        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"ffprobe failed for {file_path}: {result.stderr}")

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise RuntimeError(f"ffprobe returned invalid JSON for {file_path}: {e}")

    @staticmethod
    def _parse_number(value: Any) -> Optional[float]:
        # ffprobe reports missing values as "N/A" or omits the key
        if value in (None, "", "N/A"):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def get_duration(self, file_path: Path) -> float:
        """Container duration in seconds (0.0 when unknown)."""
        data = self._run(file_path)
        return self._parse_number(data.get("format", {}).get("duration")) or 0.0

    def get_stream_info(self, file_path: Path) -> Dict[str, Any]:
        """Executes ffprobe and parses JSON output."""
        data = self._run(file_path)

        video_stream = next((s for s in data.get("streams", []) if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ValueError(f"No video stream found in {file_path}")

        width = video_stream.get("width")
        height = video_stream.get("height")
        if not width or not height:
            raise ValueError(f"Could not read video dimensions of {file_path}")

        return {
            "width": int(width),
            "height": int(height),
            "codec": video_stream.get("codec_name", "unknown"),
            "bit_rate": self._parse_number(video_stream.get("bit_rate")),
            "duration": self._parse_number(data.get("format", {}).get("duration")) or 0.0,
        }
