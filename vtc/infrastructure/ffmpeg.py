import subprocess
import re
import logging
import time
from collections import deque
from typing import List, Optional, Set
from vtc.domain.models import EncodeJob, EncodeResult, EncoderChoice
from vtc.infrastructure.event_bus import EventBus
from vtc.domain.events import EncodeProgressUpdated

AUDIO_CODEC = "aac"
AUDIO_BITRATE = "128k"

# Lines like: " V....D h264_nvenc           NVIDIA NVENC H.264 encoder"
_ENCODER_LINE = re.compile(r"^\s*([VAS][A-Z\.]{5})\s+([\w\-]+)\s+")
_TIME_REGEX = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")

class FFmpegAdapter:
    """Wrapper around ffmpeg for target-size encoding."""

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def list_encoders(self) -> Set[str]:
        """Encoder names reported by `ffmpeg -encoders`; empty when ffmpeg cannot be queried."""
        try:
            result = subprocess.run(
                ["ffmpeg", "-hide_banner", "-encoders"],
                capture_output=True,
                text=True
            )
        except OSError as e:
            self.logger.warning(f"Could not query ffmpeg encoders: {e}")
            return set()

        if result.returncode != 0:
            self.logger.warning(f"ffmpeg -encoders exited with code {result.returncode}")
            return set()

        encoders = set()
        for line in result.stdout.splitlines():
            match = _ENCODER_LINE.match(line)
            if match:
                encoders.add(match.group(2))
        self.logger.debug(f"Available encoders: {len(encoders)}")
        return encoders

    def _build_command(self, job: EncodeJob, choice: EncoderChoice) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = [
            "ffmpeg",
            "-y", # Overwrite output files (a failed hardware attempt may leave one)
            "-i", str(job.input_path),
            "-c:v", choice.encoder,
        ]
        cmd.extend(choice.extra_args)
        cmd.extend([
            "-b:v", f"{max(1, int(job.video_kbps))}k",
            "-c:a", AUDIO_CODEC,
            "-b:a", AUDIO_BITRATE,
        ])

        # No filter at all when the source is not taller than the target
        if job.scale_height is not None:
            cmd.extend(["-vf", f"scale=-2:{job.scale_height}"])

        cmd.extend(["-movflags", "+faststart"])
        cmd.append(str(job.output_path))
        return cmd

    def encode(self, job: EncodeJob, choice: EncoderChoice) -> EncodeResult:
        """Runs one encode attempt and reports it as a typed result."""
        filename = job.input_path.name
        start_time = time.monotonic()
        cmd = self._build_command(job, choice)
        self.logger.info(f"FFMPEG_START: {filename} (encoder={choice.encoder}, bitrate={int(job.video_kbps)}k)")
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            universal_newlines=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1
        )

        tail = deque(maxlen=5)
        try:
            for line in process.stdout:
                line = line.strip()
                if line:
                    tail.append(line)
                match = _TIME_REGEX.search(line)
                if match and job.duration_seconds and self.event_bus:
                    h, m, s = map(float, match.groups())
                    current_seconds = h * 3600 + m * 60 + s
                    percent = min(100.0, current_seconds / job.duration_seconds * 100)
                    self.event_bus.publish(EncodeProgressUpdated(progress_percent=percent))
        except BaseException:
            # ffmpeg must not outlive a failed read of its output
            self.logger.error(f"FFMPEG_END: {filename} status=aborted, killing ffmpeg")
            process.kill()
            process.wait()
            raise

        process.wait()
        elapsed = time.monotonic() - start_time

        if process.returncode != 0:
            self.logger.info(f"FFMPEG_END: {filename} status=failed code={process.returncode} elapsed={elapsed:.2f}s")
            message = f"ffmpeg exited with code {process.returncode}"
            if tail:
                message += f": {tail[-1]}"
            return EncodeResult(success=False, returncode=process.returncode, error_message=message)

        self.logger.info(f"FFMPEG_END: {filename} status=completed elapsed={elapsed:.2f}s")
        return EncodeResult(success=True, returncode=0)
