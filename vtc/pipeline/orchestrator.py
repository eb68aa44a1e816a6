import re
import logging
import platform
from pathlib import Path
from typing import Callable, Optional, Tuple
from vtc.config.models import AppConfig
from vtc.infrastructure.event_bus import EventBus
from vtc.infrastructure.downloader import YtDlpAdapter
from vtc.infrastructure.ffprobe import FFprobeAdapter
from vtc.infrastructure.ffmpeg import FFmpegAdapter
from vtc.domain import budget as budgeting
from vtc.domain.encoders import EncoderNegotiator
from vtc.domain.errors import (
    DimensionProbeFailure, DownloadFailure, EncodeFailure, InvalidInput, MetadataFailure
)
from vtc.domain.models import (
    CompressionRequest, EncodeJob, EncodeResult, EncoderChoice, MediaDescriptor, OutputArtifact,
    ResolutionDecision
)
from vtc.domain.naming import finalize_output, output_name, sanitize_title
from vtc.domain.events import (
    MetadataResolved, BudgetComputed, ResolutionSelected, DownloadStarted, DownloadFinished,
    SourceProbed, BitrateClamped, ScaleDecided, EncoderSelected, EncodeStarted, EncoderFallback,
    EncodeFinished, OutputRenamed, TempFileDeleted, RunCompleted
)

URL_PATTERN = re.compile(r"^https?://")

# Asked before deleting a downloaded temp file: (temp file, output file) -> delete?
ConfirmCleanup = Callable[[Path, Path], bool]

def is_url(source: str) -> bool:
    return bool(URL_PATTERN.match(source))

class Orchestrator:
    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        downloader: YtDlpAdapter,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        system_name: Optional[str] = None,
        confirm_cleanup: Optional[ConfirmCleanup] = None
    ):
        self.config = config
        self.event_bus = event_bus
        self.downloader = downloader
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.system_name = system_name if system_name is not None else platform.system()
        self.confirm_cleanup = confirm_cleanup
        self.logger = logging.getLogger(__name__)

    def resolve_metadata(self, source: str) -> Tuple[MediaDescriptor, bool]:
        """Duration and sanitized base name of a local file or remote URL."""
        if is_url(source):
            try:
                meta = self.downloader.fetch_metadata(source)
            except RuntimeError as e:
                raise MetadataFailure(f"Failed to fetch metadata: {e}")
            duration = int(meta.get("duration") or 0)
            if duration < 1:
                raise MetadataFailure(f"Could not determine duration of {source}")
            base_name = sanitize_title(meta.get("title"), fallback=meta.get("id"))
            return MediaDescriptor(duration_seconds=duration, base_name=base_name), True

        path = Path(source)
        if not path.is_file():
            raise InvalidInput(f"File not found: {source}")
        try:
            duration = int(self.ffprobe_adapter.get_duration(path))
        except RuntimeError as e:
            raise MetadataFailure(f"Could not determine file duration: {e}")
        if duration < 1:
            raise MetadataFailure(f"Could not determine file duration of {source}")
        return MediaDescriptor(duration_seconds=duration, base_name=path.stem), False

    def download(self, source: str, media: MediaDescriptor, decision: ResolutionDecision) -> Path:
        max_height = int(decision.height)
        self.event_bus.publish(DownloadStarted(url=source, max_height=max_height))
        try:
            path = self.downloader.download(source, media.base_name, max_height, self.config.download.work_dir)
        except RuntimeError as e:
            raise DownloadFailure(str(e))
        self.event_bus.publish(DownloadFinished(path=path))
        return path

    def probe_source(self, input_path: Path, media: MediaDescriptor) -> MediaDescriptor:
        """Adds dimensions and source bitrate to the descriptor (returns a new one)."""
        try:
            info = self.ffprobe_adapter.get_stream_info(input_path)
        except (RuntimeError, ValueError) as e:
            raise DimensionProbeFailure(f"Failed to read video dimensions: {e}")

        try:
            file_size = input_path.stat().st_size
        except OSError:
            file_size = None

        source_bitrate = budgeting.estimate_source_bitrate(
            info.get("bit_rate"), file_size, media.duration_seconds
        )
        return media.model_copy(update={
            "source_width": info["width"],
            "source_height": info["height"],
            "source_bitrate": source_bitrate,
        })

    def encode(self, job: EncodeJob, negotiator: EncoderNegotiator) -> EncodeResult:
        def run_attempt(attempt_job: EncodeJob, choice: EncoderChoice) -> EncodeResult:
            self.event_bus.publish(EncodeStarted(job=attempt_job, choice=choice))
            result = self.ffmpeg_adapter.encode(attempt_job, choice)
            if result.success:
                self.event_bus.publish(EncodeFinished(job=attempt_job, choice=choice))
            return result

        try:
            return negotiator.execute(job, run_attempt)
        except EncodeFailure:
            # No partial output may outlive a failed run
            if job.output_path.exists():
                job.output_path.unlink()
            raise

    def _on_fallback(self, failed: EncoderChoice, fallback: EncoderChoice, result: EncodeResult):
        self.event_bus.publish(EncoderFallback(failed=failed, fallback=fallback, error_message=result.error_message))

    def cleanup(self, temp_file: Path, output: Path, auto: bool) -> bool:
        if not temp_file.exists():
            return False
        if not auto:
            if self.confirm_cleanup is None or not self.confirm_cleanup(temp_file, output):
                self.logger.info(f"Keeping temp file {temp_file}")
                return False
        temp_file.unlink()
        self.logger.info(f"Deleted temp file {temp_file}")
        self.event_bus.publish(TempFileDeleted(path=temp_file, automatic=auto))
        return True

    def run(self, request: CompressionRequest) -> OutputArtifact:
        self.logger.info(f"Run started: source={request.source}, target={request.target_size_mb}MB")

        # 1. Metadata
        media, from_url = self.resolve_metadata(request.source)
        self.event_bus.publish(MetadataResolved(media=media, is_url=from_url))

        # 2. Budget & resolution
        budget = budgeting.compute_budget(request.target_size_mb, media.duration_seconds)
        self.event_bus.publish(BudgetComputed(budget=budget, target_size_mb=request.target_size_mb))
        decision = budgeting.select_resolution(budget, request.resolution_override)
        self.event_bus.publish(ResolutionSelected(decision=decision))
        self.logger.info(
            f"Budget {budget.video_kbps:.2f} kbps, resolution {decision.height.tag} "
            f"(manual={decision.was_manual})"
        )

        # 3. Download at the chosen height cap
        temp_file: Optional[Path] = None
        if from_url:
            temp_file = self.download(request.source, media, decision)
            input_path = temp_file
        else:
            input_path = Path(request.source)

        # 4. Probe & clamp
        media = self.probe_source(input_path, media)
        self.event_bus.publish(SourceProbed(media=media))
        video_kbps = budgeting.guard_bitrate(budget.video_kbps, media.source_bitrate)
        if video_kbps < budget.video_kbps:
            self.event_bus.publish(BitrateClamped(budget_kbps=budget.video_kbps, source=media.source_bitrate))
            self.logger.info(f"Bitrate clamped to source: {video_kbps:.2f} kbps")

        scale = budgeting.scale_height(media.source_height, decision)
        self.event_bus.publish(ScaleDecided(
            source_width=media.source_width, source_height=media.source_height, scale_height=scale
        ))

        # 5. Encoder negotiation & encode
        output_dir = self.config.general.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / output_name(media.base_name, decision.height, request.target_size_mb)
        job = EncodeJob(
            input_path=input_path,
            output_path=output_path,
            video_kbps=video_kbps,
            scale_height=scale,
            duration_seconds=media.duration_seconds,
        )

        negotiator = EncoderNegotiator(
            self.system_name,
            allow_hardware=self.config.general.gpu,
            on_fallback=self._on_fallback
        )
        choice = negotiator.select(self.ffmpeg_adapter.list_encoders() if self.config.general.gpu else set())
        self.event_bus.publish(EncoderSelected(choice=choice))
        self.encode(job, negotiator)

        if not output_path.exists():
            raise EncodeFailure(f"ffmpeg reported success but {output_path} was not created")

        # 6. Name correction
        artifact = finalize_output(output_path, media.base_name, decision.height, request.target_size_mb)
        if artifact.path != output_path:
            self.event_bus.publish(OutputRenamed(old_path=output_path, new_path=artifact.path))
        self.logger.info(f"Output {artifact.path} ({artifact.actual_size_mb} MB)")
        self.event_bus.publish(RunCompleted(artifact=artifact))

        # 7. Temp file ownership ends here
        if temp_file is not None:
            self.cleanup(temp_file, artifact.path, request.auto_cleanup)

        return artifact
