"""End-to-end runs of the pipeline with ffmpeg, ffprobe and yt-dlp mocked out."""
import pytest
from unittest.mock import MagicMock
from vtc.pipeline.orchestrator import Orchestrator, is_url
from vtc.domain.errors import (
    DimensionProbeFailure, DownloadFailure, EncodeFailure, InfeasibleTarget, InvalidInput, MetadataFailure
)
from vtc.domain.events import (
    BitrateClamped, EncoderFallback, OutputRenamed, RunCompleted, TempFileDeleted
)
from vtc.domain.models import CompressionRequest, EncodeResult, Resolution

URL = "https://example.com/watch?v=abc"


def make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg, system_name="Linux", confirm=None):
    return Orchestrator(
        config=app_config,
        event_bus=bus,
        downloader=downloader,
        ffprobe_adapter=ffprobe,
        ffmpeg_adapter=ffmpeg,
        system_name=system_name,
        confirm_cleanup=confirm,
    )


def record(bus, *event_types):
    events = []
    for event_type in event_types:
        bus.subscribe(event_type, events.append)
    return events


def test_is_url():
    assert is_url("https://youtu.be/x")
    assert is_url("http://example.com/a.mp4")
    assert not is_url("ftp://example.com/a.mp4")
    assert not is_url("video.mp4")


class TestLocalSource:
    def test_full_run(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        events = record(bus, BitrateClamped, OutputRenamed, RunCompleted)
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        artifact = orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        job, choice = ffmpeg.encode.call_args[0]
        assert choice.encoder == "h264_nvenc"
        assert job.input_path == source_video
        # 300MB over 600s = 3968 kbps budget, clamped to the 2000 kbps source
        assert job.video_kbps == 2000
        assert job.scale_height == 720
        assert job.output_path.name == "input_720p_300M.mp4"

        assert artifact.path == app_config.general.output_dir / "input_720p_250M.mp4"
        assert artifact.path.exists()
        assert artifact.actual_size_mb == 250
        assert [type(e) for e in events] == [BitrateClamped, OutputRenamed, RunCompleted]
        downloader.download.assert_not_called()

    def test_no_clamp_and_no_scale(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        ffprobe.get_stream_info.return_value = {
            "width": 854, "height": 480, "codec": "h264", "bit_rate": 9_000_000.0, "duration": 600.0
        }
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        job, _ = ffmpeg.encode.call_args[0]
        assert job.video_kbps == pytest.approx(3968)
        assert job.scale_height is None

    def test_estimated_source_bitrate(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        # 40 MiB over 600 s, no bitrate in the container
        ffprobe.get_stream_info.return_value["bit_rate"] = None
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        job, _ = ffmpeg.encode.call_args[0]
        assert job.video_kbps == pytest.approx(40 * 1024 * 1024 * 8 / 600 / 1000)

    def test_manual_resolution(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        artifact = orchestrator.run(CompressionRequest(
            source=str(source_video), target_size_mb=300, resolution_override=Resolution.P360
        ))

        job, _ = ffmpeg.encode.call_args[0]
        assert job.scale_height == 360
        assert artifact.path.name == "input_360p_250M.mp4"

    def test_larger_output_keeps_name(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        artifact = orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=200))

        assert artifact.path.name == "input_720p_200M.mp4"
        assert artifact.actual_size_mb == 250

    def test_gpu_disabled_skips_encoder_query(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        app_config.general.gpu = False
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        ffmpeg.list_encoders.assert_not_called()
        _, choice = ffmpeg.encode.call_args[0]
        assert choice.encoder == "libx264"


class TestEncoderFallback:
    def test_hardware_failure_falls_back_once(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video, sparse_file):
        events = record(bus, EncoderFallback)

        def encode(job, choice):
            if choice.encoder == "h264_nvenc":
                return EncodeResult(success=False, returncode=1, error_message="ffmpeg exited with code 1")
            sparse_file(job.output_path, 250)
            return EncodeResult(success=True)

        ffmpeg.encode.side_effect = encode
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        artifact = orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        assert ffmpeg.encode.call_count == 2
        (first_job, first), (second_job, second) = [c[0] for c in ffmpeg.encode.call_args_list]
        assert (first.encoder, second.encoder) == ("h264_nvenc", "libx264")
        assert first_job == second_job
        assert len(events) == 1
        assert artifact.path.exists()

    def test_both_attempts_fail(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video, sparse_file):
        def encode(job, choice):
            sparse_file(job.output_path, 3)
            return EncodeResult(success=False, returncode=1, error_message="ffmpeg exited with code 1")

        ffmpeg.encode.side_effect = encode
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        with pytest.raises(EncodeFailure):
            orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        assert ffmpeg.encode.call_count == 2
        assert list(app_config.general.output_dir.glob("*.mp4")) == []

    def test_hardware_decode_error_falls_back(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video, sparse_file):
        events = record(bus, EncoderFallback)

        def encode(job, choice):
            if choice.encoder == "h264_nvenc":
                sparse_file(job.output_path, 3)
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
            sparse_file(job.output_path, 250)
            return EncodeResult(success=True)

        ffmpeg.encode.side_effect = encode
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        artifact = orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        assert ffmpeg.encode.call_count == 2
        assert len(events) == 1
        assert "UnicodeDecodeError" in events[0].error_message
        assert [p.name for p in app_config.general.output_dir.glob("*.mp4")] == ["input_720p_250M.mp4"]
        assert artifact.actual_size_mb == 250

    def test_unexpected_errors_leave_no_output(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video, sparse_file):
        def encode(job, choice):
            sparse_file(job.output_path, 3)
            raise ValueError("I/O operation on closed file")

        ffmpeg.encode.side_effect = encode
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        with pytest.raises(EncodeFailure, match="closed file"):
            orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        assert ffmpeg.encode.call_count == 2
        assert list(app_config.general.output_dir.glob("*.mp4")) == []

    def test_software_only_single_attempt(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        ffmpeg.list_encoders.return_value = {"libx264"}
        ffmpeg.encode.side_effect = None
        ffmpeg.encode.return_value = EncodeResult(success=False, returncode=1)
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)

        with pytest.raises(EncodeFailure):
            orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300))

        assert ffmpeg.encode.call_count == 1


class TestUrlSource:
    @pytest.fixture
    def remote(self, downloader, app_config, sparse_file):
        downloader.fetch_metadata.return_value = {"title": "My: Clip!", "duration": 120.7, "id": "abc"}

        def download(url, base_name, max_height, work_dir):
            return sparse_file(work_dir / f"{base_name}.webm", 100)

        downloader.download.side_effect = download
        return downloader

    def test_download_capped_at_selected_height(self, app_config, bus, remote, ffprobe, ffmpeg):
        orchestrator = make_orchestrator(app_config, bus, remote, ffprobe, ffmpeg)

        artifact = orchestrator.run(CompressionRequest(source=URL, target_size_mb=300, auto_cleanup=True))

        # 300MB over 120s leaves 20352 kbps: 1080p
        remote.download.assert_called_once_with(URL, "My Clip", 1080, app_config.download.work_dir)
        ffprobe.get_duration.assert_not_called()
        job, _ = ffmpeg.encode.call_args[0]
        assert job.input_path == app_config.download.work_dir / "My Clip.webm"
        assert job.duration_seconds == 120
        assert artifact.path.name == "My Clip_1080p_250M.mp4"

    def test_auto_cleanup(self, app_config, bus, remote, ffprobe, ffmpeg):
        events = record(bus, TempFileDeleted)
        confirm = MagicMock()
        orchestrator = make_orchestrator(app_config, bus, remote, ffprobe, ffmpeg, confirm=confirm)

        orchestrator.run(CompressionRequest(source=URL, target_size_mb=300, auto_cleanup=True))

        assert not (app_config.download.work_dir / "My Clip.webm").exists()
        confirm.assert_not_called()
        assert events[0].automatic is True

    def test_cleanup_confirmed(self, app_config, bus, remote, ffprobe, ffmpeg):
        confirm = MagicMock(return_value=True)
        orchestrator = make_orchestrator(app_config, bus, remote, ffprobe, ffmpeg, confirm=confirm)

        artifact = orchestrator.run(CompressionRequest(source=URL, target_size_mb=300))

        temp_file = app_config.download.work_dir / "My Clip.webm"
        confirm.assert_called_once_with(temp_file, artifact.path)
        assert not temp_file.exists()

    def test_cleanup_declined(self, app_config, bus, remote, ffprobe, ffmpeg):
        orchestrator = make_orchestrator(app_config, bus, remote, ffprobe, ffmpeg, confirm=MagicMock(return_value=False))

        orchestrator.run(CompressionRequest(source=URL, target_size_mb=300))

        assert (app_config.download.work_dir / "My Clip.webm").exists()

    def test_local_source_never_deleted(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg, confirm=MagicMock(return_value=True))

        orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=300, auto_cleanup=True))

        assert source_video.exists()


class TestFailures:
    def test_missing_local_file(self, app_config, bus, downloader, ffprobe, ffmpeg, tmp_path):
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(InvalidInput):
            orchestrator.run(CompressionRequest(source=str(tmp_path / "missing.mp4")))

    def test_zero_duration(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        ffprobe.get_duration.return_value = 0.7
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(MetadataFailure):
            orchestrator.run(CompressionRequest(source=str(source_video)))

    def test_probe_failure_on_duration(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        ffprobe.get_duration.side_effect = RuntimeError("ffprobe failed")
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(MetadataFailure):
            orchestrator.run(CompressionRequest(source=str(source_video)))

    def test_remote_metadata_failure(self, app_config, bus, downloader, ffprobe, ffmpeg):
        downloader.fetch_metadata.side_effect = RuntimeError("unsupported URL")
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(MetadataFailure):
            orchestrator.run(CompressionRequest(source=URL))

    def test_remote_without_duration(self, app_config, bus, downloader, ffprobe, ffmpeg):
        downloader.fetch_metadata.return_value = {"title": "Live", "duration": None, "id": "x"}
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(MetadataFailure):
            orchestrator.run(CompressionRequest(source=URL))

    def test_infeasible_target(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        ffprobe.get_duration.return_value = 3600
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(InfeasibleTarget):
            orchestrator.run(CompressionRequest(source=str(source_video), target_size_mb=10))
        ffmpeg.encode.assert_not_called()

    def test_download_failure(self, app_config, bus, downloader, ffprobe, ffmpeg):
        downloader.fetch_metadata.return_value = {"title": "Clip", "duration": 60, "id": "x"}
        downloader.download.side_effect = RuntimeError("HTTP Error 403")
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(DownloadFailure):
            orchestrator.run(CompressionRequest(source=URL))

    def test_dimension_probe_failure(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        ffprobe.get_stream_info.side_effect = ValueError("Could not read video dimensions")
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(DimensionProbeFailure):
            orchestrator.run(CompressionRequest(source=str(source_video)))
        ffmpeg.encode.assert_not_called()

    def test_success_without_output_file(self, app_config, bus, downloader, ffprobe, ffmpeg, source_video):
        ffmpeg.encode.side_effect = None
        ffmpeg.encode.return_value = EncodeResult(success=True)
        orchestrator = make_orchestrator(app_config, bus, downloader, ffprobe, ffmpeg)
        with pytest.raises(EncodeFailure):
            orchestrator.run(CompressionRequest(source=str(source_video)))
