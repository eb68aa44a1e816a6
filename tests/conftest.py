import pytest
from pathlib import Path
from unittest.mock import MagicMock
from vtc.config.models import AppConfig, GeneralConfig, DownloadConfig
from vtc.domain.models import EncodeResult
from vtc.infrastructure.event_bus import EventBus

MB = 1024 * 1024


def write_sparse(path: Path, size_mb: float) -> Path:
    """Creates a file reporting the given size without writing the bytes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(int(size_mb * MB))
    return path


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        general=GeneralConfig(output_dir=tmp_path / "out"),
        download=DownloadConfig(work_dir=tmp_path / "downloads"),
    )


@pytest.fixture
def source_video(tmp_path):
    """A local 'video' of 40 MB; its content is never read."""
    return write_sparse(tmp_path / "input.mp4", 40)


@pytest.fixture
def ffprobe():
    mock = MagicMock()
    mock.get_duration.return_value = 600.4
    mock.get_stream_info.return_value = {
        "width": 1920,
        "height": 1080,
        "codec": "h264",
        "bit_rate": 2_000_000.0,
        "duration": 600.4,
    }
    return mock


@pytest.fixture
def ffmpeg():
    """Encoder that 'produces' a 250 MB file."""
    mock = MagicMock()
    mock.list_encoders.return_value = {"libx264", "h264_nvenc", "aac"}

    def encode(job, choice):
        write_sparse(job.output_path, 250)
        return EncodeResult(success=True)

    mock.encode.side_effect = encode
    return mock


@pytest.fixture
def downloader():
    return MagicMock()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def sparse_file():
    return write_sparse
