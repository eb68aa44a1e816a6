import pytest
from pathlib import Path
from pydantic import ValidationError
from vtc.domain.models import (
    BitrateBudget, CompressionRequest, MediaDescriptor, Resolution, SourceBitrate, BitrateOrigin
)

@pytest.mark.parametrize("value, expected", [
    ("720p", Resolution.P720),
    ("720", Resolution.P720),
    (1080, Resolution.P1080),
    (" 360P ", Resolution.P360),
])
def test_resolution_parse(value, expected):
    assert Resolution.parse(value) == expected

@pytest.mark.parametrize("value", ["1440p", "hd", "", 0])
def test_resolution_parse_rejects(value):
    with pytest.raises(ValueError):
        Resolution.parse(value)

def test_resolution_tag():
    assert Resolution.P480.tag == "480p"

def test_request_defaults():
    request = CompressionRequest(source="clip.mp4")
    assert request.target_size_mb == 1000
    assert request.resolution_override is None
    assert request.auto_cleanup is False

def test_request_is_immutable():
    request = CompressionRequest(source="clip.mp4")
    with pytest.raises(ValidationError):
        request.target_size_mb = 5

def test_budget_must_be_positive():
    with pytest.raises(ValidationError):
        BitrateBudget(video_kbps=0)

def test_descriptor_enrichment_returns_new_value():
    media = MediaDescriptor(duration_seconds=60, base_name="clip")
    probed = media.model_copy(update={
        "source_height": 1080,
        "source_bitrate": SourceBitrate(kbps=2000, origin=BitrateOrigin.PROBED),
    })
    assert media.source_height is None
    assert media.source_bitrate.known is False
    assert probed.source_height == 1080
    assert probed.source_bitrate.kbps == 2000

def test_descriptor_requires_positive_duration():
    with pytest.raises(ValidationError):
        MediaDescriptor(duration_seconds=0, base_name="clip")
