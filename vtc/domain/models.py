from enum import Enum, IntEnum
from pathlib import Path
from typing import Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt


class Resolution(IntEnum):
    P360 = 360
    P480 = 480
    P720 = 720
    P1080 = 1080

    @property
    def tag(self) -> str:
        return f"{self.value}p"

    @classmethod
    def parse(cls, value: Union[str, int]) -> "Resolution":
        """Accepts 720, "720" or "720p"."""
        text = str(value).strip().lower()
        if text.endswith("p"):
            text = text[:-1]
        try:
            return cls(int(text))
        except ValueError:
            allowed = ", ".join(r.tag for r in cls)
            raise ValueError(f"Invalid resolution {value!r}. Must be one of: {allowed}.")


class BitrateOrigin(str, Enum):
    PROBED = "PROBED"
    ESTIMATED = "ESTIMATED"
    UNKNOWN = "UNKNOWN"


class EncoderKind(str, Enum):
    HARDWARE = "HARDWARE"
    SOFTWARE = "SOFTWARE"


class SourceBitrate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kbps: Optional[PositiveFloat] = None
    origin: BitrateOrigin = BitrateOrigin.UNKNOWN

    @property
    def known(self) -> bool:
        return self.kbps is not None


class MediaDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration_seconds: PositiveInt
    base_name: str
    source_width: Optional[PositiveInt] = None
    source_height: Optional[PositiveInt] = None
    source_bitrate: SourceBitrate = Field(default_factory=SourceBitrate)


class CompressionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    target_size_mb: PositiveFloat = 1000
    resolution_override: Optional[Resolution] = None
    auto_cleanup: bool = False


class BitrateBudget(BaseModel):
    model_config = ConfigDict(frozen=True)

    video_kbps: float = Field(gt=0)

    @property
    def whole_kbps(self) -> int:
        # Fractional part is discarded, never rounded
        return int(self.video_kbps)


class ResolutionDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    height: Resolution
    was_manual: bool = False


class EncoderChoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EncoderKind
    identifier_tag: str
    encoder: str
    extra_args: Tuple[str, ...] = ()


class EncodeJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_path: Path
    output_path: Path
    video_kbps: PositiveFloat
    scale_height: Optional[PositiveInt] = None
    duration_seconds: Optional[PositiveInt] = None


class EncodeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    returncode: int = 0
    error_message: Optional[str] = None


class OutputArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    actual_size_mb: int = Field(ge=0)
