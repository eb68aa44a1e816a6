from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from vtc.domain.models import Resolution

class GeneralConfig(BaseModel):
    target_size_mb: float = Field(default=1000, gt=0)
    resolution: Optional[int] = Field(default=None)
    output_dir: Path = Field(default=Path("."))
    gpu: bool = True
    auto_cleanup: bool = False
    debug: bool = False

    @field_validator('resolution', mode='before')
    @classmethod
    def validate_resolution(cls, v):
        if v is None:
            return v
        return int(Resolution.parse(v))

class DownloadConfig(BaseModel):
    work_dir: Path = Field(default=Path("."))
    containers: List[str] = Field(default_factory=lambda: ["mp4", "mkv", "mov", "webm"])

    @field_validator('containers')
    @classmethod
    def normalize_containers(cls, v: List[str]) -> List[str]:
        normalized = [ext.lower().lstrip(".") for ext in v if ext.strip(". ")]
        if not normalized:
            raise ValueError("At least one download container extension is required.")
        return normalized

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
