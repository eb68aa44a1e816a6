from pathlib import Path
from typing import ClassVar, Optional
from pydantic import BaseModel
from .models import (
    BitrateBudget, EncodeJob, EncoderChoice, MediaDescriptor, OutputArtifact, ResolutionDecision, SourceBitrate
)

class Event(BaseModel):
    """Base class for all domain events."""
    # Written to the debug log on publish
    traced: ClassVar[bool] = True

class MetadataResolved(Event):
    media: MediaDescriptor
    is_url: bool = False

class BudgetComputed(Event):
    budget: BitrateBudget
    target_size_mb: float

class ResolutionSelected(Event):
    decision: ResolutionDecision

class DownloadStarted(Event):
    url: str
    max_height: int

class DownloadFinished(Event):
    path: Path

class SourceProbed(Event):
    media: MediaDescriptor

class BitrateClamped(Event):
    budget_kbps: float
    source: SourceBitrate

class ScaleDecided(Event):
    source_width: int
    source_height: int
    scale_height: Optional[int] = None

class EncoderSelected(Event):
    choice: EncoderChoice

class EncodeStarted(Event):
    job: EncodeJob
    choice: EncoderChoice

class EncodeProgressUpdated(Event):
    traced: ClassVar[bool] = False
    progress_percent: float

class EncoderFallback(Event):
    failed: EncoderChoice
    fallback: EncoderChoice
    error_message: Optional[str] = None

class EncodeFinished(Event):
    job: EncodeJob
    choice: EncoderChoice

class OutputRenamed(Event):
    old_path: Path
    new_path: Path

class TempFileDeleted(Event):
    path: Path
    automatic: bool = False

class RunCompleted(Event):
    artifact: OutputArtifact
