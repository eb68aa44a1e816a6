from typing import List, Optional
from vtc.domain.models import (
    BitrateBudget, EncoderChoice, MediaDescriptor, OutputArtifact, ResolutionDecision
)

class RunState:
    """Decisions taken during one run, collected for the final summary."""

    def __init__(self):
        self.media: Optional[MediaDescriptor] = None
        self.is_url = False
        self.budget: Optional[BitrateBudget] = None
        self.target_size_mb: Optional[float] = None
        self.decision: Optional[ResolutionDecision] = None
        self.effective_kbps: Optional[float] = None
        self.scale_height: Optional[int] = None
        self.encoders_tried: List[EncoderChoice] = []
        self.fell_back = False
        self.artifact: Optional[OutputArtifact] = None

    @property
    def final_encoder(self) -> Optional[EncoderChoice]:
        return self.encoders_tried[-1] if self.encoders_tried else None
