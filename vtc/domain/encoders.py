import logging
from enum import Enum
from typing import Callable, Collection, List, Optional, Tuple
from vtc.domain.errors import EncodeFailure
from vtc.domain.models import EncodeJob, EncodeResult, EncoderChoice, EncoderKind

SOFTWARE_ENCODER = "libx264"
VAAPI_DEVICE = "/dev/dri/renderD128"

# (ffmpeg encoder id, vendor label, extra args), in priority order per platform class
Candidate = Tuple[str, str, Tuple[str, ...]]

PLATFORM_ENCODERS: List[Tuple[str, List[Candidate]]] = [
    ("darwin", [
        ("h264_videotoolbox", "Apple VideoToolbox", ()),
    ]),
    ("linux", [
        ("h264_nvenc", "NVIDIA", ()),
        ("h264_vaapi", "VAAPI", ("-vaapi_device", VAAPI_DEVICE)),
        ("h264_qsv", "Intel QuickSync", ()),
    ]),
    ("windows", [
        ("h264_nvenc", "NVIDIA", ()),
        ("h264_amf", "AMD", ()),
        ("h264_qsv", "Intel QuickSync", ()),
    ]),
]

SOFTWARE_CHOICE = EncoderChoice(
    kind=EncoderKind.SOFTWARE,
    identifier_tag="software",
    encoder=SOFTWARE_ENCODER,
)


def classify_platform(system_name: str) -> Optional[str]:
    """Maps platform.system() output to a platform class."""
    name = system_name.lower()
    if name == "darwin":
        return "darwin"
    if name == "linux":
        return "linux"
    if "windows" in name:
        return "windows"
    return None


def candidates_for(platform_class: Optional[str]) -> List[Candidate]:
    for name, candidates in PLATFORM_ENCODERS:
        if name == platform_class:
            return candidates
    return []


class NegotiationState(str, Enum):
    UNSELECTED = "UNSELECTED"
    HARDWARE_SELECTED = "HARDWARE_SELECTED"
    SOFTWARE_SELECTED = "SOFTWARE_SELECTED"
    SOFTWARE_FALLBACK = "SOFTWARE_FALLBACK"
    FAILED = "FAILED"


EncodeRunner = Callable[[EncodeJob, EncoderChoice], EncodeResult]


class EncoderNegotiator:
    """Picks a hardware encoder for the host platform and falls back to software once."""

    def __init__(self, system_name: str, allow_hardware: bool = True,
                 on_fallback: Optional[Callable[[EncoderChoice, EncoderChoice, EncodeResult], None]] = None):
        self.platform_class = classify_platform(system_name)
        self.allow_hardware = allow_hardware
        self.on_fallback = on_fallback
        self.state = NegotiationState.UNSELECTED
        self.choice: Optional[EncoderChoice] = None
        self.attempts: List[EncoderChoice] = []
        self.logger = logging.getLogger(__name__)

    def select(self, available_encoders: Collection[str]) -> EncoderChoice:
        if self.state != NegotiationState.UNSELECTED:
            raise RuntimeError(f"Encoder already selected (state={self.state.value})")

        if self.allow_hardware:
            for encoder, vendor, extra_args in candidates_for(self.platform_class):
                if encoder in available_encoders:
                    self.choice = EncoderChoice(
                        kind=EncoderKind.HARDWARE,
                        identifier_tag=vendor,
                        encoder=encoder,
                        extra_args=extra_args,
                    )
                    self.state = NegotiationState.HARDWARE_SELECTED
                    self.logger.info(f"Hardware encoder selected: {encoder} ({vendor})")
                    return self.choice

        self.choice = SOFTWARE_CHOICE
        self.state = NegotiationState.SOFTWARE_SELECTED
        self.logger.info(f"No hardware encoder used, selected {SOFTWARE_ENCODER}")
        return self.choice

    def execute(self, job: EncodeJob, runner: EncodeRunner) -> EncodeResult:
        """Runs the encode; at most one hardware->software retry.

        Raises EncodeFailure when no attempt succeeds.
        """
        if self.choice is None:
            raise RuntimeError("select() must be called before execute()")

        result = self._attempt(job, self.choice, runner)
        if result.success:
            return result

        if self.state == NegotiationState.HARDWARE_SELECTED:
            self.logger.warning(
                f"Hardware encoding with {self.choice.encoder} failed "
                f"({result.error_message}), falling back to {SOFTWARE_ENCODER}"
            )
            failed_choice = self.choice
            self.state = NegotiationState.SOFTWARE_FALLBACK
            self.choice = SOFTWARE_CHOICE
            if self.on_fallback:
                self.on_fallback(failed_choice, SOFTWARE_CHOICE, result)
            result = self._attempt(job, self.choice, runner)
            if result.success:
                return result

        self.state = NegotiationState.FAILED
        raise EncodeFailure(f"ffmpeg failed: {result.error_message or f'exit code {result.returncode}'}")

    def _attempt(self, job: EncodeJob, choice: EncoderChoice, runner: EncodeRunner) -> EncodeResult:
        self.attempts.append(choice)
        try:
            return runner(job, choice)
        except Exception as e:
            # Any runner error counts as a failed attempt
            self.logger.error(f"Encoder {choice.encoder} raised {type(e).__name__}: {e}")
            return EncodeResult(success=False, returncode=-1, error_message=f"{type(e).__name__}: {e}")
