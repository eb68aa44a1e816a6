from typing import Optional
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table

from vtc.infrastructure.event_bus import EventBus
from vtc.ui.state import RunState
from vtc.domain.events import (
    MetadataResolved, BudgetComputed, ResolutionSelected,
    DownloadStarted, DownloadFinished, SourceProbed, BitrateClamped, ScaleDecided,
    EncoderSelected, EncodeStarted, EncodeProgressUpdated, EncoderFallback, EncodeFinished,
    OutputRenamed, TempFileDeleted, RunCompleted
)
from vtc.domain.models import BitrateOrigin, EncoderKind

class UIManager:
    """Subscribes to EventBus, updates RunState and prints progress to the console."""

    def __init__(self, bus: EventBus, state: RunState, console: Optional[Console] = None):
        self.bus = bus
        self.state = state
        self.console = console or Console()
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(MetadataResolved, self.on_metadata_resolved)
        self.bus.subscribe(BudgetComputed, self.on_budget_computed)
        self.bus.subscribe(ResolutionSelected, self.on_resolution_selected)
        self.bus.subscribe(DownloadStarted, self.on_download_started)
        self.bus.subscribe(DownloadFinished, self.on_download_finished)
        self.bus.subscribe(SourceProbed, self.on_source_probed)
        self.bus.subscribe(BitrateClamped, self.on_bitrate_clamped)
        self.bus.subscribe(ScaleDecided, self.on_scale_decided)
        self.bus.subscribe(EncoderSelected, self.on_encoder_selected)
        self.bus.subscribe(EncodeStarted, self.on_encode_started)
        self.bus.subscribe(EncodeProgressUpdated, self.on_encode_progress)
        self.bus.subscribe(EncoderFallback, self.on_encoder_fallback)
        self.bus.subscribe(EncodeFinished, self.on_encode_finished)
        self.bus.subscribe(OutputRenamed, self.on_output_renamed)
        self.bus.subscribe(TempFileDeleted, self.on_temp_deleted)
        self.bus.subscribe(RunCompleted, self.on_run_completed)

    def on_metadata_resolved(self, event: MetadataResolved):
        self.state.media = event.media
        self.state.is_url = event.is_url
        self.console.print(
            f"🌐 [bold]{event.media.base_name}[/bold] ({event.media.duration_seconds}s)"
            if event.is_url else
            f"📄 [bold]{event.media.base_name}[/bold] ({event.media.duration_seconds}s)"
        )

    def on_budget_computed(self, event: BudgetComputed):
        self.state.budget = event.budget
        self.state.target_size_mb = event.target_size_mb
        self.console.print(
            f"🧮 Video bitrate budget: [cyan]{event.budget.whole_kbps} kbps[/cyan] "
            f"for {event.target_size_mb:g}MB"
        )

    def on_resolution_selected(self, event: ResolutionSelected):
        self.state.decision = event.decision
        if event.decision.was_manual:
            self.console.print(f"🎯 Manual resolution: [cyan]{event.decision.height.tag}[/cyan]")
        else:
            self.console.print(f"🤖 Auto resolution: [cyan]{event.decision.height.tag}[/cyan]")

    def on_download_started(self, event: DownloadStarted):
        self.console.print(f"⬇ Downloading [height<={event.max_height}]...", markup=False)

    def on_download_finished(self, event: DownloadFinished):
        self.console.print(f"📥 Downloaded [green]{event.path.name}[/green]")

    def on_source_probed(self, event: SourceProbed):
        self.state.media = event.media
        source = event.media.source_bitrate
        if source.origin == BitrateOrigin.PROBED:
            self.console.print(f"📊 Source video bitrate: {int(source.kbps)} kbps")
        elif source.origin == BitrateOrigin.ESTIMATED:
            self.console.print(f"📊 Calculated source bitrate: {int(source.kbps)} kbps")
        else:
            self.console.print("[yellow]⚠️ Couldn't determine source bitrate[/yellow]")

    def on_bitrate_clamped(self, event: BitrateClamped):
        self.console.print(
            f"[yellow]⚠️ Source bitrate ({int(event.source.kbps)} kbps) is lower than "
            f"target ({int(event.budget_kbps)} kbps)[/yellow]"
        )
        self.console.print("✅ Using source bitrate to avoid increasing file size")

    def on_scale_decided(self, event: ScaleDecided):
        self.state.scale_height = event.scale_height
        if event.scale_height is None:
            self.console.print(f"✅ Keeping {event.source_width}x{event.source_height}")
        else:
            self.console.print(
                f"⬇ Downscaling {event.source_width}x{event.source_height} → {event.scale_height}p"
            )

    def on_encoder_selected(self, event: EncoderSelected):
        if event.choice.kind == EncoderKind.HARDWARE:
            self.console.print(f"🚀 Using {event.choice.identifier_tag} hardware acceleration ({event.choice.encoder})")
        else:
            self.console.print(f"ℹ️ Using software encoding ({event.choice.encoder})")

    def on_encode_started(self, event: EncodeStarted):
        self.state.encoders_tried.append(event.choice)
        self.state.effective_kbps = event.job.video_kbps
        self.console.print(f"🎬 Compressing → [bold]{event.job.output_path.name}[/bold]")
        self._start_progress(event.choice.encoder)

    def on_encode_progress(self, event: EncodeProgressUpdated):
        if self._progress is not None and self._task is not None:
            self._progress.update(self._task, completed=event.progress_percent)

    def on_encoder_fallback(self, event: EncoderFallback):
        self._stop_progress()
        self.state.fell_back = True
        self.console.print(
            f"[yellow]⚠️ Hardware encoding failed ({event.error_message}), "
            f"falling back to {event.fallback.encoder}[/yellow]"
        )

    def on_encode_finished(self, event: EncodeFinished):
        if self._progress is not None and self._task is not None:
            self._progress.update(self._task, completed=100)
        self._stop_progress()

    def on_output_renamed(self, event: OutputRenamed):
        self.console.print(f"ℹ️ Output file is smaller than target. Renamed to: {event.new_path.name}")

    def on_temp_deleted(self, event: TempFileDeleted):
        if event.automatic:
            self.console.print("🗑 Auto-deleted temp file")
        else:
            self.console.print("🗑 Deleted temp file")

    def on_run_completed(self, event: RunCompleted):
        self.state.artifact = event.artifact
        self.console.print(f"[bold green]✅ Done:[/bold green] {event.artifact.path}")

    def _start_progress(self, label: str):
        self._stop_progress()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True
        )
        self._progress.start()
        self._task = self._progress.add_task(label, total=100)

    def _stop_progress(self):
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None

    def close(self):
        """Stops any live progress display (safe to call on failure paths)."""
        self._stop_progress()

    def render_summary(self):
        if self.state.artifact is None:
            return
        table = Table(show_header=False, box=None)
        table.add_column("Key", style="dim")
        table.add_column("Value", style="cyan")
        media = self.state.media
        if media is not None:
            origin = "URL" if self.state.is_url else "local file"
            source = f"{media.base_name} ({origin}, {media.duration_seconds}s"
            if media.source_width and media.source_height:
                source += f", {media.source_width}x{media.source_height}"
            table.add_row("Source", source + ")")
        if self.state.target_size_mb is not None:
            table.add_row("Target", f"{self.state.target_size_mb:g} MB")
        if self.state.decision is not None:
            mode = "manual" if self.state.decision.was_manual else "auto"
            resolution = f"{self.state.decision.height.tag} ({mode})"
            if self.state.scale_height is not None:
                resolution += ", downscaled"
            table.add_row("Resolution", resolution)
        if self.state.effective_kbps is not None:
            bitrate = f"{int(self.state.effective_kbps)} kbps"
            budget = self.state.budget
            if budget is not None and int(self.state.effective_kbps) < budget.whole_kbps:
                bitrate += f" (budget {budget.whole_kbps} kbps, capped at source)"
            table.add_row("Video bitrate", bitrate)
        encoder = self.state.final_encoder
        if encoder is not None:
            suffix = " (fallback)" if self.state.fell_back else ""
            table.add_row("Encoder", f"{encoder.encoder}{suffix}")
        table.add_row("Output", str(self.state.artifact.path))
        table.add_row("Size", f"{self.state.artifact.actual_size_mb} MB")
        self.console.print(table)
