import logging
import traceback
import typer
import yaml
from pathlib import Path
from typing import Optional

from vtc.config.loader import load_config
from vtc.infrastructure.logging import setup_logging
from vtc.infrastructure.event_bus import EventBus
from vtc.infrastructure.dependencies import check_dependencies
from vtc.infrastructure.downloader import YtDlpAdapter
from vtc.infrastructure.ffprobe import FFprobeAdapter
from vtc.infrastructure.ffmpeg import FFmpegAdapter
from vtc.pipeline.orchestrator import Orchestrator
from vtc.ui.state import RunState
from vtc.ui.manager import UIManager
from vtc.domain.errors import InvalidInput, VtcError
from vtc.domain.models import CompressionRequest, Resolution

app = typer.Typer(help="VTC (Video Target-size Compression) - compress a video or URL to a target size")

def _confirm_cleanup(temp_file: Path, output: Path) -> bool:
    return typer.confirm(
        f"🧹 Delete temp file '{temp_file}'? (Your output '{output}' is safe)",
        default=False
    )

@app.command()
def compress(
    input_: Optional[str] = typer.Option(None, "--input", "-i", help="Video file or http(s) URL"),
    target_size: Optional[float] = typer.Option(None, "--target-size", "-s", help="Target output size in MB (default 1000)"),
    resolution: Optional[str] = typer.Option(None, "--resolution", "-r", help="Force resolution: 360p, 480p, 720p or 1080p"),
    cleanup: bool = typer.Option(False, "--cleanup", "-c", help="Delete the downloaded temp file without asking"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to YAML config"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for the compressed file"),
    gpu: Optional[bool] = typer.Option(None, "--gpu/--cpu", help="Enable/disable hardware encoders"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging")
):
    """Compress a video to a target size, picking bitrate, resolution and encoder automatically."""
    try:
        if not input_:
            raise InvalidInput("No input provided. Use -i <URL|file>")

        try:
            config = load_config(config_path)
        except (ValueError, yaml.YAMLError) as e:
            raise InvalidInput(f"Invalid configuration: {e}")
        # Apply CLI overrides
        if target_size is not None: config.general.target_size_mb = target_size
        if resolution is not None:
            try:
                config.general.resolution = int(Resolution.parse(resolution))
            except ValueError as e:
                raise InvalidInput(str(e))
        if output_dir is not None: config.general.output_dir = output_dir
        if gpu is not None: config.general.gpu = gpu
        if cleanup: config.general.auto_cleanup = True
        if debug: config.general.debug = True

        if config.general.target_size_mb <= 0:
            raise InvalidInput(f"Target size must be positive, got {config.general.target_size_mb}")

        logger = setup_logging(config.general.output_dir, debug=config.general.debug)
        logger.info(f"VTC started: input={input_}, target={config.general.target_size_mb}MB")
        logger.info(
            f"Config: resolution={config.general.resolution}, gpu={config.general.gpu}, "
            f"auto_cleanup={config.general.auto_cleanup}, debug={config.general.debug}"
        )

        check_dependencies()

        request = CompressionRequest(
            source=input_,
            target_size_mb=config.general.target_size_mb,
            resolution_override=Resolution(config.general.resolution) if config.general.resolution else None,
            auto_cleanup=config.general.auto_cleanup
        )

        bus = EventBus()
        state = RunState()
        ui = UIManager(bus, state)

        orchestrator = Orchestrator(
            config=config,
            event_bus=bus,
            downloader=YtDlpAdapter(containers=config.download.containers),
            ffprobe_adapter=FFprobeAdapter(),
            ffmpeg_adapter=FFmpegAdapter(event_bus=bus),
            confirm_cleanup=_confirm_cleanup
        )

        try:
            orchestrator.run(request)
        finally:
            ui.close()
        ui.render_summary()

    except (KeyboardInterrupt, typer.Abort):
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=130)

    except VtcError as e:
        logging.getLogger("vtc").error(f"{type(e).__name__}: {e}")
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=e.exit_code)

    except Exception as e:
        logging.getLogger("vtc").error(traceback.format_exc())
        typer.secho(f"Fatal Error: {type(e).__name__}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

def main():
    """Console entry point; usage errors exit with 1 like every other failure."""
    try:
        app()
    except SystemExit as e:
        if e.code == 2:
            raise SystemExit(1)
        raise

if __name__ == "__main__":
    main()
