"""framewise command line interface."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

app = typer.Typer(help="Sampled video object detection", no_args_is_help=True)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("run")
def run_video(
    video: Path = typer.Option(..., exists=True, help="Path to video file"),
    model: str | None = typer.Option(None, help="Detector weights (overrides config)"),
    skip_frames: int | None = typer.Option(None, min=0, help="Frames skipped between samples"),
    classes: str | None = typer.Option(None, help="Comma separated classes to detect"),
    out: Path | None = typer.Option(None, help="JSONL output for pipeline updates"),
    config: Path = typer.Option(Path("configs/default.yaml"), help="App config yaml"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Process a video and stream detections/progress updates to JSONL."""
    from framewise.config import load_settings, parse_classes
    from framewise.events.emitter import JsonlSink
    from framewise.ingest.decoder import OpenCVDecoder
    from framewise.pipeline.controller import PipelineController
    from framewise.vision.detector import TrackingDetector
    from framewise.vision.tracker import ObjectTracker
    from framewise.vision.yolo import YoloModel

    _configure_logging(log_level)
    settings = load_settings(config)
    if skip_frames is not None:
        settings.pipeline.skip_frames = skip_frames
    if classes is not None:
        settings.pipeline.active_classes = parse_classes(classes)
    model_path = model or settings.detector.model_path
    out_path = out or Path(settings.output.jsonl_path)

    yolo = YoloModel(model_path, imgsz=settings.detector.input_size)
    detector = TrackingDetector(yolo, settings=settings.detector, tracker=ObjectTracker(settings.tracker))
    decoder = OpenCVDecoder()
    controller = PipelineController(decoder, detector, settings=settings.pipeline)
    controller.subscribe(JsonlSink(out_path))

    try:
        if not controller.start(str(video)):
            typer.echo(f"Could not process {video}", err=True)
            raise typer.Exit(code=1)
        try:
            controller.wait()
        except KeyboardInterrupt:
            controller.stop()
            controller.wait()
        typer.echo(controller.performance_summary())
        typer.echo(f"Updates written to {out_path}")
        if controller.last_success is False:
            raise typer.Exit(code=1)
    finally:
        controller.close()
        decoder.close()


@app.command("probe")
def probe_video(
    video: Path = typer.Option(..., exists=True, help="Path to video file"),
    skip_frames: int = typer.Option(10, min=0, help="Frames skipped between samples"),
) -> None:
    """Print video geometry and the sample plan size."""
    from framewise.errors import SourceUnavailableError
    from framewise.ingest.decoder import OpenCVDecoder
    from framewise.pipeline.detection import plan_timestamps

    decoder = OpenCVDecoder()
    try:
        info = decoder.probe(video)
    except SourceUnavailableError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    plan = plan_timestamps(info.duration, info.frame_rate, skip_frames)
    typer.echo(f"size: {info.width}x{info.height}")
    typer.echo(f"duration: {info.duration:.2f}s @ {info.frame_rate:.2f}fps")
    typer.echo(f"frames: {plan.total_logical_frames} (sampling {plan.frames_to_process}, stride {plan.stride})")


if __name__ == "__main__":
    app()
