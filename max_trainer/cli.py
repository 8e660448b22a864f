from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from max_trainer.common.logging_config import attach_run_log, configure_logging, log_level
from max_trainer.pipeline.config import RunConfig
from max_trainer.pipeline.errors import TrainingRunError
from max_trainer.pipeline.progress_ui import progress_ui
from max_trainer.pipeline.runner import TrainingRunner

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False)

TEMPLATE_NAME = "training_config.example.toml"


def _load_config(config: Optional[str]) -> RunConfig:
    return RunConfig.load_or_default(Path(config).expanduser() if config else None)


def _fail(exc: TrainingRunError) -> typer.Exit:
    logger.error("Training run failed with exit code %d: %s", exc.exit_code, exc)
    return typer.Exit(code=int(exc.exit_code))


@app.command()
def run(
    config: Optional[str] = typer.Option(None, help="Path to a training_config.toml"),
    log_dir: Optional[str] = typer.Option(None, help="Also write logs to <log_dir>/run.log"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output"),
) -> None:
    """Train the model, patch its checkpoint and package it as model_training_output.tar.gz."""
    configure_logging(log_level(verbose))

    with progress_ui() as ui:
        try:
            cfg = _load_config(config)
            runner = TrainingRunner.from_config(cfg, ui=ui)
            # only after the environment check, log_dir may sit inside RESULT_DIR
            if log_dir is not None:
                attach_run_log(log_dir)
            archive = runner.run()
        except TrainingRunError as exc:
            ui.log(f"[red]Error. {escape(str(exc))}[/red]")
            raise _fail(exc) from exc

    logger.info("Archive written to %s", archive)


@app.command()
def init_config(
    path: str = typer.Argument(
        "training_config.toml",
        help="Where to write the training configuration TOML",
    ),
) -> None:
    """Write an example training_config.toml."""
    template = resources.files("max_trainer").joinpath(TEMPLATE_NAME)

    out = Path(path).expanduser()
    if out.exists():
        raise typer.BadParameter(f"Refusing to overwrite existing file: {out}")

    out.write_text(template.read_text(encoding="utf-8"))
    typer.echo(f"Wrote {out} (edit it, then run: max-train run --config {out})")


@app.command()
def show_config(
    config: Optional[str] = typer.Option(None, help="Path to a training_config.toml"),
) -> None:
    """Print the effective configuration as JSON."""
    try:
        cfg = _load_config(config)
    except TrainingRunError as exc:
        typer.echo(f"Error. {exc}", err=True)
        raise _fail(exc) from exc
    typer.echo(cfg.model_dump_json(indent=2))
