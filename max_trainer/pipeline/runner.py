from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from rich.markup import escape

from max_trainer.pipeline.checkpoint_patch import PatchOutcome, patch_checkpoint_index
from max_trainer.pipeline.commands import CommandResult, run_command
from max_trainer.pipeline.config import ResolvedRunPaths, RunConfig
from max_trainer.pipeline.errors import DependencyInstallError, TrainingFailedError
from max_trainer.pipeline.packaging import create_archive, remove_staging, stage_artifacts
from max_trainer.pipeline.progress_ui import Ui

logger = logging.getLogger(__name__)

_POST_PROCESSING = escape("[Post processing]")

STAGES: tuple[str, ...] = ("install", "train", "post_process", "staging", "archive", "cleanup")


@dataclass
class TrainingRunner:
    """Runs one training job end to end.

    Stages run strictly in order and none is retried. Any TrainingRunError
    aborts the run; the only recoverable step is the checkpoint patch.
    """

    config: RunConfig
    paths: ResolvedRunPaths
    ui: Ui

    @classmethod
    def from_config(
        cls,
        config: RunConfig,
        ui: Ui,
        environ: Mapping[str, str] | None = None,
    ) -> "TrainingRunner":
        paths = config.resolve_paths(environ)
        return cls(config=config, paths=paths, ui=ui)

    def run(self) -> Path:
        task = self.ui.progress.add_task("Training run", total=len(STAGES))
        for stage in STAGES:
            self.ui.progress.update(task, description=stage)
            getattr(self, f"_stage_{stage}")()
            self.ui.progress.advance(task)

        self.ui.log("[green]Model training and packaging completed.[/green]")
        return self.paths.archive_path

    def training_command(self) -> list[str]:
        training = self.config.training
        return [
            training.interpreter(),
            training.program,
            "--data_path",
            str(self.paths.data_dir),
            "--model_path",
            str(self.paths.saved_model_dir),
            "--epochs",
            str(training.epochs),
            *training.extra_args,
        ]

    def requirements_path(self) -> Path:
        manifest = Path(self.config.install.requirements_file).expanduser()
        if manifest.is_absolute():
            return manifest
        return self.config.training.resolve_working_dir() / manifest

    def _stage_install(self) -> None:
        self.ui.banner("Preparing for model training")
        self.ui.log(f"Training data is stored in {self.paths.data_dir}")
        self.ui.log(f"Training work files and results will be stored in {self.paths.result_dir}")

        install = self.config.install
        if not install.enabled:
            self.ui.log("Skipping installation of prerequisite packages.")
            return

        manifest = self.requirements_path()
        if not manifest.is_file():
            self._install_failed(f"Package manifest {manifest} does not exist.")
            return

        self.ui.log("Installing prerequisite packages ...")
        cmd = [self.config.training.interpreter(), "-m", "pip", "install", "-r", str(manifest), *install.pip_args]
        result = run_command(cmd, cwd=self.config.training.resolve_working_dir())
        if not result.ok:
            self._install_failed(
                f"Installation of prerequisite packages exited with status code {result.returncode}.",
                result,
            )

    def _install_failed(self, message: str, result: CommandResult | None = None) -> None:
        if result is not None and result.tail():
            logger.error("pip output:\n%s", result.tail())
        if self.config.install.fail_on_error:
            raise DependencyInstallError(message)
        logger.warning("%s Continuing.", message)
        self.ui.log(f"[yellow]Warning. {message}[/yellow]")

    def _stage_train(self) -> None:
        self.paths.model_dir.mkdir(parents=True, exist_ok=True)

        self.ui.banner("Training model ...")
        cmd = self.training_command()
        self.ui.log(f'Running training command "{" ".join(cmd)}"')

        result = run_command(
            cmd,
            cwd=self.config.training.resolve_working_dir(),
            capture_output=False,
        )
        if not result.ok:
            if result.stderr:
                logger.error("%s", result.stderr)
            raise TrainingFailedError(result.returncode)

        self.ui.log(f"Training completed. Output is stored in {self.paths.result_dir}.")

    def _stage_post_process(self) -> None:
        self.ui.banner("Post processing ...")
        if not self.config.post_processing.patch_checkpoint:
            return

        outcome = patch_checkpoint_index(self.paths.checkpoint_dir)
        if outcome is PatchOutcome.PATCHED:
            self.ui.log(f"{_POST_PROCESSING} TensorFlow checkpoint file was successfully patched.")
        elif outcome is PatchOutcome.FAILED:
            self.ui.log(f"[yellow]{_POST_PROCESSING} Warning. Patch of TensorFlow checkpoint file failed.[/yellow]")
        else:
            logger.debug("Checkpoint patch skipped: %s", outcome.value)

    def _stage_staging(self) -> None:
        stage_artifacts(self.paths)

    def _stage_archive(self) -> None:
        self.ui.banner("Packaging artifacts")
        self.ui.log(f'Creating downloadable archive "{self.paths.archive_path}".')
        members = create_archive(self.paths.staging_dir, self.paths.archive_path)
        logger.info("Archived %d entries into %s", len(members), self.paths.archive_path)

    def _stage_cleanup(self) -> None:
        if self.config.packaging.cleanup_staging:
            remove_staging(self.paths.staging_dir)
