from __future__ import annotations

import logging
import shutil
import tarfile
from pathlib import Path

from max_trainer.pipeline.config import ResolvedRunPaths
from max_trainer.pipeline.errors import CustomizationError, PackagingError

logger = logging.getLogger(__name__)


def stage_artifacts(paths: ResolvedRunPaths) -> Path:
    """Mirror the archive layout under the staging dir and copy the saved model into it.

    Returns the framework-specific target directory.
    """
    if paths.artifact_target_dir is None:
        raise CustomizationError(
            "This script was not correctly customized: packaging.framework is empty."
        )

    target = paths.artifact_target_dir
    try:
        target.mkdir(parents=True, exist_ok=True)
        if paths.saved_model_dir.is_dir():
            logger.info("Copying %s to %s", paths.saved_model_dir, target)
            shutil.copytree(paths.saved_model_dir, target, dirs_exist_ok=True)
        else:
            logger.info("No saved model at %s; staging an empty target", paths.saved_model_dir)
    except OSError as exc:
        raise PackagingError(f"Staging of model artifacts failed: {exc}") from exc
    return target


def create_archive(staging_dir: Path, archive_path: Path) -> list[str]:
    """Write a gzip-compressed tar of staging_dir with member names relative to it.

    A partially written archive is removed on failure; the staging dir is
    left as is for diagnosis.
    """
    members: list[str] = []
    try:
        with tarfile.open(archive_path, "w:gz") as tar:
            for entry in sorted(staging_dir.iterdir()):
                tar.add(entry, arcname=entry.name)
            members = tar.getnames()
    except (OSError, tarfile.TarError) as exc:
        if archive_path.is_file():
            archive_path.unlink()
        raise PackagingError(f"Packaging command failed for {archive_path}: {exc}") from exc

    for name in members:
        logger.debug("archived %s", name)
    return members


def remove_staging(staging_dir: Path) -> None:
    try:
        shutil.rmtree(staging_dir)
    except OSError as exc:
        raise PackagingError(f"Removal of staging directory {staging_dir} failed: {exc}") from exc
