from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from max_trainer.pipeline.errors import CustomizationError, EnvironmentCheckError


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path)).resolve()


def _read_toml(path: Path) -> dict[str, Any]:
    """Read TOML into a dict, supporting Python 3.10+.

    Uses tomllib when available, falls back to tomli.
    """
    data = path.read_bytes()
    try:
        import tomllib  # type: ignore[attr-defined]

        return tomllib.loads(data.decode("utf-8"))
    except ModuleNotFoundError:
        import tomli  # type: ignore[import-not-found]

        return tomli.loads(data.decode("utf-8"))


class EnvironmentConfig(BaseModel):
    """Names of the environment variables set by the training service."""

    data_dir_var: str = Field(default="DATA_DIR", description="Directory holding the training data.")
    result_dir_var: str = Field(default="RESULT_DIR", description="Directory receiving training output.")


class InstallConfig(BaseModel):
    enabled: bool = Field(default=True)
    requirements_file: str = Field(
        default="training_requirements.txt",
        description="Package manifest, relative to training.working_dir unless absolute.",
    )
    fail_on_error: bool = Field(
        default=True,
        description="Abort the run when pip exits non-zero or the manifest is missing.",
    )
    pip_args: list[str] = Field(default_factory=list)


class TrainingConfig(BaseModel):
    program: str = Field(default="train_ner.py")
    python_executable: str = Field(default="", description="Empty means the current interpreter.")
    # 10 epochs is enough for smoke testing; real runs want 30-40.
    epochs: int = Field(default=10, ge=1)
    extra_args: list[str] = Field(default_factory=list)
    working_dir: str = Field(default="", description="Empty means the current directory.")

    def interpreter(self) -> str:
        return self.python_executable or sys.executable

    def resolve_working_dir(self) -> Path:
        return _expand(self.working_dir) if self.working_dir else Path.cwd()


class PostProcessingConfig(BaseModel):
    patch_checkpoint: bool = Field(default=True)


class PackagingConfig(BaseModel):
    framework: str = Field(default="tensorflow", description="Subdirectory of trained_model/.")
    # standardized archive name; do not change for WML deployments
    archive_name: str = Field(default="model_training_output.tar.gz")
    staging_dir: str = Field(default="output")
    cleanup_staging: bool = Field(default=True)

    @field_validator("staging_dir", "archive_name")
    @classmethod
    def _plain_entry_name(cls, value: str) -> str:
        # Both live directly in RESULT_DIR; staging_dir is removed with rmtree.
        name = value.strip()
        if name in ("", ".", "..", "model") or "/" in name or "\\" in name or os.sep in name:
            raise ValueError(f"must be a plain file name inside RESULT_DIR, got {value!r}")
        return name

    @model_validator(mode="after")
    def _distinct_names(self) -> "PackagingConfig":
        if self.staging_dir == self.archive_name:
            raise ValueError("staging_dir and archive_name must differ")
        return self


class RunConfig(BaseModel):
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    install: InstallConfig = Field(default_factory=InstallConfig)
    training: TrainingConfig = Field(default_factory=TrainingConfig)
    post_processing: PostProcessingConfig = Field(default_factory=PostProcessingConfig)
    packaging: PackagingConfig = Field(default_factory=PackagingConfig)

    @classmethod
    def load(cls, path: Path) -> "RunConfig":
        raw = _read_toml(path)
        return cls.model_validate(raw)

    @classmethod
    def load_or_default(cls, path: Path | None) -> "RunConfig":
        if path is None:
            return cls()
        if not path.is_file():
            raise CustomizationError(f"Missing config file: {path}")
        try:
            return cls.load(path)
        except (ValueError, OSError) as exc:  # TOML and pydantic errors are ValueErrors
            raise CustomizationError(f"Invalid config file {path}: {exc}") from exc

    def resolve_paths(self, environ: Mapping[str, str] | None = None) -> "ResolvedRunPaths":
        """Check the required directories and derive every path of the run.

        Only reads the environment and the filesystem; nothing is created.
        """
        env = os.environ if environ is None else environ
        data_dir = _require_dir(env, self.environment.data_dir_var)
        result_dir = _require_dir(env, self.environment.result_dir_var)

        model_dir = result_dir / "model"
        staging_dir = result_dir / self.packaging.staging_dir
        trained_model_dir = staging_dir / "trained_model"
        framework = self.packaging.framework.strip()
        return ResolvedRunPaths(
            data_dir=data_dir,
            result_dir=result_dir,
            model_dir=model_dir,
            saved_model_dir=model_dir / "saved_model",
            checkpoint_dir=model_dir / "checkpoint",
            checkpoint_file=model_dir / "checkpoint" / "checkpoint",
            staging_dir=staging_dir,
            trained_model_dir=trained_model_dir,
            artifact_target_dir=(trained_model_dir / framework / "saved_model") if framework else None,
            archive_path=result_dir / self.packaging.archive_name,
        )


def _require_dir(env: Mapping[str, str], name: str) -> Path:
    value = env.get(name)
    if value is None:
        raise EnvironmentCheckError(f"Environment variable {name} is not defined.")
    path = Path(os.path.expanduser(value)) if value else None
    if path is None or not path.is_dir():
        raise EnvironmentCheckError(
            f'Environment variable {name} ("{value}") does not identify an existing directory.'
        )
    return path.resolve()


class ResolvedRunPaths(BaseModel):
    data_dir: Path
    result_dir: Path
    model_dir: Path
    saved_model_dir: Path
    checkpoint_dir: Path
    checkpoint_file: Path
    staging_dir: Path
    trained_model_dir: Path
    artifact_target_dir: Path | None
    archive_path: Path

    model_config = ConfigDict(frozen=True, protected_namespaces=())
