from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes of a training run."""

    SUCCESS = 0
    TRAINING_FAILED = 1
    POST_PROCESSING_FAILED = 2  # reserved
    PACKAGING_FAILED = 3
    CUSTOMIZATION_ERROR = 4
    ENV_ERROR = 5


class TrainingRunError(RuntimeError):
    """Terminal failure of a training run stage."""

    exit_code: ExitCode = ExitCode.TRAINING_FAILED


class EnvironmentCheckError(TrainingRunError):
    exit_code = ExitCode.ENV_ERROR


class DependencyInstallError(TrainingRunError):
    exit_code = ExitCode.ENV_ERROR


class TrainingFailedError(TrainingRunError):
    exit_code = ExitCode.TRAINING_FAILED

    def __init__(self, returncode: int) -> None:
        super().__init__(f"Training run exited with status code {returncode}")
        self.returncode = returncode


class PostProcessingError(TrainingRunError):
    exit_code = ExitCode.POST_PROCESSING_FAILED


class PackagingError(TrainingRunError):
    exit_code = ExitCode.PACKAGING_FAILED


class CustomizationError(TrainingRunError):
    exit_code = ExitCode.CUSTOMIZATION_ERROR
