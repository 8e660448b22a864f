from __future__ import annotations

import io
import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest
from rich.console import Console

from max_trainer.pipeline.config import RunConfig
from max_trainer.pipeline.progress_ui import Ui, make_progress

TRAIN_SCRIPT = """
import argparse
import pathlib

parser = argparse.ArgumentParser()
parser.add_argument("--data_path", required=True)
parser.add_argument("--model_path", required=True)
parser.add_argument("--epochs", type=int, required=True)
args = parser.parse_args()

saved_model = pathlib.Path(args.model_path)
saved_model.mkdir(parents=True, exist_ok=True)
(saved_model / "saved_model.pb").write_text("graph")
(saved_model / "variables").mkdir(exist_ok=True)
(saved_model / "variables" / "variables.index").write_text("index")

ckpt_dir = saved_model.parent / "checkpoint"
ckpt_dir.mkdir(exist_ok=True)
(ckpt_dir / "checkpoint").write_text(
    'model_checkpoint_path: "%s/model.ckpt-%d"\\n' % (ckpt_dir, args.epochs)
)
"""

FAILING_SCRIPT = """
import sys

sys.exit(7)
"""


@pytest.fixture
def ui() -> Ui:
    console = Console(file=io.StringIO(), width=120, soft_wrap=True)
    return Ui(console=console, progress=make_progress(console))


@pytest.fixture
def run_dirs(tmp_path: Path) -> dict[str, Path]:
    data_dir = tmp_path / "data"
    result_dir = tmp_path / "results"
    data_dir.mkdir()
    result_dir.mkdir()
    return {"DATA_DIR": data_dir, "RESULT_DIR": result_dir}


@pytest.fixture
def environ(run_dirs: dict[str, Path]) -> dict[str, str]:
    return {k: str(v) for k, v in run_dirs.items()}


def _write_program(tmp_path: Path, source: str, name: str) -> Path:
    program = tmp_path / "code" / name
    program.parent.mkdir(parents=True, exist_ok=True)
    program.write_text(source)
    return program


@pytest.fixture
def training_program(tmp_path: Path) -> Path:
    return _write_program(tmp_path, TRAIN_SCRIPT, "train_model.py")


@pytest.fixture
def failing_program(tmp_path: Path) -> Path:
    return _write_program(tmp_path, FAILING_SCRIPT, "train_broken.py")


def config_for(program: Path, **packaging: Any) -> RunConfig:
    return RunConfig.model_validate(
        {
            "install": {"enabled": False},
            "training": {
                "program": str(program),
                "python_executable": sys.executable,
                "epochs": 3,
                "working_dir": str(program.parent),
            },
            "packaging": packaging,
        }
    )


@pytest.fixture
def make_config() -> Callable[..., RunConfig]:
    return config_for


def write_toml(path: Path, config: RunConfig) -> Path:
    lines: list[str] = []
    for section, values in config.model_dump().items():
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"{key} = {json.dumps(value)}")
        lines.append("")
    path.write_text("\n".join(lines))
    return path


@pytest.fixture
def config_file(tmp_path: Path) -> Callable[[RunConfig], Path]:
    return lambda config: write_toml(tmp_path / "training_config.toml", config)
