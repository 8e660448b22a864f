from __future__ import annotations

import os
from pathlib import Path

import pytest

from max_trainer.pipeline import checkpoint_patch
from max_trainer.pipeline.checkpoint_patch import (
    PatchOutcome,
    patch_checkpoint_index,
    strip_path_prefixes,
)

TF_INDEX = (
    'model_checkpoint_path: "/tmp/x/model.ckpt-1"\n'
    'all_model_checkpoint_paths: "/tmp/x/model.ckpt-0"\n'
    'all_model_checkpoint_paths: "/tmp/x/model.ckpt-1"\n'
    "all_model_checkpoint_timestamps: 1546300800.5\n"
)


def test_strip_path_prefixes() -> None:
    assert strip_path_prefixes(TF_INDEX) == (
        'model_checkpoint_path: "model.ckpt-1"\n'
        'all_model_checkpoint_paths: "model.ckpt-0"\n'
        'all_model_checkpoint_paths: "model.ckpt-1"\n'
        "all_model_checkpoint_timestamps: 1546300800.5\n"
    )
    assert strip_path_prefixes("runs/exp1/model.ckpt-9") == "model.ckpt-9"
    assert strip_path_prefixes("/tmp/x/model.ckpt-1") == "model.ckpt-1"


def test_missing_checkpoint_dir_is_noop(tmp_path: Path) -> None:
    assert patch_checkpoint_index(tmp_path / "checkpoint") is PatchOutcome.NO_CHECKPOINT_DIR
    assert list(tmp_path.iterdir()) == []


def test_missing_checkpoint_file_is_noop(tmp_path: Path) -> None:
    ckpt_dir = tmp_path / "checkpoint"
    ckpt_dir.mkdir()
    (ckpt_dir / "model.ckpt-1.index").write_text("shard")

    assert patch_checkpoint_index(ckpt_dir) is PatchOutcome.NO_CHECKPOINT_FILE
    assert sorted(p.name for p in ckpt_dir.iterdir()) == ["model.ckpt-1.index"]


def test_patch_strips_prefixes_and_leaves_no_temp(tmp_path: Path) -> None:
    ckpt_dir = tmp_path / "checkpoint"
    ckpt_dir.mkdir()
    (ckpt_dir / "checkpoint").write_text(TF_INDEX)

    assert patch_checkpoint_index(ckpt_dir) is PatchOutcome.PATCHED

    text = (ckpt_dir / "checkpoint").read_text()
    assert "/" not in text
    assert 'model_checkpoint_path: "model.ckpt-1"' in text
    assert sorted(p.name for p in ckpt_dir.iterdir()) == ["checkpoint"]


def test_already_relative_index_is_unchanged(tmp_path: Path) -> None:
    ckpt_dir = tmp_path / "checkpoint"
    ckpt_dir.mkdir()
    (ckpt_dir / "checkpoint").write_text('model_checkpoint_path: "model.ckpt-1"\n')

    assert patch_checkpoint_index(ckpt_dir) is PatchOutcome.UNCHANGED


def test_failed_swap_keeps_original(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ckpt_dir = tmp_path / "checkpoint"
    ckpt_dir.mkdir()
    original = TF_INDEX.encode("utf-8")
    (ckpt_dir / "checkpoint").write_bytes(original)

    def _fail(src: os.PathLike[str], dst: os.PathLike[str]) -> None:
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(checkpoint_patch.os, "replace", _fail)

    assert patch_checkpoint_index(ckpt_dir) is PatchOutcome.FAILED
    assert (ckpt_dir / "checkpoint").read_bytes() == original
    assert sorted(p.name for p in ckpt_dir.iterdir()) == ["checkpoint"]


def test_undecodable_index_is_left_alone(tmp_path: Path) -> None:
    ckpt_dir = tmp_path / "checkpoint"
    ckpt_dir.mkdir()
    original = b"\xff\xfe/tmp/x/\x80"
    (ckpt_dir / "checkpoint").write_bytes(original)

    assert patch_checkpoint_index(ckpt_dir) is PatchOutcome.FAILED
    assert (ckpt_dir / "checkpoint").read_bytes() == original


def test_quoted_path_with_blanks_keeps_full_base_name() -> None:
    assert strip_path_prefixes('model_checkpoint_path: "/home/me/my runs/model.ckpt-1"\n') == (
        'model_checkpoint_path: "model.ckpt-1"\n'
    )
    assert strip_path_prefixes('model_checkpoint_path: "/data/run 1/my model.ckpt-2"') == (
        'model_checkpoint_path: "my model.ckpt-2"'
    )


def test_line_endings_survive_patch(tmp_path: Path) -> None:
    ckpt_dir = tmp_path / "checkpoint"
    ckpt_dir.mkdir()
    (ckpt_dir / "checkpoint").write_bytes(
        b'model_checkpoint_path: "/tmp/x/model.ckpt-1"\r\n'
        b'all_model_checkpoint_paths: "/tmp/x/model.ckpt-1"\r'
        b"last_preserved_timestamp: 1546300800.5\r\n"
    )

    assert patch_checkpoint_index(ckpt_dir) is PatchOutcome.PATCHED
    assert (ckpt_dir / "checkpoint").read_bytes() == (
        b'model_checkpoint_path: "model.ckpt-1"\r\n'
        b'all_model_checkpoint_paths: "model.ckpt-1"\r'
        b"last_preserved_timestamp: 1546300800.5\r\n"
    )
