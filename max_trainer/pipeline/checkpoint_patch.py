from __future__ import annotations

import logging
import os
import re
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# A double-quoted value (may contain blanks), or an unquoted run of non-blank,
# non-quote characters ending in a slash. Neither spans a line break.
_PATH_PREFIX = re.compile(r""""[^"\r\n]*"|[^\s"']*/""")


class PatchOutcome(str, Enum):
    NO_CHECKPOINT_DIR = "no_checkpoint_dir"
    NO_CHECKPOINT_FILE = "no_checkpoint_file"
    UNCHANGED = "unchanged"
    PATCHED = "patched"
    FAILED = "failed"


def _strip(match: re.Match[str]) -> str:
    token = match.group(0)
    if token.startswith('"'):
        return '"' + token[1:-1].rsplit("/", 1)[-1] + '"'
    return ""


def strip_path_prefixes(text: str) -> str:
    """Reduce every path in a checkpoint index to its base name.

    'model_checkpoint_path: "/tmp/x/model.ckpt-1"' becomes
    'model_checkpoint_path: "model.ckpt-1"'. Line endings are kept as is.
    """
    return _PATH_PREFIX.sub(_strip, text)


def _read(path: Path) -> str:
    with open(path, encoding="utf-8", newline="") as fh:
        return fh.read()


def patch_checkpoint_index(checkpoint_dir: Path) -> PatchOutcome:
    """Rewrite the TensorFlow 'checkpoint' index so it no longer embeds absolute paths.

    TensorFlow records the shard paths it saw at training time. Once the
    artifact is moved those paths are invalid, so they are rewritten to bare
    file names. The rewrite goes to a temporary sibling file which is read
    back and only then swapped in with os.replace; on any error the original
    file is left untouched. This function never raises for I/O problems.
    """
    if not checkpoint_dir.is_dir():
        return PatchOutcome.NO_CHECKPOINT_DIR

    target = checkpoint_dir / "checkpoint"
    if not target.is_file():
        return PatchOutcome.NO_CHECKPOINT_FILE

    tmp = target.with_name(target.name + ".tmp")
    try:
        original = _read(target)
        patched = strip_path_prefixes(original)
        if patched == original:
            return PatchOutcome.UNCHANGED

        tmp.write_text(patched, encoding="utf-8", newline="")
        if _read(tmp) != patched:
            raise OSError(f"Verification of {tmp} failed")
        os.replace(tmp, target)
    except (OSError, UnicodeError) as exc:
        logger.warning("Patch of TensorFlow checkpoint file %s failed: %s", target, exc)
        _discard(tmp)
        return PatchOutcome.FAILED

    logger.info("Patched TensorFlow checkpoint file %s", target)
    return PatchOutcome.PATCHED


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove temporary file %s: %s", path, exc)
