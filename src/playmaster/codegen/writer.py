"""Atomic artifact writer.

Artifacts are first written to a staging directory next to the
project, then moved into place. The generated directory is swapped as
a whole, so a stale artifact of a removed test file never survives.
Every replaced target is kept aside until the whole set is in place;
a failure at any point restores the previous artifact set.
"""

import logging
import os
import shutil
from pathlib import Path, PurePosixPath
from tempfile import mkdtemp
from typing import TYPE_CHECKING

from playmaster.errors import GenerationError

from .base import GENERATED_DIR

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .base import Artifacts

logger = logging.getLogger(__name__)

STAGING_PREFIX = '.playmaster-gen-'


def write_artifacts(root: Path, artifacts: 'Artifacts') -> list[Path]:
    """Write a rendered artifact set under a project root.

    Args:
        root: Project root directory.
        artifacts: Rendered artifacts keyed by project-relative path.

    Returns:
        Absolute paths of the written files, in artifact order.

    Raises:
        GenerationError: If the artifacts cannot be written.
    """
    for path in artifacts:
        if path.is_absolute() or '..' in path.parts:
            raise GenerationError(f'Artifact path escapes the project: {path}')

    try:
        staging = Path(mkdtemp(prefix=STAGING_PREFIX, dir=root))
    except OSError as base:
        raise GenerationError(f'Can not create staging directory: {base}') from base

    try:
        staged = staging / 'new'
        staged.joinpath(*GENERATED_DIR.parts).mkdir(parents=True)
        for path, content in artifacts.items():
            target = staged.joinpath(*path.parts)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding='utf-8')

        units = [GENERATED_DIR, *(path for path in artifacts if not _is_generated(path))]
        _commit(root, staging, units)

    except OSError as base:
        raise GenerationError(f'Can not write artifacts: {base}') from base

    finally:
        shutil.rmtree(staging, ignore_errors=True)

    written = [root.joinpath(*path.parts) for path in artifacts]
    logger.info('Wrote %d artifact(s) under %s', len(written), root)

    return written


def _is_generated(path: PurePosixPath) -> bool:
    """Whether an artifact lives in the generated directory."""
    return path.parts[:len(GENERATED_DIR.parts)] == GENERATED_DIR.parts


def _commit(root: Path, staging: Path, units: 'Sequence[PurePosixPath]') -> None:
    """Move staged files and directories into place.

    Each existing target is first moved to `staging/old`. When a move
    fails, the units already processed are rolled back before the error
    propagates.
    """
    moved: list[tuple[Path, Path]] = []
    try:
        for unit in units:
            target = root.joinpath(*unit.parts)
            backup = staging.joinpath('old', *unit.parts)

            if target.exists():
                backup.parent.mkdir(parents=True, exist_ok=True)
                os.replace(target, backup)
            moved.append((target, backup))

            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(staging.joinpath('new', *unit.parts), target)

    except OSError:
        _rollback(moved)
        raise


def _rollback(moved: 'Sequence[tuple[Path, Path]]') -> None:
    """Put the previous targets back, in reverse order."""
    for target, backup in reversed(moved):
        try:
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()

            if backup.exists():
                os.replace(backup, target)

        except OSError as error:
            logger.error('Can not restore %s: %s', target, error)  # noqa: TRY400
