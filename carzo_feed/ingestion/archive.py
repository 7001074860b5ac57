"""Unpack the downloaded feed archive and locate its tabular file."""

from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path

from carzo_feed.constants import TABULAR_SUFFIXES
from carzo_feed.errors import ArchiveError

logger = logging.getLogger(__name__)


def _pick_tabular_member(names: list[str]) -> str | None:
    candidates = [
        name for name in names
        if not name.endswith("/") and not name.startswith("__MACOSX/")
    ]
    for suffix in TABULAR_SUFFIXES:
        for name in candidates:
            if name.lower().endswith(suffix):
                return name
    return None


def extract_feed_file(archive_path: str | Path, dest_dir: str | Path | None = None) -> Path:
    """Write the archive's tabular member to ``<dest_dir>/<archive stem>.tsv``.

    ``dest_dir`` defaults to the archive's directory.  The member is streamed
    into a newly created file, so its stored path never touches the disk and
    an existing file at the target is never replaced.

    Raises :class:`ArchiveError` when the archive is unreadable, holds no
    tabular member, or the target already exists.
    """
    archive = Path(archive_path)
    target = Path(dest_dir or archive.parent) / f"{archive.stem}.tsv"

    try:
        with zipfile.ZipFile(archive) as zf:
            member = _pick_tabular_member(zf.namelist())
            if member is None:
                raise ArchiveError(
                    f"No tabular file found in {archive.name}",
                    details={"members": zf.namelist()},
                )
            try:
                out = target.open("xb")
            except FileExistsError as exc:
                raise ArchiveError(
                    f"Refusing to overwrite existing file {target}",
                    details={"target": str(target)},
                ) from exc
            try:
                with out, zf.open(member) as src:
                    shutil.copyfileobj(src, out)
            except BaseException:
                target.unlink(missing_ok=True)
                raise
    except ArchiveError:
        raise
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
        raise ArchiveError(f"Could not extract {archive.name}: {exc}") from exc

    logger.info("Extracted %s to %s", member, target)
    return target
