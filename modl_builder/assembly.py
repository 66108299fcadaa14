"""
Archive assembler: stage jars, module.xml, docs and license into a fresh directory,
then pack it into the unsigned .modl archive.

Packing is reproducible: entries are sorted by relative path and carry a fixed
timestamp and mode, so identical inputs give byte-identical archives.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

from .artifacts import Artifact, ensure_dir, unsigned_module_path, write_bytes
from .core.errors import ArchiveError, ArchiveIOError
from .descriptor import (
    DESCRIPTOR_FILE_NAME,
    DOC_DIR_NAME,
    LICENSE_FILE_NAME,
    ModuleDescriptor,
    ModuleMetadata,
    render_module_xml,
)
from .scopes import ScopeSets

logger = logging.getLogger(__name__)

ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_FILE_MODE = 0o100644 << 16


def _copy_jar(artifact: Artifact, staging_dir: Path) -> None:
    if artifact.file is None:
        raise ArchiveIOError(f"No file resolved for artifact {artifact.coordinates()}", None)
    src = Path(artifact.file)
    if not src.is_file():
        raise ArchiveIOError(f"Artifact file not found for {artifact.coordinates()}: {src}", src)
    dest = staging_dir / artifact.jar_name
    logger.info("copying dependency artifact: %s", artifact.jar_name)
    try:
        shutil.copyfile(src, dest)
    except OSError as exc:
        raise ArchiveIOError(f"Error copying {src} to {dest}: {exc}", src) from exc


def stage_jars(scope_sets: ScopeSets, staging_dir: Path) -> List[str]:
    """
    Copy every packaged artifact once, gateway set first. Two different identities
    mapping to the same jar name is an ArchiveError.
    """
    staged: Dict[str, Artifact] = {}
    logger.info("copying g artifacts")
    ordered = list(scope_sets.gateway)
    logger.info("copying c+d artifacts")
    ordered.extend(scope_sets.client_designer)

    for artifact in ordered:
        if not artifact.is_packaged:
            continue
        existing = staged.get(artifact.jar_name)
        if existing is not None:
            if existing != artifact:
                raise ArchiveError(
                    f"Jar name collision on {artifact.jar_name}: "
                    f"{existing.coordinates()} and {artifact.coordinates()}"
                )
            continue
        _copy_jar(artifact, staging_dir)
        staged[artifact.jar_name] = artifact
    return list(staged)


def stage_docs(base_dir: Path, staging_dir: Path) -> Path:
    """Copy <base_dir>/doc to <staging>/doc."""
    src = base_dir / DOC_DIR_NAME
    if not src.is_dir():
        raise ArchiveIOError(f"Documentation declared but doc directory not found: {src}", src)
    dest = staging_dir / DOC_DIR_NAME
    try:
        shutil.copytree(src, dest)
    except OSError as exc:
        raise ArchiveIOError(f"Failed to copy doc dir {src}: {exc}", src) from exc
    logger.info("Adding documentation to module.")
    return dest


def resolve_license_path(license_value: str, base_dir: Path) -> Path:
    """'license.html' lives in base_dir; anything else is a path (relative to base_dir)."""
    if license_value == LICENSE_FILE_NAME:
        return base_dir / LICENSE_FILE_NAME
    path = Path(license_value)
    if not path.is_absolute():
        path = base_dir / path
    return path


def stage_license(license_value: str, base_dir: Path, staging_dir: Path) -> Path:
    src = resolve_license_path(license_value, base_dir)
    logger.debug("Attempting to locate %s", src.resolve())
    if not src.is_file():
        raise ArchiveIOError(
            f"License file '{src.resolve()}' was declared but not found. Verify the license path in module config.",
            src,
        )
    dest = staging_dir / LICENSE_FILE_NAME
    try:
        shutil.copyfile(src, dest)
    except OSError as exc:
        raise ArchiveIOError(f"Could not copy license {src}: {exc}", src) from exc
    logger.info("License file added to module.")
    return dest


def stage_module(
    staging_dir: Path,
    scope_sets: ScopeSets,
    descriptor: ModuleDescriptor,
    metadata: ModuleMetadata,
    base_dir: Path,
) -> None:
    """Lay out everything the archive will contain under staging_dir."""
    logger.info("Using staging dir: %s", staging_dir)
    stage_jars(scope_sets, staging_dir)

    xml_path = staging_dir / DESCRIPTOR_FILE_NAME
    logger.info("creating %s: %s", DESCRIPTOR_FILE_NAME, xml_path)
    try:
        write_bytes(render_module_xml(descriptor), xml_path)
    except OSError as exc:
        raise ArchiveIOError(f"Unable to write {xml_path}: {exc}", xml_path) from exc

    if metadata.documentation is not None:
        stage_docs(base_dir, staging_dir)
    if metadata.license:
        stage_license(metadata.license, base_dir, staging_dir)


def _zip_info(arcname: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(arcname, date_time=ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = _FILE_MODE
    return info


def pack_directory(src_dir: str | Path, out_path: str | Path) -> List[str]:
    """
    Zip every file under src_dir (sorted POSIX relative paths). Return entry names in order.
    The archive is written beside out_path and moved into place only once complete;
    on failure any previous archive at out_path is left as it was.
    """
    src_dir = Path(src_dir)
    out_path = Path(out_path)
    files = sorted(
        (p for p in src_dir.rglob("*") if p.is_file()),
        key=lambda p: p.relative_to(src_dir).as_posix(),
    )
    try:
        ensure_dir(out_path.parent)
        fd, tmp_name = tempfile.mkstemp(prefix=".", suffix=".modl.tmp", dir=str(out_path.parent))
        os.close(fd)
    except OSError as exc:
        raise ArchiveIOError(f"Error creating archive {out_path}: {exc}", out_path) from exc

    tmp_path = Path(tmp_name)
    names: List[str] = []
    try:
        with zipfile.ZipFile(tmp_path, "w") as zf:
            for p in files:
                arcname = p.relative_to(src_dir).as_posix()
                zf.writestr(_zip_info(arcname), p.read_bytes())
                names.append(arcname)
        os.replace(tmp_path, out_path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise ArchiveIOError(f"Error creating archive {out_path}: {exc}", out_path) from exc
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return names


def build_unsigned_module(
    scope_sets: ScopeSets,
    descriptor: ModuleDescriptor,
    metadata: ModuleMetadata,
    base_dir: str | Path,
    build_dir: str | Path,
    out_path: Optional[str | Path] = None,
) -> Path:
    """Stage into a fresh temp dir and pack <build_dir>/<Module-Name>-unsigned.modl."""
    base_dir = Path(base_dir)
    target = Path(out_path) if out_path is not None else unsigned_module_path(build_dir, descriptor.name)
    with tempfile.TemporaryDirectory(prefix="modl") as tmp:
        staging_dir = Path(tmp)
        stage_module(staging_dir, scope_sets, descriptor, metadata, base_dir)
        logger.info("Creating modl file at: %s", target)
        pack_directory(staging_dir, target)
    return target


__all__ = [
    "ZIP_EPOCH",
    "build_unsigned_module",
    "pack_directory",
    "resolve_license_path",
    "stage_docs",
    "stage_jars",
    "stage_license",
    "stage_module",
]
