"""Manifest tracking for TaxaSync output files.

A sync run writes a manifest file to its output directory listing every
file it intends to produce. The manifest is written before any output files
are created, so interrupted runs leave a complete record of what should be
cleaned up on the next --full-rerun.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from taxasync.constants import SYNC_STATS_FILENAME
from taxasync.output_manager import compute_output_paths

logger = logging.getLogger(__name__)

MANIFEST_FILENAMES = {
    "sync": "taxasync_sync_manifest.json",
}


def get_intended_files_for_sync() -> List[str]:
    """Return the full list of files a sync run intends to write.

    Returns:
        List of file paths relative to the output directory.
    """
    files = compute_output_paths()
    files.append(SYNC_STATS_FILENAME)
    files.append(MANIFEST_FILENAMES["sync"])
    return files


def write_manifest(
    output_dir: str,
    command: str,
    version: str,
    catalog: str,
    exclusion_list: str,
    cache_namespace: Optional[str],
    files: List[str],
) -> Path:
    """Write a manifest file to output_dir before any output files are created.

    Args:
        output_dir: Directory where the manifest will be written.
        command: TaxaSync command name.
        version: TaxaSync version string.
        catalog: Description of the catalog source.
        exclusion_list: Path of the exclusion list.
        cache_namespace: Active cache namespace path, or None.
        files: Relative paths of all intended outputs.

    Returns:
        Path to the written manifest file.
    """
    manifest = {
        "taxasync_version": version,
        "command": command,
        "created_at": datetime.now().isoformat(),
        "catalog": catalog,
        "exclusion_list": exclusion_list,
        "cache_namespace": cache_namespace,
        "files": files,
    }
    manifest_path = Path(output_dir) / MANIFEST_FILENAMES[command]
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    manifest_path.write_text(json.dumps(manifest, indent=4))
    logger.info("Manifest written to %s", manifest_path)
    return manifest_path


def read_manifest(output_dir: str, command: str) -> Optional[dict]:
    """Return the parsed manifest for a command, or None if there is none."""
    manifest_path = Path(output_dir) / MANIFEST_FILENAMES[command]
    if not manifest_path.exists():
        return None
    return json.loads(manifest_path.read_text())


def delete_from_manifest(output_dir: str, command: str) -> bool:
    """Delete all files listed in the manifest, then the manifest itself.

    Missing files are skipped so that interrupted runs can be cleaned up
    without error.

    Returns:
        True if a manifest was found and cleanup was performed, False otherwise.
    """
    manifest = read_manifest(output_dir, command)
    if manifest is None:
        return False
    output_dir_path = Path(output_dir)
    root = output_dir_path.resolve()
    removed = 0
    for rel_path in manifest.get("files", []):
        if not isinstance(rel_path, str):
            continue
        f = output_dir_path / rel_path
        # Only files inside the output directory are deleted
        if Path(rel_path).is_absolute() or root not in f.resolve().parents:
            logger.warning("Skipping manifest entry outside %s: %s", output_dir, rel_path)
            continue
        if f.exists():
            f.unlink()
            removed += 1
    manifest_path = output_dir_path / MANIFEST_FILENAMES[command]
    if manifest_path.exists():
        manifest_path.unlink()
    logger.info("Removed %d file(s) listed in manifest for command '%s'.", removed, command)
    return True
