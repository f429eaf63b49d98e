"""File backups taken before an apply run touches the source tree."""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import BACKUP_DIR
from .errors import BackupError

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class BackupStore:
    """Stores verbatim copies of files, one directory per run."""

    def __init__(self, backup_dir: Optional[Path] = None):
        """Initialize BackupStore.

        Args:
            backup_dir: Directory to store backups. Defaults to ~/.codeclear/backups/
        """
        self.backup_dir = Path(backup_dir) if backup_dir is not None else BACKUP_DIR

    def create_backup(self, paths: Sequence[Path], label: str = "") -> str:
        """Copy every file in ``paths`` into a new backup.

        Args:
            paths: Files that are about to be modified
            label: Free-form description stored in the metadata

        Returns:
            Backup ID for :meth:`restore`

        Raises:
            BackupError: if any file cannot be copied. Nothing is left behind.
        """
        backup_id = f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"
        backup_path = self.backup_dir / backup_id
        metadata: Dict = {
            "backup_id": backup_id,
            "label": label,
            "timestamp": datetime.now().isoformat(),
            "files": [],
        }

        try:
            backup_path.mkdir(parents=True, exist_ok=False)
            for i, path in enumerate(paths):
                original = Path(path).resolve()
                stored = f"{i:04d}_{original.name}"
                shutil.copy2(original, backup_path / stored)
                metadata["files"].append({
                    "original": str(original),
                    "backup": stored,
                    "sha256": _sha256(original),
                    "size": original.stat().st_size,
                })
            (backup_path / METADATA_FILE).write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        except OSError as exc:
            shutil.rmtree(backup_path, ignore_errors=True)
            raise BackupError(f"Could not back up files: {exc}") from exc

        logger.info("Backed up %d files to %s", len(metadata["files"]), backup_path)
        return backup_id

    def load_metadata(self, backup_id: str) -> Dict:
        metadata_file = self.backup_dir / backup_id / METADATA_FILE
        try:
            return json.loads(metadata_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise BackupError(f"Backup {backup_id} is missing or unreadable: {exc}") from exc

    def restore(self, backup_id: str) -> List[str]:
        """Write every backed-up file back to its original location.

        Returns:
            The restored paths

        Raises:
            BackupError: if the backup is missing, corrupted or a file
                cannot be written.
        """
        metadata = self.load_metadata(backup_id)
        backup_path = self.backup_dir / backup_id
        restored: List[str] = []

        for entry in metadata["files"]:
            stored = backup_path / entry["backup"]
            original = Path(entry["original"])
            try:
                if _sha256(stored) != entry["sha256"]:
                    raise BackupError(f"Backup copy of {original} is corrupted")
                shutil.copy2(stored, original)
            except OSError as exc:
                raise BackupError(f"Could not restore {original}: {exc}") from exc
            restored.append(str(original))

        logger.info("Restored %d files from backup %s", len(restored), backup_id)
        return restored

    def list_backups(self) -> List[Dict]:
        """List all available backups, newest first."""
        if not self.backup_dir.exists():
            return []
        backups = []
        for entry in self.backup_dir.iterdir():
            metadata_file = entry / METADATA_FILE
            if entry.is_dir() and metadata_file.exists():
                try:
                    metadata = json.loads(metadata_file.read_text(encoding="utf-8"))
                except (OSError, ValueError) as exc:
                    logger.warning("Ignoring unreadable backup %s: %s", entry.name, exc)
                    continue
                metadata["backup_id"] = entry.name
                backups.append(metadata)
        return sorted(backups, key=lambda x: x.get("timestamp", ""), reverse=True)

    def discard(self, backup_id: str) -> bool:
        backup_path = self.backup_dir / backup_id
        if not backup_path.exists():
            return False
        shutil.rmtree(backup_path)
        return True
