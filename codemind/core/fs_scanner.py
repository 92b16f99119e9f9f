# codemind/core/fs_scanner.py
import fnmatch
import os
from pathlib import Path
from typing import List, Optional
from loguru import logger


class LocalPathScanner:
    """Walks a local directory and returns the flat, root-relative file path list of a load."""

    def __init__(self, root_path: Path, ignore_patterns: List[str]):
        self.root_path = Path(root_path).resolve()
        self.ignore_patterns = ignore_patterns
        logger.debug(f"Scanner initialized for {self.root_path} with ignores: {self.ignore_patterns}")

    def _relative(self, entry_path: Path) -> Optional[str]:
        try:
            return entry_path.relative_to(self.root_path).as_posix()
        except ValueError:
            logger.warning(f"Could not get relative path for {entry_path} against root {self.root_path}.")
            return None

    def is_ignored(self, entry_path: Path) -> bool:
        """
        Check if a path should be ignored. Patterns are matched against the
        name and the path relative to the root. Symlinks are always ignored.
        """
        try:
            if entry_path.is_symlink():
                logger.trace(f"Ignoring symlink: {entry_path}")
                return True
        except OSError as e:
            logger.warning(f"Could not check if path is symlink {entry_path}: {e}. Ignoring it.")
            return True

        name = entry_path.name
        relative_path_str = self._relative(entry_path)
        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(name, pattern):
                logger.trace(f"Ignoring '{name}' due to basename pattern '{pattern}'")
                return True
            if relative_path_str and fnmatch.fnmatch(relative_path_str, pattern):
                logger.trace(f"Ignoring '{relative_path_str}' due to relative path pattern '{pattern}'")
                return True
        return False

    def scan_paths(self) -> List[str]:
        """Sorted POSIX paths of every non-ignored file beneath the root."""
        logger.info(f"[Scan] Starting for: {self.root_path}")
        if not self.root_path.is_dir():
            raise ValueError(f"Provided path is not a valid directory: {self.root_path}")

        paths: List[str] = []
        stack = [self.root_path]
        while stack:
            dir_path = stack.pop()
            try:
                entries = list(os.scandir(dir_path))
            except OSError as scandir_err:
                logger.warning(f"Could not scan directory contents {dir_path}: {scandir_err}")
                continue

            for entry in entries:
                entry_path = Path(entry.path)
                if self.is_ignored(entry_path):
                    continue
                try:
                    if entry.is_dir(follow_symlinks=False):
                        stack.append(entry_path)
                    elif entry.is_file(follow_symlinks=False):
                        relative = self._relative(entry_path)
                        if relative:
                            paths.append(relative)
                except OSError as e:
                    logger.warning(f"Could not stat {entry_path}: {e}")

        paths.sort()
        logger.info(f"[Scan] Finished: {len(paths)} files under {self.root_path}")
        return paths
