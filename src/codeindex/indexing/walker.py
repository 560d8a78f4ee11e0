"""
Project File Discovery

This module walks a project directory and returns the files that should be
indexed, applying directory/file exclusions, an extension allow-list and a
size limit. The walk is read-only: it only lists directories and stats files.
"""

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set

from ..errors import WalkError
from .config import WalkOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileRecord:
    """A file found during a walk."""
    path: str
    relative_path: str
    size: int
    last_modified: float
    extension: str


@dataclass
class DirectoryStats:
    """Summary of a directory tree."""
    total_files: int
    total_size: int
    file_types: Dict[str, int]


class FileWalker:
    """Recursive project walker with include/exclude rules."""

    DEFAULT_EXCLUDE_DIRS = frozenset({
        'node_modules', '.git', '.next', 'dist', 'build', 'out', '.nuxt',
        '.output', 'coverage', '.nyc_output', '.vscode', '.idea',
        '__pycache__', '.pytest_cache', 'target', 'bin', 'obj', '.vs',
        'Debug', 'Release', 'Pods', 'DerivedData', '.expo', '.gradle',
        '.venv', 'venv',
    })

    DEFAULT_EXCLUDE_FILES = frozenset({
        '.DS_Store', 'Thumbs.db', '*.log', '*.tmp', '*.temp', '*.lock',
        'package-lock.json', 'yarn.lock', 'pnpm-lock.yaml',
        '*.min.js', '*.min.css', '*.map',
    })

    SUPPORTED_EXTENSIONS = frozenset({
        '.ts', '.tsx', '.js', '.jsx', '.mjs', '.cjs', '.vue', '.py', '.java',
        '.c', '.cpp', '.h', '.hpp', '.cs', '.php', '.rb', '.go', '.rs',
        '.swift', '.kt', '.scala', '.sh', '.bash', '.zsh', '.fish', '.ps1',
        '.sql', '.html', '.css', '.scss', '.sass', '.less', '.xml', '.json',
        '.yaml', '.yml', '.toml', '.ini', '.conf', '.cfg', '.md', '.markdown',
        '.rst', '.txt', '.dockerfile', '.dockerignore', '.gitignore', '.env',
    })

    def walk(self, root_path: str, options: Optional[WalkOptions] = None) -> List[FileRecord]:
        """
        Walk a directory tree and collect file information.

        Args:
            root_path: Project root to walk
            options: Walk options; defaults are used when omitted

        Returns:
            FileRecords in no particular order

        Raises:
            WalkError: if the root itself cannot be listed
        """
        options = options or WalkOptions()
        root = Path(root_path).expanduser().resolve()

        if not root.is_dir():
            raise WalkError(f"Project root is not a directory: {root}")

        exclude_dirs = set(self.DEFAULT_EXCLUDE_DIRS) | set(options.exclude_directories)
        exclude_files = set(self.DEFAULT_EXCLUDE_FILES) | set(options.exclude_files)
        include_exts = (
            options.include_extensions
            if options.include_extensions is not None
            else set(self.SUPPORTED_EXTENSIONS)
        )

        try:
            root_entries = list(os.scandir(root))
        except OSError as e:
            raise WalkError(f"Cannot read project root {root}: {e}") from e

        files: List[FileRecord] = []
        self._walk_entries(
            root_entries, root, files, exclude_dirs, exclude_files,
            include_exts, options.max_file_size, options.hidden_allowlist
        )

        logger.debug(f"Walk of {root} found {len(files)} files")
        return files

    def _walk_recursive(self, current: Path, root: Path, files: List[FileRecord],
                        exclude_dirs: Set[str], exclude_files: Set[str],
                        include_exts: Set[str], max_size: int,
                        hidden_allowlist: Set[str]) -> None:
        try:
            entries = list(os.scandir(current))
        except OSError as e:
            logger.warning(f"⚠️ Error reading directory {current}: {e}")
            return

        self._walk_entries(
            entries, root, files, exclude_dirs, exclude_files,
            include_exts, max_size, hidden_allowlist
        )

    def _walk_entries(self, entries: List[os.DirEntry], root: Path, files: List[FileRecord],
                      exclude_dirs: Set[str], exclude_files: Set[str],
                      include_exts: Set[str], max_size: int,
                      hidden_allowlist: Set[str]) -> None:
        for entry in entries:
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_file = entry.is_file(follow_symlinks=False)
            except OSError as e:
                logger.warning(f"⚠️ Error inspecting {entry.path}: {e}")
                continue

            if is_dir:
                if entry.name in exclude_dirs or self._is_hidden(entry.name, hidden_allowlist):
                    continue
                self._walk_recursive(
                    Path(entry.path), root, files, exclude_dirs, exclude_files,
                    include_exts, max_size, hidden_allowlist
                )
            elif is_file:
                record = self._build_record(entry, root, exclude_files, include_exts, max_size)
                if record is not None:
                    files.append(record)

    def _build_record(self, entry: os.DirEntry, root: Path, exclude_files: Set[str],
                      include_exts: Set[str], max_size: int) -> Optional[FileRecord]:
        if self._should_exclude_file(entry.name, exclude_files):
            return None

        extension = os.path.splitext(entry.name)[1].lower()
        # Files without an extension (Makefile, Dockerfile, ...) are always let through
        if extension and extension not in include_exts:
            return None

        full_path = Path(entry.path)
        relative_path = full_path.relative_to(root).as_posix()

        try:
            stats = entry.stat(follow_symlinks=False)
        except OSError as e:
            logger.warning(f"⚠️ Error reading file stats for {full_path}: {e}")
            return None

        if stats.st_size > max_size:
            logger.warning(f"⚠️ Skipping large file: {relative_path} ({stats.st_size} bytes)")
            return None

        return FileRecord(
            path=str(full_path),
            relative_path=relative_path,
            size=stats.st_size,
            last_modified=stats.st_mtime,
            extension=extension,
        )

    def _should_exclude_file(self, filename: str, exclude_files: Set[str]) -> bool:
        """Check a file name against exact names and glob patterns."""
        if filename in exclude_files:
            return True
        return any(
            fnmatch.fnmatchcase(filename, pattern)
            for pattern in exclude_files
            if any(ch in pattern for ch in '*?[')
        )

    def _is_hidden(self, name: str, hidden_allowlist: Set[str]) -> bool:
        return name.startswith('.') and name not in hidden_allowlist

    def read_file_content(self, file_path: str) -> str:
        """Read a file as UTF-8 text. OSError and UnicodeDecodeError propagate."""
        with open(file_path, 'r', encoding='utf-8') as f:
            return f.read()

    def is_modified_since(self, file_path: str, timestamp: float) -> bool:
        """Check whether a file changed after the given epoch timestamp."""
        try:
            return os.stat(file_path).st_mtime > timestamp
        except OSError as e:
            logger.warning(f"⚠️ Error checking modification time for {file_path}: {e}")
            # Assume modified if we can't check
            return True

    def get_directory_stats(self, root_path: str, options: Optional[WalkOptions] = None) -> DirectoryStats:
        """Quick statistics for a directory, ignoring the size limit."""
        options = options or WalkOptions()
        unlimited = WalkOptions(
            exclude_directories=set(options.exclude_directories),
            exclude_files=set(options.exclude_files),
            include_extensions=options.include_extensions,
            max_file_size=2 ** 63 - 1,
            hidden_allowlist=set(options.hidden_allowlist),
        )
        files = self.walk(root_path, unlimited)

        file_types: Dict[str, int] = {}
        for record in files:
            ext = record.extension or 'no-extension'
            file_types[ext] = file_types.get(ext, 0) + 1

        return DirectoryStats(
            total_files=len(files),
            total_size=sum(record.size for record in files),
            file_types=file_types,
        )
