"""File operations: list, find, grep, read, create, replace."""

import re
from pathlib import Path
from typing import List, Optional

from ..errors import ChatError


class FileOperationError(ChatError):
    pass


class FileOps:
    IGNORED_DIRS = {"node_modules", ".git"}
    IGNORED_SUFFIXES = {".log"}

    def __init__(self, project_root: str):
        self.project_root = Path(project_root).resolve()

    def _resolve(self, path: str) -> Path:
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = self.project_root / p
        p = p.resolve()
        try:
            p.relative_to(self.project_root)
        except ValueError:
            raise FileOperationError(
                f"Access denied: '{path}' is outside project root ({self.project_root})"
            )
        return p

    def _rel(self, p: Path) -> str:
        return p.relative_to(self.project_root).as_posix()

    def _is_ignored(self, p: Path, skip_hidden: bool = False) -> bool:
        parts = p.relative_to(self.project_root).parts
        if any(part in self.IGNORED_DIRS for part in parts):
            return True
        if p.suffix in self.IGNORED_SUFFIXES:
            return True
        return skip_hidden and any(part.startswith(".") for part in parts)

    def _glob(self, pattern: str, skip_hidden: bool = False) -> List[Path]:
        if not pattern:
            raise FileOperationError("Empty glob pattern")
        if Path(pattern).is_absolute():
            raise FileOperationError(f"Pattern must be relative to the project root: {pattern}")
        try:
            matches = self.project_root.glob(pattern)
            return sorted(p for p in matches if not self._is_ignored(p, skip_hidden))
        except ValueError as e:
            raise FileOperationError(f"Invalid glob pattern '{pattern}': {e}")

    def list_dir(self, path: str = ".") -> str:
        dp = self._resolve(path)
        if not dp.exists():
            raise FileOperationError(f'Directory "{path}" does not exist.')
        if not dp.is_dir():
            raise FileOperationError(f'"{path}" is not a directory.')
        try:
            entries = sorted(dp.iterdir(), key=lambda e: e.name)
        except PermissionError:
            raise FileOperationError(f'Permission denied listing "{path}".')
        lines = [f"{e.name}/" if e.is_dir() else e.name for e in entries]
        return "\n".join(lines) if lines else "(empty directory)"

    def file_search(self, query: str, max_results: int = 50) -> str:
        files = self._glob(query)
        if not files:
            return f"No files found matching pattern: {query}"
        shown = files[:max_results] if max_results > 0 else files
        result = "\n".join(self._rel(p) for p in shown)
        if len(files) > len(shown):
            result += (f"\n... and {len(files) - len(shown)} more files "
                       f"(showing first {max_results})")
        return result

    def grep_search(self, query: str, is_regexp: bool = False,
                    include_pattern: str = "**/*", max_results: int = 50) -> str:
        try:
            regex = re.compile(query if is_regexp else re.escape(query), re.IGNORECASE)
        except re.error as e:
            raise FileOperationError(f"Invalid regular expression '{query}': {e}")

        results: List[str] = []
        for fp in self._glob(include_pattern, skip_hidden=True):
            if not fp.is_file():
                continue
            try:
                content = fp.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError):
                continue  # binary or unreadable
            rel = self._rel(fp)
            for lineno, line in enumerate(content.split("\n"), 1):
                if regex.search(line):
                    results.append(f"{rel}:{lineno}:{line.strip()}")
            if max_results > 0 and len(results) >= max_results:
                break

        if not results:
            return f"No matches found for: {query}"
        shown = results[:max_results] if max_results > 0 else results
        result = "\n".join(shown)
        if len(results) > len(shown):
            result += (f"\n... and {len(results) - len(shown)} more matches "
                       f"(showing first {max_results})")
        return result

    def read_file(self, path: str, offset: Optional[int] = None,
                  limit: Optional[int] = None) -> str:
        fp = self._resolve(path)
        if not fp.exists():
            raise FileOperationError(f'File "{path}" does not exist.')
        if fp.is_dir():
            raise FileOperationError(f'"{path}" is a directory, not a file.')
        try:
            content = fp.read_text(encoding="utf-8")
        except PermissionError:
            raise FileOperationError(f'Permission denied reading "{path}".')
        except UnicodeDecodeError:
            raise FileOperationError(f"Cannot read binary file: {path}")

        if offset is None and limit is None:
            return content
        lines = content.split("\n")
        start = max(0, offset - 1) if offset else 0
        end = min(len(lines), start + limit) if limit else len(lines)
        return "\n".join(lines[start:end])

    def create_file(self, path: str, content: str) -> str:
        fp = self._resolve(path)
        if fp.exists():
            raise FileOperationError(
                f'File "{path}" already exists. '
                "Use replace_string_in_file to edit existing files.")
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_text(content, encoding="utf-8")
        return f"File created successfully: {path}"

    def replace_string_in_file(self, path: str, old_string: str, new_string: str) -> str:
        fp = self._resolve(path)
        if not fp.exists():
            raise FileOperationError(f'File "{path}" does not exist.')
        if fp.is_dir():
            raise FileOperationError(f'"{path}" is a directory, not a file.')
        content = fp.read_text(encoding="utf-8")
        count = content.count(old_string) if old_string else 0
        if count == 0:
            raise FileOperationError(
                "The specified text was not found in the file. Make sure the "
                "oldString matches exactly, including whitespace and line breaks.")
        if count > 1:
            raise FileOperationError(
                f"Found {count} occurrences of the text. Please provide more "
                "specific context to ensure unique replacement.")
        fp.write_text(content.replace(old_string, new_string, 1), encoding="utf-8")
        return f"File updated successfully: {path}"
