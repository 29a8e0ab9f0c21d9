"""Marker scanner: turn TODO/FIXME-style comments into candidate debt entries.

A line matches when it contains a configured marker as a whole word,
followed by ``:`` or ``-`` and some description text::

    // TODO: fix null check        -> marker TODO, "fix null check"
    # fixme - handle retries       -> marker FIXME, "handle retries"
    # TODO fix later               -> no match (no delimiter)

At most one match per line (the leftmost). Workspace scans walk the project
with include/exclude globs in gitwildmatch syntax (``pathspec``); brace
alternatives such as ``**/*.{py,js}`` are expanded before compiling.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pathspec import GitIgnoreSpec

from fixflow.models import entry_attr
from fixflow.types.core import ScanResultDict, SuggestedDebtDict
from fixflow.validation import MAX_DESCRIPTION_LENGTH, MAX_TITLE_LENGTH

if TYPE_CHECKING:
    from fixflow.config import ConfigurationProvider

logger = logging.getLogger(__name__)

MAX_CONTEXT_LINES = 5
_BINARY_SNIFF_BYTES = 8192
_LINE_SPLIT_RE = re.compile(r"\r?\n")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives: ``*.{py,js}`` -> ``['*.py', '*.js']``.

    Nested groups are expanded recursively; an unbalanced ``{`` is kept literally.
    """
    start = pattern.find("{")
    if start == -1:
        return [pattern]
    depth = 0
    end = -1
    for i in range(start, len(pattern)):
        if pattern[i] == "{":
            depth += 1
        elif pattern[i] == "}":
            depth -= 1
            if depth == 0:
                end = i
                break
    if end == -1:
        return [pattern]

    parts: list[str] = []
    current: list[str] = []
    depth = 0
    for ch in pattern[start + 1 : end]:
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        current.append(ch)
    parts.append("".join(current))

    prefix, suffix = pattern[:start], pattern[end + 1 :]
    expanded: list[str] = []
    for part in parts:
        expanded.extend(expand_braces(prefix + part + suffix))
    return expanded


def compile_globs(patterns: Iterable[str]) -> GitIgnoreSpec:
    lines: list[str] = []
    for pattern in patterns:
        lines.extend(expand_braces(pattern))
    return GitIgnoreSpec.from_lines(lines)


def build_marker_regex(markers: Sequence[str]) -> re.Pattern[str]:
    """Case-insensitive regex capturing (marker, description) for *markers*."""
    if not markers:
        msg = "At least one debt marker is required"
        raise ValueError(msg)
    # Longest first so "FIXME" wins over a configured "FIX" at the same position.
    alternation = "|".join(re.escape(m) for m in sorted(set(markers), key=len, reverse=True))
    return re.compile(rf"(?<!\w)({alternation})(?!\w)\s*[:\-]\s*(\S.*?)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class ScanResult:
    file_path: str
    line_number: int
    marker: str
    content: str
    description: str
    suggested: SuggestedDebtDict = field(default_factory=SuggestedDebtDict)

    def to_dict(self) -> ScanResultDict:
        return {
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "marker": self.marker,
            "content": self.content,
            "description": self.description,
            "suggested": dict(self.suggested),  # type: ignore[typeddict-item]
        }


def to_draft(result: ScanResult) -> dict[str, Any]:
    """Keyword arguments for ``DebtLifecycleManager.create_debt`` from a scan match."""
    return {entry_attr(key): value for key, value in result.suggested.items()}


class MarkerScanner:
    """Extract marker comments from text, files, or a whole project tree."""

    def __init__(
        self,
        markers: Sequence[str],
        *,
        include_patterns: Sequence[str] = (),
        exclude_patterns: Sequence[str] = (),
        context_lines: int = MAX_CONTEXT_LINES,
    ) -> None:
        self.markers = tuple(markers)
        self.include_patterns = tuple(include_patterns)
        self.exclude_patterns = tuple(exclude_patterns)
        self.context_lines = context_lines
        self._regex = build_marker_regex(self.markers)
        self._exclude = compile_globs(self.exclude_patterns)

    @classmethod
    def from_config(cls, config: ConfigurationProvider) -> MarkerScanner:
        return cls(
            config.debt_markers,
            include_patterns=config.scan_patterns,
            exclude_patterns=config.exclude_patterns,
        )

    # -- Text ----------------------------------------------------------------

    def scan_text(self, text: str, file_path: str) -> list[ScanResult]:
        """All matches in *text*, one per matching line, in line order."""
        lines = _LINE_SPLIT_RE.split(text)
        results: list[ScanResult] = []
        for index, line in enumerate(lines):
            match = self._regex.search(line)
            if match is None:
                continue
            marker = match.group(1).upper()
            description = match.group(2).strip()
            line_number = index + 1
            lo = max(0, index - self.context_lines)
            context = "\n".join(lines[lo : index + self.context_lines + 1])
            results.append(
                ScanResult(
                    file_path=file_path,
                    line_number=line_number,
                    marker=marker,
                    content=line,
                    description=description,
                    suggested=SuggestedDebtDict(
                        title=f"{marker}: {description}"[:MAX_TITLE_LENGTH],
                        description=description[:MAX_DESCRIPTION_LENGTH],
                        filePath=file_path,
                        lineNumber=line_number,
                        severity="low",
                        category="code-quality",
                        status="open",
                        priority="normal",
                        tags=[marker],
                        context=context,
                    ),
                )
            )
        return results

    # -- Files ---------------------------------------------------------------

    @staticmethod
    def _read_text(path: Path) -> str | None:
        """File contents, or None for binary, undecodable or unreadable files."""
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.warning("Skipping unreadable file %s: %s", path, exc)
            return None
        if b"\0" in data[:_BINARY_SNIFF_BYTES]:
            logger.debug("Skipping binary file %s", path)
            return None
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.debug("Skipping non-UTF-8 file %s", path)
            return None

    def scan_file(self, path: str | Path, root: str | Path | None = None) -> list[ScanResult]:
        """Scan one file. Paths in results are relative to *root* when the file is inside it."""
        path = Path(path)
        text = self._read_text(path)
        if text is None:
            return []
        return self.scan_text(text, self._display_path(path, root))

    @staticmethod
    def _display_path(path: Path, root: str | Path | None) -> str:
        if root is None:
            return path.as_posix()
        try:
            return path.resolve().relative_to(Path(root).resolve()).as_posix()
        except ValueError:
            return path.as_posix()

    # -- Workspace -----------------------------------------------------------

    def _walk(self, root: Path) -> list[Path]:
        """Every non-excluded file under *root*, in sorted walk order."""
        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            kept = []
            for d in sorted(dirnames):
                rel = d if rel_dir == "." else f"{rel_dir}/{d}"
                if not self._exclude.match_file(f"{rel}/"):
                    kept.append(d)
            dirnames[:] = kept
            for name in sorted(filenames):
                rel = name if rel_dir == "." else f"{rel_dir}/{name}"
                if not self._exclude.match_file(rel):
                    found.append(Path(dirpath) / name)
        return found

    def list_files(self, root: str | Path) -> list[Path]:
        """Files matching the include globs minus the exclude globs.

        Ordered by include pattern, then walk order; de-duplicated by resolved path.
        """
        root = Path(root)
        if not root.is_dir():
            return []
        candidates = self._walk(root)
        seen: set[Path] = set()
        selected: list[Path] = []
        for pattern in self.include_patterns:
            spec = compile_globs([pattern])
            for path in candidates:
                if not spec.match_file(path.relative_to(root).as_posix()):
                    continue
                resolved = path.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                selected.append(path)
        return selected

    def scan_workspace(self, root: str | Path, *, cancel: threading.Event | None = None) -> list[ScanResult]:
        """Scan every selected file under *root*.

        *cancel* is checked between files; once set, the results gathered so
        far are returned.
        """
        root = Path(root)
        files = self.list_files(root)
        results: list[ScanResult] = []
        for scanned, path in enumerate(files):
            if cancel is not None and cancel.is_set():
                logger.info("Scan cancelled after %d of %d files", scanned, len(files), extra={"op": "scan"})
                return results
            results.extend(self.scan_file(path, root))
        logger.info("Scanned %d files, %d markers found", len(files), len(results), extra={"op": "scan"})
        return results
