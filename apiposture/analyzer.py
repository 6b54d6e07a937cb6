from __future__ import annotations

from dataclasses import replace
from fnmatch import fnmatch
import logging
import os
from pathlib import Path
import time

from apiposture.authorization import ExpressionInterpreter
from apiposture.classification import classify
from apiposture.config import Config
from apiposture.discovery import EndpointCollector
from apiposture.extensions import ExtensionManager
from apiposture.javaparse import UnresolvableSourceError, parse_java_file
from apiposture.models import Diagnostic, Endpoint, ScanResult, SourceLocation
from apiposture.resolver import resolve
from apiposture.rules.engine import RuleEngine

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".java"
SKIPPED_DIR_NAMES = {"target", "build", ".git", ".idea", "node_modules", ".gradle", "out"}
TEST_DIR_NAMES = {"test", "tests"}


def find_source_files(root: str | Path, excludes: list[str] | None = None, include_tests: bool = False) -> list[Path]:
    root_path = Path(root).resolve()
    patterns = list(excludes or [])
    if root_path.is_file():
        return [root_path] if root_path.suffix == SOURCE_SUFFIX else []

    skipped = SKIPPED_DIR_NAMES if include_tests else SKIPPED_DIR_NAMES | TEST_DIR_NAMES
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root_path, topdown=True, followlinks=False):
        dir_path = Path(dirpath)
        dirnames[:] = sorted(
            name
            for name in dirnames
            if name not in skipped and not _is_excluded(dir_path / name, root_path, patterns)
        )
        for filename in sorted(filenames):
            file_path = dir_path / filename
            if file_path.suffix != SOURCE_SUFFIX:
                continue
            if _is_excluded(file_path, root_path, patterns):
                continue
            files.append(file_path)
    return files


def analyze_project(root: str | Path, config: Config | None = None) -> ScanResult:
    config = config or Config()
    root_path = Path(root).resolve()
    if not root_path.exists():
        raise FileNotFoundError(f"Project path not found: {root}")

    started = time.perf_counter()
    base = root_path.parent if root_path.is_file() else root_path
    collector = EndpointCollector(ExpressionInterpreter(config.markers.vocabulary()))
    endpoints: list[Endpoint] = []
    diagnostics: list[Diagnostic] = []
    skipped: list[str] = []
    files_scanned = 0

    sources = find_source_files(root_path, config.scan.exclude, config.scan.include_tests)
    logger.info("Analyzing %d source files under %s", len(sources), root_path)
    for file_path in sources:
        relative = _relative_path(file_path, base)
        try:
            unit = parse_java_file(file_path)
        except (UnresolvableSourceError, OSError) as exc:
            logger.warning("Skipping %s: %s", relative, exc)
            skipped.append(relative)
            line = exc.line if isinstance(exc, UnresolvableSourceError) else None
            diagnostics.append(
                Diagnostic(
                    kind="unresolvable_syntax_unit",
                    message=f"Skipped {relative}: {exc}",
                    location=SourceLocation(relative, line or 0),
                )
            )
            continue

        files_scanned += 1
        collection = collector.collect(replace(unit, path=relative))
        diagnostics.extend(collection.diagnostics)
        endpoints.extend(classify(resolve(discovered)) for discovered in collection.endpoints)

    return ScanResult(
        project_path=str(root_path),
        endpoints=tuple(endpoints),
        files_scanned=files_scanned,
        duration=time.perf_counter() - started,
        skipped_files=tuple(skipped),
        diagnostics=tuple(diagnostics),
    )


def scan_project(
    root: str | Path,
    config: Config | None = None,
    engine: RuleEngine | None = None,
    extensions: ExtensionManager | None = None,
) -> ScanResult:
    config = config or Config()
    if engine is None:
        engine = RuleEngine(
            minimum_severity=config.scan.minimum_severity,
            disabled_rules=config.scan.disabled_rules,
        )
    if extensions is not None:
        # extension rules go into a per-scan engine; the caller's engine is left as given
        engine = engine.copy()
        extensions.install_into(engine)
        extensions.notify_scan_start(str(Path(root).resolve()))

    started = time.perf_counter()
    analyzed = analyze_project(root, config)
    result = engine.evaluate_result(analyzed, workers=config.scan.workers)
    result = replace(result, duration=time.perf_counter() - started)
    logger.info(
        "Scan finished: files=%d endpoints=%d findings=%d",
        result.files_scanned,
        result.total_endpoints,
        result.total_findings,
    )

    if extensions is not None:
        extensions.notify_scan_complete(result)
    return result


def _is_excluded(path: Path, root: Path, patterns: list[str]) -> bool:
    if not patterns:
        return False
    relative = _relative_path(path, root)
    for pattern in patterns:
        if pattern in path.relative_to(root).parts:
            return True
        if fnmatch(relative, pattern) or fnmatch(path.name, pattern):
            return True
    return False


def _relative_path(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root).as_posix()
    except ValueError:
        return str(path)
