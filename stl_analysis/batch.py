"""
Batch analysis of a directory of STL files.

Provides:
- File discovery
- Per-file analysis that records failures instead of raising
- Optional thread-pool execution across files
- JSON report output

Parallelism is per file only. Each mesh is still reduced sequentially,
so a file's numbers do not depend on whether the batch ran in parallel.

Usage:
    from stl_analysis.batch import batch_analyze

    results = batch_analyze("./uploads", parallel=True)
    print(results.summary())
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from stl_analysis.geometry.analyzer import AnalysisError, AnalysisResult
from stl_analysis.io.stl_loader import STLLoadError
from stl_analysis.pipeline import analyze_file
from stl_analysis.project_config import ProjectConfig, load_config

logger = logging.getLogger(__name__)


@dataclass
class FileResult:
    """Outcome of analysing a single file."""
    input_path: Path
    result: Optional[AnalysisResult] = None
    is_watertight: Optional[bool] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.result is not None

    @property
    def status(self) -> str:
        return "OK" if self.success else "FAILED"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'input': str(self.input_path),
            'success': self.success,
            'volume_cm3': self.result.volume_cm3 if self.result else None,
            'surface_area_cm2': self.result.surface_area_cm2 if self.result else None,
            'is_watertight': self.is_watertight,
            'error': self.error,
            'duration': self.duration_seconds,
        }


@dataclass
class BatchResult:
    """Result of a batch run, in file order."""
    results: List[FileResult] = field(default_factory=list)
    total_duration_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def success_rate(self) -> float:
        """Success rate as percentage."""
        if self.total == 0:
            return 0.0
        return 100.0 * self.successful / self.total

    @property
    def total_volume_cm3(self) -> float:
        return sum(r.result.volume_cm3 for r in self.results if r.result)

    @property
    def total_surface_area_cm2(self) -> float:
        return sum(r.result.surface_area_cm2 for r in self.results if r.result)

    def summary(self, precision: int = 3) -> str:
        """Generate human-readable summary."""
        lines = [
            "Batch Analysis Summary",
            "=" * 40,
        ]
        for r in self.results:
            if r.success:
                lines.append(
                    f"  {r.input_path.name}: {r.result.volume_cm3:.{precision}f} cm^3, "
                    f"{r.result.surface_area_cm2:.{precision}f} cm^2"
                )
        lines += [
            "",
            f"Total files:     {self.total}",
            f"Successful:      {self.successful}",
            f"Failed:          {self.failed}",
            f"Success rate:    {self.success_rate:.1f}%",
            f"Total volume:    {self.total_volume_cm3:.{precision}f} cm^3",
            f"Total area:      {self.total_surface_area_cm2:.{precision}f} cm^2",
            f"Total time:      {self.total_duration_seconds:.1f}s",
        ]

        if self.failed > 0:
            lines.append("")
            lines.append("Failed files:")
            for r in self.results:
                if not r.success:
                    lines.append(f"  - {r.input_path.name}: {r.error}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'successful': self.successful,
            'failed': self.failed,
            'success_rate': self.success_rate,
            'total_volume_cm3': self.total_volume_cm3,
            'total_surface_area_cm2': self.total_surface_area_cm2,
            'total_duration_seconds': self.total_duration_seconds,
            'results': [r.to_dict() for r in self.results],
        }

    def save_json(self, path: Union[str, Path]) -> Path:
        """Write the report as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info("Batch report saved to %s", path)
        return path


def find_stl_files(
    input_dir: Union[str, Path],
    pattern: str = "*.stl",
    recursive: bool = False,
) -> List[Path]:
    """Find STL files in a directory (upper-case extension included).

    Raises:
        FileNotFoundError: if input_dir does not exist
        NotADirectoryError: if input_dir is a file
    """
    input_dir = Path(input_dir)

    if not input_dir.exists():
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    if not input_dir.is_dir():
        raise NotADirectoryError(f"Not a directory: {input_dir}")

    glob = input_dir.rglob if recursive else input_dir.glob
    files = set(glob(pattern))
    files.update(glob(pattern.replace('.stl', '.STL')))
    files = sorted(f for f in files if f.is_file())

    logger.info("Found %d STL files in %s", len(files), input_dir)
    return files


def analyze_single_file(
    input_path: Path,
    config: Optional[ProjectConfig] = None,
) -> FileResult:
    """Analyze one file, recording decode and analysis errors in the result."""
    start = time.perf_counter()
    record = FileResult(input_path=input_path)

    try:
        analysis = analyze_file(input_path, config)
        record.result = analysis.result
        record.is_watertight = analysis.is_watertight
    except (STLLoadError, AnalysisError) as e:
        record.error = str(e)
        logger.error("Failed to analyse %s: %s", input_path.name, e)

    record.duration_seconds = time.perf_counter() - start
    return record


def batch_analyze(
    input_dir: Union[str, Path],
    pattern: Optional[str] = None,
    recursive: Optional[bool] = None,
    config: Optional[ProjectConfig] = None,
    config_path: Optional[Union[str, Path]] = None,
    parallel: Optional[bool] = None,
    max_workers: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int, FileResult], None]] = None,
) -> BatchResult:
    """Analyze every STL file in a directory.

    Arguments left as None fall back to the batch section of the config.

    Args:
        input_dir: Directory containing STL files
        pattern: Glob pattern for STL files
        recursive: Search subdirectories
        config: Configuration (loaded from config_path or input_dir if None)
        config_path: Explicit config file
        parallel: Analyze files concurrently in a thread pool
        max_workers: Thread pool size
        progress_callback: Called after each file: (current, total, result)

    Returns:
        BatchResult with results in file order
    """
    start = time.perf_counter()
    input_dir = Path(input_dir)

    if config is None:
        config = load_config(stl_path=input_dir / "dummy.stl", explicit_config=config_path)

    pattern = pattern if pattern is not None else config.batch.pattern
    recursive = recursive if recursive is not None else config.batch.recursive
    parallel = parallel if parallel is not None else config.batch.parallel
    max_workers = max_workers if max_workers is not None else config.batch.max_workers

    stl_files = find_stl_files(input_dir, pattern, recursive)
    if not stl_files:
        logger.warning("No STL files found in %s", input_dir)
        return BatchResult(total_duration_seconds=time.perf_counter() - start)

    logger.info("Starting batch analysis: %d files, parallel=%s", len(stl_files), parallel)

    def report(i: int, result: FileResult) -> None:
        if progress_callback:
            progress_callback(i, len(stl_files), result)
        logger.info(
            "[%d/%d] %s: %s (%.2fs)",
            i, len(stl_files), result.input_path.name,
            result.status, result.duration_seconds,
        )

    results: List[FileResult] = []
    if parallel:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(analyze_single_file, f, config) for f in stl_files]
            for i, future in enumerate(futures, 1):
                result = future.result()
                results.append(result)
                report(i, result)
    else:
        for i, stl_file in enumerate(stl_files, 1):
            result = analyze_single_file(stl_file, config)
            results.append(result)
            report(i, result)

    batch_result = BatchResult(
        results=results,
        total_duration_seconds=time.perf_counter() - start,
    )

    logger.info(
        "Batch analysis complete: %d/%d successful (%.1f%%) in %.1fs",
        batch_result.successful, batch_result.total,
        batch_result.success_rate, batch_result.total_duration_seconds,
    )
    return batch_result
