"""
File-level analysis: decode -> validate -> analyze.

This is what an upload handler calls. The analyzer only sees the decoded
Mesh; validation runs beside it and only blocks the result when the
configuration asks for watertight meshes.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from stl_analysis.geometry.analyzer import AnalysisResult, Mesh, analyze
from stl_analysis.io.stl_loader import STLInfo, decode_stl_with_info, load_stl_with_info
from stl_analysis.io.validator import ValidationReport, require_watertight, validate_mesh
from stl_analysis.logging_config import log_timing
from stl_analysis.project_config import ProjectConfig

logger = logging.getLogger(__name__)


@dataclass
class FileAnalysis:
    """Analysis of one STL stream."""
    info: STLInfo
    result: AnalysisResult
    validation: Optional[ValidationReport] = None

    @property
    def is_watertight(self) -> Optional[bool]:
        """None when validation was not run."""
        if self.validation is None:
            return None
        return self.validation.is_watertight

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file': self.info.to_dict(),
            **self.result.to_dict(),
            'validation': self.validation.to_dict() if self.validation else None,
        }

    def summary(self, precision: int = 3) -> str:
        """Generate human-readable summary."""
        lines = [
            f"File:         {self.info.source}",
            f"Format:       {self.info.format.value} ({self.info.size_kb:.1f} KB)",
            f"Triangles:    {self.info.n_triangles:,}",
            f"Vertices:     {self.info.n_unique_vertices:,}",
            self.result.summary(precision),
        ]
        if self.validation is not None:
            lines.append(f"Watertight:   {'Yes' if self.validation.is_watertight else 'No'}")
            for issue in self.validation.issues:
                lines.append(f"  - {issue}")
        return "\n".join(lines)


def analyze_mesh(
    mesh: Mesh,
    config: Optional[ProjectConfig] = None,
    name: str = "mesh",
) -> Tuple[AnalysisResult, Optional[ValidationReport]]:
    """Validate (if enabled) and analyze an already decoded mesh.

    Returns:
        Tuple of (AnalysisResult, ValidationReport or None)

    Raises:
        MalformedMeshError: if a face references a missing vertex
        NonWatertightMeshError: if validation.require_watertight is set
            and the mesh is not watertight
    """
    config = config or ProjectConfig()
    report = None

    if config.validation.enabled or config.validation.require_watertight:
        with log_timing(logger, "Validating mesh", mesh=name):
            report = validate_mesh(mesh, config.validation.degenerate_area_threshold)
        if config.validation.require_watertight:
            require_watertight(report)

    with log_timing(logger, "Analysing mesh", mesh=name) as timing:
        result = analyze(mesh)
        timing.update(result.to_dict())

    return result, report


def analyze_bytes(
    data: bytes,
    name: str = "upload.stl",
    config: Optional[ProjectConfig] = None,
) -> FileAnalysis:
    """Analyze an uploaded STL byte stream.

    Raises:
        STLLoadError: if the stream cannot be decoded
        MalformedMeshError: if the decoded mesh is structurally broken
        NonWatertightMeshError: in strict mode for open meshes
    """
    config = config or ProjectConfig()

    with log_timing(logger, "Decoding STL", file=name) as timing:
        mesh, info = decode_stl_with_info(
            data,
            name=name,
            deduplicate=config.loader.deduplicate_vertices,
            allow_empty=config.loader.allow_empty,
        )
        timing['faces'] = mesh.n_faces

    result, report = analyze_mesh(mesh, config, name=name)

    logger.info(
        "Analysed %s: %.3f cm^3, %.3f cm^2",
        name, result.volume_cm3, result.surface_area_cm2,
    )
    return FileAnalysis(info=info, result=result, validation=report)


def analyze_file(
    path: Union[str, Path],
    config: Optional[ProjectConfig] = None,
) -> FileAnalysis:
    """Analyze an STL file on disk.

    Raises:
        STLLoadError: if the file is missing, unreadable or corrupt
        MalformedMeshError: if the decoded mesh is structurally broken
        NonWatertightMeshError: in strict mode for open meshes
    """
    config = config or ProjectConfig()

    with log_timing(logger, "Loading STL", file=str(path)) as timing:
        mesh, info = load_stl_with_info(
            path,
            deduplicate=config.loader.deduplicate_vertices,
            allow_empty=config.loader.allow_empty,
        )
        timing['faces'] = mesh.n_faces

    result, report = analyze_mesh(mesh, config, name=Path(path).name)

    logger.info(
        "Analysed %s: %.3f cm^3, %.3f cm^2",
        info.source, result.volume_cm3, result.surface_area_cm2,
    )
    return FileAnalysis(info=info, result=result, validation=report)
