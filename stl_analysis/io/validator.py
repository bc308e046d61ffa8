"""
Mesh validation ahead of analysis.

Checks performed:
- Structure (array shapes, faces referencing missing vertices)
- Closed mesh (no boundary edges)
- Manifold edges (no edge shared by more than 2 faces)
- Consistent winding (each shared edge traversed once in each direction)
- Degenerate triangles (zero area)

The analyzer never calls this module: volume is computed for any mesh.
Callers that price only watertight parts use require_watertight().
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

import numpy as np

from stl_analysis.geometry.analyzer import (
    AnalysisError,
    MalformedMeshError,
    Mesh,
    check_mesh,
    face_areas,
)

logger = logging.getLogger(__name__)


class ValidationSeverity(Enum):
    """Severity level of validation issues."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationIssue:
    """A single validation issue found in the mesh."""
    code: str
    severity: ValidationSeverity
    message: str
    count: int = 1
    details: List[int] = field(default_factory=list)  # face indices

    def __str__(self) -> str:
        if self.count > 1:
            return f"[{self.severity.value.upper()}] {self.code}: {self.message} ({self.count} occurrences)"
        return f"[{self.severity.value.upper()}] {self.code}: {self.message}"


@dataclass
class ValidationReport:
    """Complete validation report for a mesh."""
    n_vertices: int
    n_faces: int
    n_edges: int = 0
    n_boundary_edges: int = 0
    n_non_manifold_edges: int = 0
    n_misoriented_edges: int = 0
    n_degenerate_faces: int = 0
    well_formed: bool = True

    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        return self.well_formed and self.n_faces > 0 and self.n_boundary_edges == 0

    @property
    def is_manifold(self) -> bool:
        return self.well_formed and self.n_non_manifold_edges == 0

    @property
    def is_consistently_oriented(self) -> bool:
        return self.well_formed and self.n_misoriented_edges == 0

    @property
    def is_watertight(self) -> bool:
        """Every edge shared by exactly two faces traversing it in opposite directions."""
        return self.is_closed and self.is_manifold and self.is_consistently_oriented

    @property
    def is_valid(self) -> bool:
        """No error-level issues (warnings are OK)."""
        return not self.errors

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Mesh Validation Report",
            "=" * 40,
            f"Vertices: {self.n_vertices}",
            f"Faces: {self.n_faces}",
            f"Edges: {self.n_edges}",
            "",
            f"Watertight: {'Yes' if self.is_watertight else 'No'}",
            f"Closed: {'Yes' if self.is_closed else 'No'}",
            f"Manifold: {'Yes' if self.is_manifold else 'No'}",
            f"Consistent winding: {'Yes' if self.is_consistently_oriented else 'No'}",
            f"Boundary edges: {self.n_boundary_edges}",
            f"Non-manifold edges: {self.n_non_manifold_edges}",
            f"Misoriented edges: {self.n_misoriented_edges}",
            f"Degenerate faces: {self.n_degenerate_faces}",
        ]

        if self.issues:
            lines.append("")
            lines.append("Issues:")
            for issue in self.issues:
                lines.append(f"  - {issue}")

        lines.append("")
        lines.append(f"Overall: {'VALID' if self.is_valid else 'INVALID'}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'is_watertight': self.is_watertight,
            'is_closed': self.is_closed,
            'is_manifold': self.is_manifold,
            'is_consistently_oriented': self.is_consistently_oriented,
            'n_vertices': self.n_vertices,
            'n_faces': self.n_faces,
            'n_edges': self.n_edges,
            'n_boundary_edges': self.n_boundary_edges,
            'n_non_manifold_edges': self.n_non_manifold_edges,
            'n_misoriented_edges': self.n_misoriented_edges,
            'n_degenerate_faces': self.n_degenerate_faces,
            'issues': [
                {'code': i.code, 'severity': i.severity.value, 'message': i.message, 'count': i.count}
                for i in self.issues
            ],
        }


class NonWatertightMeshError(AnalysisError):
    """Mesh rejected because it does not enclose a volume."""


def _directed_edges(faces: np.ndarray) -> np.ndarray:
    """(3M, 2) array of directed edges a->b, b->c, c->a."""
    return faces[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 2)


def _position_faces(mesh: Mesh) -> np.ndarray:
    """Faces re-indexed by vertex position, so duplicated corners share an index."""
    _, inverse = np.unique(mesh.vertices, axis=0, return_inverse=True)
    return np.asarray(inverse, dtype=np.int64).reshape(-1)[mesh.faces]


def _bad_faces(faces: np.ndarray, n_vertices: int) -> np.ndarray:
    if faces.ndim != 2 or not np.issubdtype(faces.dtype, np.integer):
        return np.array([], dtype=np.int64)
    return np.where(np.any((faces < 0) | (faces >= n_vertices), axis=1))[0]


def validate_mesh(mesh: Mesh, degenerate_area_threshold: float = 1e-10) -> ValidationReport:
    """Validate mesh topology and geometry.

    A malformed mesh (see check_mesh) is reported rather than raised; the
    edge and area checks are skipped in that case. Edges are matched on
    vertex position, so the result does not depend on whether the decoder
    merged duplicate vertices.

    Args:
        mesh: Mesh to validate
        degenerate_area_threshold: Faces with smaller area (mm^2) are degenerate

    Returns:
        ValidationReport with all findings
    """
    faces = mesh.faces
    report = ValidationReport(n_vertices=mesh.n_vertices, n_faces=mesh.n_faces)
    issues = report.issues

    logger.debug("Validating mesh: %d vertices, %d faces", mesh.n_vertices, mesh.n_faces)

    if mesh.n_faces == 0:
        issues.append(ValidationIssue(
            code="EMPTY_MESH",
            severity=ValidationSeverity.INFO,
            message="Mesh has no faces",
        ))
        return report

    try:
        check_mesh(mesh)
    except MalformedMeshError as exc:
        report.well_formed = False
        bad = _bad_faces(faces, mesh.n_vertices)
        issues.append(ValidationIssue(
            code="INDEX_OUT_OF_RANGE" if len(bad) else "MALFORMED_MESH",
            severity=ValidationSeverity.ERROR,
            message=str(exc),
            count=max(len(bad), 1),
            details=bad[:10].tolist(),
        ))
        logger.error("Mesh is malformed: %s", exc)
        return report

    # Edges are keyed by position: a triangle soup of a closed part is still closed.
    directed = _directed_edges(_position_faces(mesh))
    undirected = np.sort(directed, axis=1)

    _, edge_counts = np.unique(undirected, axis=0, return_counts=True)
    report.n_edges = len(edge_counts)
    report.n_boundary_edges = int(np.sum(edge_counts == 1))
    report.n_non_manifold_edges = int(np.sum(edge_counts > 2))

    # Two faces walking a shared edge the same way produce a repeated directed edge.
    _, directed_counts = np.unique(directed, axis=0, return_counts=True)
    report.n_misoriented_edges = int(np.sum(directed_counts > 1))

    if report.n_boundary_edges:
        issues.append(ValidationIssue(
            code="BOUNDARY_EDGES",
            severity=ValidationSeverity.WARNING,
            message=f"Mesh has {report.n_boundary_edges} boundary edges (not closed)",
            count=report.n_boundary_edges,
        ))
        logger.warning("Mesh has %d boundary edges", report.n_boundary_edges)

    if report.n_non_manifold_edges:
        issues.append(ValidationIssue(
            code="NON_MANIFOLD_EDGES",
            severity=ValidationSeverity.ERROR,
            message=f"Mesh has {report.n_non_manifold_edges} non-manifold edges (>2 faces)",
            count=report.n_non_manifold_edges,
        ))
        logger.error("Mesh has %d non-manifold edges", report.n_non_manifold_edges)

    if report.n_misoriented_edges:
        issues.append(ValidationIssue(
            code="INCONSISTENT_WINDING",
            severity=ValidationSeverity.WARNING,
            message=f"{report.n_misoriented_edges} edges are traversed twice in the same direction",
            count=report.n_misoriented_edges,
        ))
        logger.warning("Mesh has %d edges with inconsistent winding", report.n_misoriented_edges)

    areas = face_areas(mesh)
    degenerate = np.where(areas < degenerate_area_threshold)[0]
    report.n_degenerate_faces = len(degenerate)

    if len(degenerate):
        issues.append(ValidationIssue(
            code="DEGENERATE_FACES",
            severity=ValidationSeverity.WARNING,
            message=f"Mesh has {len(degenerate)} degenerate faces (zero area)",
            count=len(degenerate),
            details=degenerate[:10].tolist(),
        ))
        logger.warning("Mesh has %d degenerate faces", len(degenerate))

    logger.info("Validation complete: %s, %s",
                "VALID" if report.is_valid else "INVALID",
                "watertight" if report.is_watertight else "not watertight")
    return report


def require_watertight(report: ValidationReport) -> None:
    """Raise if the validated mesh does not enclose a volume.

    Raises:
        NonWatertightMeshError: when report.is_watertight is False
    """
    if report.is_watertight:
        return
    raise NonWatertightMeshError(
        "Mesh is not watertight",
        {
            'boundary_edges': report.n_boundary_edges,
            'non_manifold_edges': report.n_non_manifold_edges,
            'misoriented_edges': report.n_misoriented_edges,
        },
    )
