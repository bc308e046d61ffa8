"""
Mesh volume and surface area analysis.

Provides:
- Mesh: immutable vertex/face value handed over by the decoder
- AnalysisResult: volume (cm^3) and surface area (cm^2) of a mesh
- analyze(): the single entry point of the engine

Volume uses the divergence theorem: every face together with the origin
spans a tetrahedron, and the signed tetrahedron volumes of a closed,
consistently wound mesh sum to the enclosed volume. The per-face sums are
reduced strictly in face order so identical input gives a bit-identical
result. Open or non-manifold meshes still produce a number, it just does not
describe a physical volume (see stl_analysis.io.validator for the check).

Input coordinates are millimetres.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

MM3_PER_CM3 = 1000.0
MM2_PER_CM2 = 100.0


class AnalysisError(Exception):
    """Base error raised by the analysis engine."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class MalformedMeshError(AnalysisError):
    """A face references a vertex outside the vertex array (or the arrays have the wrong shape)."""


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Mesh:
    """Indexed triangle mesh.

    Attributes:
        vertices: (N, 3) float array of coordinates in mm
        faces: (M, 3) int array of vertex indices, winding gives the outward side
    """
    vertices: NDArray[np.floating]
    faces: NDArray[np.integer]

    def __post_init__(self) -> None:
        vertices = np.asarray(self.vertices)
        if vertices.size == 0:
            vertices = vertices.reshape(0, 3)
        if not np.issubdtype(vertices.dtype, np.floating):
            vertices = vertices.astype(np.float64)

        faces = np.asarray(self.faces)
        if faces.size == 0:
            faces = faces.reshape(0, 3).astype(np.int64)

        object.__setattr__(self, "vertices", _frozen(vertices))
        object.__setattr__(self, "faces", _frozen(faces))

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    @classmethod
    def from_triangles(cls, triangles: Sequence) -> "Mesh":
        """Build an unindexed mesh from an (M, 3, 3) triangle soup."""
        tris = np.asarray(triangles)
        if tris.size == 0:
            return cls(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=np.int64))
        if tris.ndim != 3 or tris.shape[1:] != (3, 3):
            raise MalformedMeshError(
                "Triangles must have shape (M, 3, 3)",
                {"shape": tris.shape},
            )
        n = len(tris)
        return cls(
            vertices=tris.reshape(n * 3, 3),
            faces=np.arange(n * 3, dtype=np.int64).reshape(n, 3),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """Volume and surface area of an analysed mesh.

    Attributes:
        volume_cm3: Enclosed volume in cm^3 (>= 0)
        surface_area_cm2: Total surface area in cm^2 (>= 0)
    """
    volume_cm3: float
    surface_area_cm2: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'volume_cm3': self.volume_cm3,
            'surface_area_cm2': self.surface_area_cm2,
        }

    def summary(self, precision: int = 3) -> str:
        """Generate human-readable summary."""
        return "\n".join([
            f"Volume:       {self.volume_cm3:.{precision}f} cm^3",
            f"Surface Area: {self.surface_area_cm2:.{precision}f} cm^2",
        ])


def check_mesh(mesh: Mesh) -> None:
    """Verify that every face indexes an existing vertex.

    Raises:
        MalformedMeshError: on wrong array shapes, non-integer faces,
            non-finite coordinates or an index outside [0, n_vertices)
    """
    vertices, faces = mesh.vertices, mesh.faces

    if vertices.ndim != 2 or vertices.shape[1] != 3:
        raise MalformedMeshError("Vertices must have shape (N, 3)", {"shape": vertices.shape})
    if faces.ndim != 2 or faces.shape[1] != 3:
        raise MalformedMeshError("Faces must have shape (M, 3)", {"shape": faces.shape})
    if not np.issubdtype(faces.dtype, np.integer):
        raise MalformedMeshError("Face indices must be integers", {"dtype": str(faces.dtype)})
    if not np.all(np.isfinite(vertices)):
        bad = int(np.argwhere(~np.isfinite(vertices))[0][0])
        raise MalformedMeshError("Vertex has a non-finite coordinate", {"vertex": bad})

    if len(faces) == 0:
        return

    # Negative indices would silently wrap in numpy, so both bounds are checked.
    out_of_range = (faces < 0) | (faces >= len(vertices))
    if np.any(out_of_range):
        face_idx, corner = np.argwhere(out_of_range)[0]
        raise MalformedMeshError(
            "Face references a vertex outside the vertex array",
            {
                "face": int(face_idx),
                "vertex_index": int(faces[face_idx, corner]),
                "n_vertices": len(vertices),
            },
        )


def _face_corners(mesh: Mesh):
    """Return the three corner coordinate arrays of every face, widened to float64."""
    v = mesh.vertices.astype(np.float64)
    f = mesh.faces
    return v[f[:, 0]], v[f[:, 1]], v[f[:, 2]]


def _signed_volumes(p1: NDArray, p2: NDArray, p3: NDArray) -> NDArray[np.float64]:
    v321 = p3[..., 0] * p2[..., 1] * p1[..., 2]
    v231 = p2[..., 0] * p3[..., 1] * p1[..., 2]
    v312 = p3[..., 0] * p1[..., 1] * p2[..., 2]
    v132 = p1[..., 0] * p3[..., 1] * p2[..., 2]
    v213 = p2[..., 0] * p1[..., 1] * p3[..., 2]
    v123 = p1[..., 0] * p2[..., 1] * p3[..., 2]

    return (1.0 / 6.0) * (-v321 + v231 + v312 - v132 - v213 + v123)


def _areas(p1: NDArray, p2: NDArray, p3: NDArray) -> NDArray[np.float64]:
    ab = p2 - p1
    ac = p3 - p1

    cx = ab[..., 1] * ac[..., 2] - ab[..., 2] * ac[..., 1]
    cy = ab[..., 2] * ac[..., 0] - ab[..., 0] * ac[..., 2]
    cz = ab[..., 0] * ac[..., 1] - ab[..., 1] * ac[..., 0]

    return 0.5 * np.sqrt(cx ** 2 + cy ** 2 + cz ** 2)


def _sequential_sum(values: NDArray[np.float64]) -> float:
    """Sum left to right in face order.

    np.sum uses pairwise summation; cumsum keeps the plain running total.
    """
    if len(values) == 0:
        return 0.0
    return float(np.cumsum(values)[-1])


def signed_tetrahedron_volume(p1, p2, p3) -> float:
    """Signed volume of the tetrahedron (origin, p1, p2, p3) in input units^3."""
    pts = [np.asarray(p, dtype=np.float64) for p in (p1, p2, p3)]
    return float(_signed_volumes(*pts))


def triangle_area(p1, p2, p3) -> float:
    """Area of triangle (p1, p2, p3) in input units^2.

    Example:
        >>> triangle_area((0, 0, 0), (10, 0, 0), (0, 10, 0))
        50.0
    """
    pts = [np.asarray(p, dtype=np.float64) for p in (p1, p2, p3)]
    return float(_areas(*pts))


def signed_volumes(mesh: Mesh) -> NDArray[np.float64]:
    """Per-face signed tetrahedron volumes in mm^3, in face order.

    Raises:
        MalformedMeshError: if the mesh fails check_mesh()
    """
    check_mesh(mesh)
    if mesh.n_faces == 0:
        return np.array([], dtype=np.float64)
    return _signed_volumes(*_face_corners(mesh))


def face_areas(mesh: Mesh) -> NDArray[np.float64]:
    """Per-face triangle areas in mm^2, in face order.

    Raises:
        MalformedMeshError: if the mesh fails check_mesh()
    """
    check_mesh(mesh)
    if mesh.n_faces == 0:
        return np.array([], dtype=np.float64)
    return _areas(*_face_corners(mesh))


def analyze(mesh: Mesh) -> AnalysisResult:
    """Compute enclosed volume and surface area of a triangle mesh.

    The signed volume is made positive with abs() so either winding
    convention works, then clamped at zero. Degenerate faces add exactly
    zero area; open meshes are not rejected.

    Args:
        mesh: Mesh with coordinates in mm

    Returns:
        AnalysisResult in cm^3 / cm^2

    Raises:
        MalformedMeshError: if a face references a missing vertex, or the
            coordinates overflow float64 during accumulation

    Example:
        >>> result = analyze(mesh)
        >>> print(f"{result.volume_cm3:.2f} cm^3")
    """
    check_mesh(mesh)

    if mesh.n_faces == 0:
        total_volume = 0.0
        total_area = 0.0
    else:
        p1, p2, p3 = _face_corners(mesh)
        total_volume = _sequential_sum(_signed_volumes(p1, p2, p3))
        total_area = _sequential_sum(_areas(p1, p2, p3))

    # Finite coordinates can still overflow float64 in the products.
    if not (math.isfinite(total_volume) and math.isfinite(total_area)):
        raise MalformedMeshError(
            "Mesh coordinates are too large to analyse",
            {"signed_volume_mm3": total_volume, "area_mm2": total_area},
        )

    result = AnalysisResult(
        volume_cm3=max(abs(total_volume) / MM3_PER_CM3, 0.0),
        surface_area_cm2=max(total_area / MM2_PER_CM2, 0.0),
    )

    logger.debug(
        "Mesh analysed",
        extra={
            'vertices': mesh.n_vertices,
            'faces': mesh.n_faces,
            'signed_volume_mm3': total_volume,
            'volume_cm3': result.volume_cm3,
            'surface_area_cm2': result.surface_area_cm2,
        }
    )

    return result
