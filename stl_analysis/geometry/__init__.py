"""Mesh analysis engine: volume and surface area of triangle meshes."""

from stl_analysis.geometry.analyzer import (
    AnalysisError,
    AnalysisResult,
    MalformedMeshError,
    Mesh,
    analyze,
    check_mesh,
    face_areas,
    signed_tetrahedron_volume,
    signed_volumes,
    triangle_area,
)

__all__ = [
    "AnalysisError",
    "AnalysisResult",
    "MalformedMeshError",
    "Mesh",
    "analyze",
    "check_mesh",
    "face_areas",
    "signed_tetrahedron_volume",
    "signed_volumes",
    "triangle_area",
]
