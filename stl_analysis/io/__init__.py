"""Mesh decoding (numpy-stl) and validation."""

from stl_analysis.io.stl_loader import (
    STLFormat,
    STLInfo,
    STLLoadError,
    decode_stl,
    decode_stl_with_info,
    detect_stl_format,
    load_stl,
    load_stl_with_info,
)
from stl_analysis.io.validator import (
    NonWatertightMeshError,
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
    require_watertight,
    validate_mesh,
)

__all__ = [
    "STLFormat",
    "STLInfo",
    "STLLoadError",
    "decode_stl",
    "decode_stl_with_info",
    "detect_stl_format",
    "load_stl",
    "load_stl_with_info",
    "NonWatertightMeshError",
    "ValidationIssue",
    "ValidationReport",
    "ValidationSeverity",
    "require_watertight",
    "validate_mesh",
]
