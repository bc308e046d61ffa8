"""
stl_analysis: volume and surface area of STL meshes for quoting.

The engine lives in stl_analysis.geometry; file loading, validation,
batch processing and the CLI are built around it.
"""

from stl_analysis.geometry.analyzer import (
    AnalysisError,
    AnalysisResult,
    MalformedMeshError,
    Mesh,
    analyze,
)
from stl_analysis.logging_config import (
    setup_logging,
    get_logger,
    configure_default_logging,
    log_timing,
    timed,
    LogContext,
)

__version__ = "0.1.0"

__all__ = [
    "AnalysisError",
    "AnalysisResult",
    "MalformedMeshError",
    "Mesh",
    "analyze",
    "setup_logging",
    "get_logger",
    "configure_default_logging",
    "log_timing",
    "timed",
    "LogContext",
]
