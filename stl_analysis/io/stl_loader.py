"""
Decoding of STL files and uploaded STL bytes into a Mesh.

Supports:
- Binary STL (autodetected)
- ASCII STL (autodetected)

Parsing itself is done by numpy-stl. This module only turns the decoded
triangle soup into an indexed Mesh; it never alters coordinates, so the
float32 values stored in the file reach the analyzer unchanged.
"""

import io
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

import numpy as np
from stl import mesh as stl_mesh

from stl_analysis.geometry.analyzer import Mesh

logger = logging.getLogger(__name__)

BINARY_HEADER_SIZE = 80
BINARY_COUNT_SIZE = 4
BINARY_RECORD_SIZE = 50  # normal + 3 vertices (12 float32) + attribute word


class STLFormat(Enum):
    """STL file format type."""
    BINARY = "binary"
    ASCII = "ascii"
    UNKNOWN = "unknown"


@dataclass
class STLInfo:
    """Metadata about a decoded STL stream."""
    source: str
    format: STLFormat
    size_bytes: int
    n_triangles: int
    n_unique_vertices: int
    solid_name: Optional[str] = None

    @property
    def size_kb(self) -> float:
        return self.size_bytes / 1024

    def to_dict(self) -> dict:
        return {
            'source': self.source,
            'format': self.format.value,
            'size_bytes': self.size_bytes,
            'n_triangles': self.n_triangles,
            'n_unique_vertices': self.n_unique_vertices,
            'solid_name': self.solid_name,
        }


class STLLoadError(Exception):
    """The STL stream could not be read or decoded."""


def detect_stl_format(header: bytes) -> Tuple[STLFormat, Optional[str]]:
    """Detect binary vs ASCII STL from the start of the stream.

    ASCII files start with 'solid' and contain 'facet' or 'endsolid' early
    on. Binary headers may also start with 'solid', so the keyword alone is
    not enough.

    Args:
        header: First bytes of the stream (1 KB is plenty)

    Returns:
        Tuple of (format, solid name or None)
    """
    text = header.decode('ascii', errors='ignore')
    lowered = text.lstrip().lower()

    if lowered.startswith('solid'):
        is_ascii = 'facet' in lowered or 'endsolid' in lowered
        if is_ascii or len(header) < BINARY_HEADER_SIZE:
            first_line = text.lstrip().splitlines()[0] if text.strip() else ""
            return STLFormat.ASCII, first_line[5:].strip() or None

    if len(header) < BINARY_HEADER_SIZE:
        return STLFormat.UNKNOWN, None

    name = header[:BINARY_HEADER_SIZE].split(b'\x00')[0].decode('ascii', errors='ignore').strip()
    if name.lower().startswith('solid'):
        return STLFormat.BINARY, name[5:].strip() or None
    return STLFormat.BINARY, None


def _check_binary_size(header: bytes, size: int, name: str) -> None:
    """Reject binary streams shorter than their triangle count announces.

    numpy-stl reads as many records as are present, so a truncated upload
    would otherwise decode to a silently smaller mesh.
    """
    prefix = BINARY_HEADER_SIZE + BINARY_COUNT_SIZE
    if len(header) < prefix:
        raise STLLoadError(f"STL {name!r} is too short for a binary header ({size} bytes).")
    count = int.from_bytes(header[BINARY_HEADER_SIZE:prefix], 'little')
    expected = prefix + count * BINARY_RECORD_SIZE
    if size < expected:
        raise STLLoadError(
            f"STL {name!r} is truncated: header announces {count} triangles "
            f"({expected} bytes), got {size} bytes."
        )


def _index_triangles(vectors: np.ndarray, deduplicate: bool) -> Mesh:
    """Turn an (M, 3, 3) triangle array into an indexed Mesh."""
    n = len(vectors)
    flat = np.ascontiguousarray(vectors).reshape(n * 3, 3)

    if not deduplicate or n == 0:
        return Mesh(vertices=flat, faces=np.arange(n * 3, dtype=np.int64).reshape(n, 3))

    # Exact coordinate match only; rounding would move vertices.
    unique, inverse = np.unique(flat, axis=0, return_inverse=True)
    faces = np.asarray(inverse, dtype=np.int64).reshape(n, 3)
    return Mesh(vertices=unique, faces=faces)


def _decode(fh: BinaryIO, name: str, deduplicate: bool, allow_empty: bool,
            speedups: bool = True) -> Mesh:
    try:
        decoded = stl_mesh.Mesh.from_file(
            name, fh=fh, calculate_normals=False, speedups=speedups,
        )
    except Exception as exc:
        raise STLLoadError(f"Could not decode STL {name!r}: {exc}") from exc

    if len(decoded.vectors) == 0 and not allow_empty:
        raise STLLoadError(f"STL {name!r} contains no triangles.")

    mesh = _index_triangles(decoded.vectors, deduplicate)
    logger.info("Decoded %s: %d vertices, %d faces.", name, mesh.n_vertices, mesh.n_faces)
    return mesh


def decode_stl(
    data: bytes,
    name: str = "upload.stl",
    deduplicate: bool = True,
    allow_empty: bool = True,
) -> Mesh:
    """Decode an STL byte stream (e.g. an upload) into a Mesh.

    Args:
        data: Raw file content, binary or ASCII
        name: Name used in log and error messages
        deduplicate: Merge identical vertices into shared indices
        allow_empty: Accept a stream with zero triangles

    Returns:
        Mesh with float32 vertices in file units (mm)

    Raises:
        STLLoadError: if the stream is empty or corrupt, or has no triangles
            while allow_empty is False
    """
    mesh, _ = decode_stl_with_info(data, name, deduplicate=deduplicate, allow_empty=allow_empty)
    return mesh


def decode_stl_with_info(
    data: bytes,
    name: str = "upload.stl",
    deduplicate: bool = True,
    allow_empty: bool = True,
) -> Tuple[Mesh, STLInfo]:
    """Decode an STL byte stream and return the Mesh together with its metadata.

    Raises:
        STLLoadError: if the stream is empty or corrupt, or has no triangles
            while allow_empty is False
    """
    if not data:
        raise STLLoadError(f"STL {name!r} is empty.")

    stl_format, solid_name = detect_stl_format(data[:1024])
    logger.debug("Decoding STL: %s (format: %s, %d bytes)", name, stl_format.value, len(data))
    if stl_format is not STLFormat.ASCII:
        _check_binary_size(data[:1024], len(data), name)

    # The compiled ASCII reader needs a real file descriptor.
    mesh = _decode(io.BytesIO(data), name, deduplicate, allow_empty, speedups=False)

    info = STLInfo(
        source=name,
        format=stl_format,
        size_bytes=len(data),
        n_triangles=mesh.n_faces,
        n_unique_vertices=mesh.n_vertices,
        solid_name=solid_name,
    )
    return mesh, info


def load_stl(
    filepath: Union[str, Path],
    deduplicate: bool = True,
    allow_empty: bool = True,
) -> Mesh:
    """Load an STL file into a Mesh.

    Args:
        filepath: Path to a binary or ASCII STL file
        deduplicate: Merge identical vertices into shared indices
        allow_empty: Accept a file with zero triangles

    Raises:
        STLLoadError: if the file is missing, unreadable or corrupt
    """
    mesh, _ = load_stl_with_info(filepath, deduplicate=deduplicate, allow_empty=allow_empty)
    return mesh


def load_stl_with_info(
    filepath: Union[str, Path],
    deduplicate: bool = True,
    allow_empty: bool = True,
) -> Tuple[Mesh, STLInfo]:
    """Load an STL file and return the Mesh together with file metadata.

    Raises:
        STLLoadError: if the file is missing, unreadable, empty or corrupt
    """
    filepath = str(filepath)
    try:
        with open(filepath, 'rb') as fh:
            header = fh.read(1024)
            if not header:
                raise STLLoadError(f"STL file {filepath!r} is empty.")
            stl_format, solid_name = detect_stl_format(header)
            size = os.fstat(fh.fileno()).st_size

            logger.info("Loading STL: %s (format: %s, size: %.1f KB)",
                        filepath, stl_format.value, size / 1024)
            if stl_format is not STLFormat.ASCII:
                _check_binary_size(header, size, filepath)

            fh.seek(0)
            mesh = _decode(fh, os.path.basename(filepath), deduplicate, allow_empty)
    except FileNotFoundError:
        raise STLLoadError(f"File not found: {filepath!r}")
    except OSError as exc:
        raise STLLoadError(f"Could not read file {filepath!r}: {exc}") from exc

    info = STLInfo(
        source=filepath,
        format=stl_format,
        size_bytes=size,
        n_triangles=mesh.n_faces,
        n_unique_vertices=mesh.n_vertices,
        solid_name=solid_name,
    )
    return mesh, info
