"""
Pytest configuration and fixtures for stl_analysis.

Provides:
- Hand-built meshes (cube, tetrahedron, open box) for engine tests
- STL files written with numpy-stl (binary and ASCII)
- Assertion helpers
"""

import logging
from pathlib import Path

import numpy as np
import pytest
from stl import mesh as stl_mesh

from stl_analysis.geometry.analyzer import Mesh
from stl_analysis.logging_config import PACKAGE_LOGGER


# ============================================================================
# Geometry
# ============================================================================

CUBE_VERTICES = np.array([
    [0, 0, 0], [10, 0, 0], [10, 10, 0], [0, 10, 0],      # bottom
    [0, 0, 10], [10, 0, 10], [10, 10, 10], [0, 10, 10],  # top
], dtype=np.float32)

# Outward (counter-clockwise seen from outside) winding.
CUBE_FACES = np.array([
    [0, 2, 1], [0, 3, 2],  # bottom  (-z)
    [4, 5, 6], [4, 6, 7],  # top     (+z)
    [0, 1, 5], [0, 5, 4],  # front   (-y)
    [3, 7, 6], [3, 6, 2],  # back    (+y)
    [0, 4, 7], [0, 7, 3],  # left    (-x)
    [1, 2, 6], [1, 6, 5],  # right   (+x)
], dtype=np.int64)

TETRA_VERTICES = np.array([
    [0, 0, 0], [10, 0, 0], [0, 10, 0], [0, 0, 10],
], dtype=np.float32)

TETRA_FACES = np.array([
    [0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3],
], dtype=np.int64)


def make_cube_mesh(size: float = 10.0, offset=(0.0, 0.0, 0.0)) -> Mesh:
    """Closed axis-aligned cube [0, size]^3 shifted by offset, outward winding."""
    vertices = CUBE_VERTICES.astype(np.float64) * (size / 10.0) + np.asarray(offset)
    return Mesh(vertices=vertices, faces=CUBE_FACES)


@pytest.fixture
def cube_factory():
    """Build scaled or translated cubes: cube_factory(size=..., offset=...)."""
    return make_cube_mesh


@pytest.fixture
def cube_mesh() -> Mesh:
    """10 mm cube: 1 cm^3, 6 cm^2."""
    return Mesh(vertices=CUBE_VERTICES, faces=CUBE_FACES)


@pytest.fixture
def tetra_mesh() -> Mesh:
    """Right tetrahedron with 10 mm legs."""
    return Mesh(vertices=TETRA_VERTICES, faces=TETRA_FACES)


@pytest.fixture
def open_box_mesh() -> Mesh:
    """Cube with the top two faces removed."""
    return Mesh(vertices=CUBE_VERTICES, faces=np.delete(CUBE_FACES, [2, 3], axis=0))


@pytest.fixture
def empty_mesh() -> Mesh:
    return Mesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=np.int64))


# ============================================================================
# STL files
# ============================================================================

def write_binary_stl(path: Path, vertices: np.ndarray, faces: np.ndarray) -> Path:
    """Write an indexed mesh as binary STL with numpy-stl."""
    m = stl_mesh.Mesh(np.zeros(len(faces), dtype=stl_mesh.Mesh.dtype))
    for i, face in enumerate(faces):
        m.vectors[i] = vertices[face]
    m.save(str(path))
    return path


def write_ascii_stl(path: Path, vertices: np.ndarray, faces: np.ndarray,
                    name: str = "part") -> Path:
    """Write an indexed mesh as ASCII STL by hand."""
    with open(path, 'w') as f:
        f.write(f"solid {name}\n")
        for face in faces:
            v0, v1, v2 = (vertices[i].astype(np.float64) for i in face)
            normal = np.cross(v1 - v0, v2 - v0)
            norm = np.linalg.norm(normal)
            normal = normal / norm if norm > 1e-12 else np.array([0.0, 0.0, 1.0])
            f.write(f"  facet normal {normal[0]} {normal[1]} {normal[2]}\n")
            f.write("    outer loop\n")
            for v in (v0, v1, v2):
                f.write(f"      vertex {v[0]} {v[1]} {v[2]}\n")
            f.write("    endloop\n")
            f.write("  endfacet\n")
        f.write(f"endsolid {name}\n")
    return path


@pytest.fixture
def cube_stl_path(tmp_path: Path) -> Path:
    """Binary STL of the 10 mm cube."""
    return write_binary_stl(tmp_path / "cube.stl", CUBE_VERTICES, CUBE_FACES)


@pytest.fixture
def ascii_cube_stl_path(tmp_path: Path) -> Path:
    """ASCII STL of the 10 mm cube."""
    return write_ascii_stl(tmp_path / "ascii_cube.stl", CUBE_VERTICES, CUBE_FACES, name="cube")


@pytest.fixture
def open_box_stl_path(tmp_path: Path) -> Path:
    """Binary STL of the cube without its top."""
    faces = np.delete(CUBE_FACES, [2, 3], axis=0)
    return write_binary_stl(tmp_path / "open_box.stl", CUBE_VERTICES, faces)


@pytest.fixture
def corrupt_stl_path(tmp_path: Path) -> Path:
    """Binary header announcing 1000 triangles followed by a few bytes."""
    path = tmp_path / "corrupt.stl"
    path.write_bytes(b"\x00" * 80 + (1000).to_bytes(4, "little") + b"\x01" * 20)
    return path


# ============================================================================
# Assertion helpers
# ============================================================================

def assert_valid_mesh(mesh: Mesh) -> None:
    """Assert the decoder contract: shapes and index bounds."""
    assert mesh.vertices.ndim == 2
    assert mesh.vertices.shape[1] == 3
    assert mesh.faces.ndim == 2
    assert mesh.faces.shape[1] == 3
    assert np.issubdtype(mesh.faces.dtype, np.integer)
    if mesh.n_faces:
        assert np.all(mesh.faces >= 0)
        assert np.all(mesh.faces < mesh.n_vertices)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging() so records reach caplog in later tests."""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
