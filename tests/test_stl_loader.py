"""
Unit tests for stl_analysis.io.stl_loader module.

Tests:
- Loading binary and ASCII STL files
- Decoding uploaded bytes
- Format autodetection
- Vertex deduplication
- Error handling (missing, empty, truncated input)
"""

import numpy as np
import pytest

from stl_analysis.geometry.analyzer import analyze
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
from tests.conftest import CUBE_FACES, CUBE_VERTICES, assert_valid_mesh, write_binary_stl


class TestLoadSTL:
    """Tests for load_stl function."""

    def test_load_binary_cube(self, cube_stl_path):
        """Binary cube decodes to 8 shared vertices and 12 faces."""
        mesh = load_stl(cube_stl_path)

        assert_valid_mesh(mesh)
        assert mesh.n_vertices == 8
        assert mesh.n_faces == 12

    def test_load_ascii_cube(self, ascii_cube_stl_path):
        """ASCII cube decodes to the same topology."""
        mesh = load_stl(str(ascii_cube_stl_path))

        assert_valid_mesh(mesh)
        assert mesh.n_vertices == 8
        assert mesh.n_faces == 12

    def test_float32_preserved(self, cube_stl_path):
        """Coordinates keep the precision stored in the file."""
        mesh = load_stl(cube_stl_path)
        assert mesh.vertices.dtype == np.float32

    def test_coordinates_unchanged(self, cube_stl_path):
        """Decoded vertices are exactly the cube corners."""
        mesh = load_stl(cube_stl_path)
        got = {tuple(v) for v in mesh.vertices.tolist()}
        expected = {tuple(v) for v in CUBE_VERTICES.tolist()}
        assert got == expected

    def test_face_corners_match_file(self, cube_stl_path):
        """Each face points at the corners written for it, in order."""
        mesh = load_stl(cube_stl_path)
        np.testing.assert_array_equal(mesh.vertices[mesh.faces], CUBE_VERTICES[CUBE_FACES])

    def test_no_deduplication(self, cube_stl_path):
        """Without merging every face owns three vertices."""
        mesh = load_stl(cube_stl_path, deduplicate=False)

        assert mesh.n_vertices == 36
        assert mesh.faces.tolist()[0] == [0, 1, 2]
        assert mesh.faces.tolist()[-1] == [33, 34, 35]

    def test_dedup_does_not_change_result(self, cube_stl_path):
        """Merging vertices does not change volume or area."""
        merged = analyze(load_stl(cube_stl_path))
        soup = analyze(load_stl(cube_stl_path, deduplicate=False))
        assert merged == soup

    def test_loaded_cube_analysis(self, ascii_cube_stl_path):
        """End to end: 10 mm cube is 1 cm^3 and 6 cm^2."""
        result = analyze(load_stl(ascii_cube_stl_path))
        assert result.volume_cm3 == pytest.approx(1.0, abs=1e-6)
        assert result.surface_area_cm2 == pytest.approx(6.0, abs=1e-6)

    def test_missing_file(self, tmp_path):
        """Missing file raises STLLoadError."""
        with pytest.raises(STLLoadError, match="not found"):
            load_stl(tmp_path / "nope.stl")

    def test_empty_file(self, tmp_path):
        """Zero-byte file raises STLLoadError."""
        path = tmp_path / "empty.stl"
        path.write_bytes(b"")
        with pytest.raises(STLLoadError, match="empty"):
            load_stl(path)

    def test_truncated_binary(self, corrupt_stl_path):
        """Fewer records than announced raises STLLoadError."""
        with pytest.raises(STLLoadError, match="truncated"):
            load_stl(corrupt_stl_path)

    def test_zero_triangles_allowed(self, tmp_path):
        """A binary file announcing no triangles is an empty mesh."""
        path = tmp_path / "none.stl"
        path.write_bytes(b"\x00" * 80 + (0).to_bytes(4, "little"))

        mesh = load_stl(path)

        assert mesh.n_faces == 0
        assert mesh.n_vertices == 0

    def test_zero_triangles_rejected(self, tmp_path):
        """allow_empty=False turns an empty file into an error."""
        path = tmp_path / "none.stl"
        path.write_bytes(b"\x00" * 80 + (0).to_bytes(4, "little"))
        with pytest.raises(STLLoadError, match="no triangles"):
            load_stl(path, allow_empty=False)


class TestLoadSTLWithInfo:
    """Tests for load_stl_with_info function."""

    def test_binary_info(self, cube_stl_path):
        """Info describes the decoded file."""
        mesh, info = load_stl_with_info(cube_stl_path)

        assert isinstance(info, STLInfo)
        assert info.format == STLFormat.BINARY
        assert info.n_triangles == 12
        assert info.n_unique_vertices == mesh.n_vertices == 8
        assert info.size_bytes == 84 + 12 * 50
        assert info.source == str(cube_stl_path)

    def test_ascii_info(self, ascii_cube_stl_path):
        """ASCII files report their solid name."""
        _, info = load_stl_with_info(ascii_cube_stl_path)

        assert info.format == STLFormat.ASCII
        assert info.solid_name == "cube"
        assert info.size_bytes == ascii_cube_stl_path.stat().st_size

    def test_to_dict(self, cube_stl_path):
        """Dictionary form is JSON friendly."""
        _, info = load_stl_with_info(cube_stl_path)
        d = info.to_dict()

        assert d['format'] == 'binary'
        assert d['n_triangles'] == 12
        assert info.size_kb == pytest.approx(info.size_bytes / 1024)


class TestDecodeSTL:
    """Tests for decode_stl (uploaded bytes)."""

    def test_decode_binary_bytes(self, cube_stl_path):
        """Bytes decode the same as the file."""
        mesh = decode_stl(cube_stl_path.read_bytes())

        assert_valid_mesh(mesh)
        assert mesh.n_vertices == 8
        assert mesh.n_faces == 12

    def test_decode_ascii_bytes(self, ascii_cube_stl_path):
        """ASCII uploads work without a file on disk."""
        mesh = decode_stl(ascii_cube_stl_path.read_bytes(), name="cube.stl")
        assert mesh.n_faces == 12

    def test_bytes_and_file_agree(self, tmp_path):
        """Same content, same mesh."""
        path = write_binary_stl(tmp_path / "part.stl", CUBE_VERTICES * 2.5, CUBE_FACES)

        from_file = load_stl(path)
        from_bytes = decode_stl(path.read_bytes())

        np.testing.assert_array_equal(from_file.vertices, from_bytes.vertices)
        np.testing.assert_array_equal(from_file.faces, from_bytes.faces)

    def test_empty_bytes(self):
        """Empty upload raises STLLoadError."""
        with pytest.raises(STLLoadError, match="empty"):
            decode_stl(b"")

    def test_garbage_bytes(self):
        """Short non-STL content raises STLLoadError."""
        with pytest.raises(STLLoadError):
            decode_stl(b"not an stl file")

    def test_truncated_upload(self, corrupt_stl_path):
        """Truncated binary upload raises STLLoadError."""
        with pytest.raises(STLLoadError, match="truncated"):
            decode_stl(corrupt_stl_path.read_bytes(), name="corrupt.stl")

    def test_error_names_upload(self):
        """Error messages carry the upload name."""
        with pytest.raises(STLLoadError, match="bracket.stl"):
            decode_stl(b"", name="bracket.stl")

    def test_decode_with_info(self, ascii_cube_stl_path):
        """Upload metadata comes from the same decode."""
        data = ascii_cube_stl_path.read_bytes()

        mesh, info = decode_stl_with_info(data, name="cube.stl")

        assert info.source == "cube.stl"
        assert info.format == STLFormat.ASCII
        assert info.solid_name == "cube"
        assert info.size_bytes == len(data)
        assert info.n_triangles == mesh.n_faces == 12
        assert info.n_unique_vertices == mesh.n_vertices == 8


class TestDetectFormat:
    """Tests for detect_stl_format function."""

    def test_ascii(self):
        """'solid' followed by facets is ASCII."""
        header = b"solid bracket\n  facet normal 0 0 1\n    outer loop\n"
        fmt, name = detect_stl_format(header)
        assert fmt == STLFormat.ASCII
        assert name == "bracket"

    def test_ascii_without_name(self):
        """Unnamed solid gives no name."""
        fmt, name = detect_stl_format(b"solid\nendsolid\n")
        assert fmt == STLFormat.ASCII
        assert name is None

    def test_binary(self):
        """Arbitrary 80-byte header is binary."""
        header = b"exported by some cad tool".ljust(80, b"\x00") + b"\x0c\x00\x00\x00"
        fmt, name = detect_stl_format(header)
        assert fmt == STLFormat.BINARY
        assert name is None

    def test_binary_starting_with_solid(self):
        """Binary headers may start with 'solid' too."""
        header = b"solid part".ljust(80, b"\x00") + b"\x01\x00\x00\x00" + b"\x00" * 50
        fmt, name = detect_stl_format(header)
        assert fmt == STLFormat.BINARY
        assert name == "part"

    def test_too_short(self):
        """A few bytes that are not ASCII STL are unknown."""
        fmt, _ = detect_stl_format(b"abc")
        assert fmt == STLFormat.UNKNOWN
