"""Tests for the slidebridge CLI."""

from __future__ import annotations

import gzip
import json
from pathlib import Path

import httpx
import pytest
import respx
from typer.testing import CliRunner

from slidebridge import __version__
from slidebridge.cli.main import app
from slidebridge.codec.annotations import encode_shapes
from slidebridge.config import settings
from slidebridge.geometry.primitives import Point, Polygon

runner = CliRunner()

BASE = "https://slides.example.org/i/4242/tok3n"
SLIDE_URL = f"{BASE}/SlideScoreMetadata.json"
RECT_WIRE = '[{"type":"rect","corner":{"x":1,"y":2},"size":{"x":3,"y":4}}]'


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def _accept_chunks(request: httpx.Request) -> httpx.Response:
    offset = int(request.headers["Upload-Offset"]) + len(request.content)
    return httpx.Response(204, headers={"Upload-Offset": str(offset)})


# =============================================================================
# Version Command
# =============================================================================


class TestVersionCommand:
    """Tests for `slidebridge version`."""

    def test_version_outputs_version_string(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"slidebridge {__version__}" in result.stdout

    def test_version_json_output(self) -> None:
        result = runner.invoke(app, ["version", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"version": __version__}


# =============================================================================
# Codec Commands
# =============================================================================


class TestEncodeCommand:
    """Tests for `slidebridge encode`."""

    def test_encode_to_stdout(self, tmp_path: Path) -> None:
        shapes = _write(
            tmp_path,
            "shapes.json",
            '[{"kind": "rect", "corner": {"x": 1.7, "y": 2}, "size": {"x": 3, "y": 4}}]',
        )

        result = runner.invoke(app, ["encode", str(shapes)])

        assert result.exit_code == 0
        assert result.stdout.strip() == RECT_WIRE

    def test_encode_to_file(self, tmp_path: Path) -> None:
        shapes = _write(
            tmp_path,
            "shapes.json",
            '[{"kind": "polyline", "points": [{"x": 0, "y": 0}, {"x": 5, "y": 5}]}]',
        )
        output = tmp_path / "wire.json"

        result = runner.invoke(app, ["encode", str(shapes), "--output", str(output)])

        assert result.exit_code == 0
        assert json.loads(output.read_text())[0]["type"] == "polyline"

    def test_encode_invalid_shapes(self, tmp_path: Path) -> None:
        shapes = _write(tmp_path, "shapes.json", '[{"kind": "hexagon"}]')
        result = runner.invoke(app, ["encode", str(shapes)])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_encode_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["encode", str(tmp_path / "missing.json")])
        assert result.exit_code != 0


class TestDecodeCommand:
    """Tests for `slidebridge decode`."""

    def test_decode(self, tmp_path: Path) -> None:
        wire = _write(tmp_path, "wire.json", RECT_WIRE)

        result = runner.invoke(app, ["decode", str(wire)])

        assert result.exit_code == 0
        shapes = json.loads(result.stdout)
        assert shapes == [
            {"kind": "rect", "corner": {"x": 1.0, "y": 2.0}, "size": {"x": 3.0, "y": 4.0}}
        ]

    def test_decode_points_from_markers(self, tmp_path: Path) -> None:
        """Test marker ellipses come back as one point set."""
        markers = (
            '[{"type":"ellipse","center":{"x":5,"y":5},"size":{"x":10,"y":10}},'
            '{"type":"ellipse","center":{"x":9,"y":9},"size":{"x":10,"y":10}}]'
        )
        wire = _write(tmp_path, "wire.json", markers)

        result = runner.invoke(app, ["decode", str(wire), "--points-from-markers"])

        assert result.exit_code == 0
        shapes = json.loads(result.stdout)
        assert len(shapes) == 1
        assert shapes[0]["kind"] == "points"
        assert len(shapes[0]["points"]) == 2

    def test_decode_malformed(self, tmp_path: Path) -> None:
        wire = _write(tmp_path, "wire.json", '{"type": "rect"}')
        result = runner.invoke(app, ["decode", str(wire)])
        assert result.exit_code == 1
        assert "Error" in result.output


# =============================================================================
# Service Commands
# =============================================================================


class TestImportTmasCommand:
    """Tests for `slidebridge import-tmas`."""

    @respx.mock
    def test_import_tmas_json(self) -> None:
        respx.get(f"{BASE}/TMAPositions.json").mock(
            return_value=httpx.Response(
                200,
                json={
                    "rotate": 90,
                    "cores": [
                        {"row": 0, "col": 0, "name": "A1", "x": 100000, "y": 100000},
                        {"row": 0, "col": 1, "name": "A2", "x": 0, "y": 0},
                    ],
                },
            )
        )
        respx.get(f"{BASE}/SlideScoreMetadata.json").mock(
            return_value=httpx.Response(200, json={"Level0Width": 1000, "Level0Height": 1000})
        )

        result = runner.invoke(app, ["import-tmas", "--url", SLIDE_URL, "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert (data["rows"], data["cols"]) == (2, 1)
        assert data["diameter_px"] == 40
        assert [c["name"] for c in data["cores"]] == ["A2", "A1"]
        assert data["cores"][0]["missing"] is True

    @respx.mock
    def test_non_tma_slide(self) -> None:
        respx.get(f"{BASE}/TMAPositions.json").mock(
            return_value=httpx.Response(200, json={"cores": None})
        )
        result = runner.invoke(app, ["import-tmas", "--url", SLIDE_URL])
        assert result.exit_code == 0
        assert "no TMA grid" in result.stdout

    def test_missing_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing slide link is a clear configuration error."""
        monkeypatch.setattr(settings, "SLIDESCORE_METADATA_URL", None)
        result = runner.invoke(app, ["import-tmas", "--json"])
        assert result.exit_code == 1
        assert "SLIDESCORE_METADATA_URL" in json.loads(result.stdout)["error"]

    @respx.mock
    def test_expired_link(self) -> None:
        respx.get(f"{BASE}/TMAPositions.json").mock(return_value=httpx.Response(503))
        result = runner.invoke(app, ["import-tmas", "--url", SLIDE_URL, "--json"])
        assert result.exit_code == 1
        assert "HTTP 503" in json.loads(result.stdout)["error"]


class TestImportAnswersCommand:
    """Tests for `slidebridge import-answers`."""

    @respx.mock
    def test_import_answers_json(self) -> None:
        respx.get(f"{BASE}/Answers.json").mock(
            return_value=httpx.Response(
                200,
                text=f"Tumor area;ana@example.org;{RECT_WIRE};#ff0000\nGrade;ana@example.org;2;\n",
            )
        )

        result = runner.invoke(
            app, ["import-answers", "--url", SLIDE_URL, "--question", "Tumor area", "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data) == 1
        assert data[0]["email"] == "ana@example.org"
        assert data[0]["color"] == 0xFF0000
        assert data[0]["shapes"][0]["kind"] == "rect"

    @respx.mock
    def test_no_answers(self) -> None:
        respx.get(f"{BASE}/Answers.json").mock(return_value=httpx.Response(200, text=""))
        result = runner.invoke(app, ["import-answers", "--url", SLIDE_URL])
        assert result.exit_code == 0
        assert "No shape answers found" in result.stdout


class TestUploadCommand:
    """Tests for `slidebridge upload`."""

    @respx.mock
    def test_inline_upload(self, tmp_path: Path) -> None:
        wire = _write(tmp_path, "wire.json", RECT_WIRE)
        route = respx.post(f"{BASE}/AnnoAnswer.json").mock(return_value=httpx.Response(200))

        result = runner.invoke(
            app,
            [
                "upload",
                str(wire),
                "--question",
                "Tumor area",
                "--url",
                SLIDE_URL,
                "--no-tma",
                "--json",
            ],
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"mode": "inline", "annotation_id": None}
        assert route.called

    @respx.mock
    def test_non_tma_slide_posts_plain_answer(self, tmp_path: Path) -> None:
        """Test the default TMA lookup falls through on a plain slide."""
        wire = _write(tmp_path, "wire.json", RECT_WIRE)
        respx.get(f"{BASE}/TMAPositions.json").mock(
            return_value=httpx.Response(200, json={"cores": None})
        )
        route = respx.post(f"{BASE}/AnnoAnswer.json").mock(return_value=httpx.Response(200))

        result = runner.invoke(
            app, ["upload", str(wire), "--question", "Tumor area", "--url", SLIDE_URL]
        )

        assert result.exit_code == 0
        assert "inline" in result.stdout
        assert b"answer=" in route.calls.last.request.content

    @respx.mock
    def test_large_answer_uses_chunked_upload(self, tmp_path: Path) -> None:
        """Test an answer over the inline limit runs the full chunked protocol."""
        polygons = [
            Polygon(points=tuple(Point(x=i + k, y=i * 2 + k) for k in range(40)))
            for i in range(200)
        ]
        payload = encode_shapes(polygons)
        assert len(payload) > settings.INLINE_ANSWER_LIMIT
        wire = _write(tmp_path, "wire.json", payload)

        create = respx.post(f"{BASE}/CreateAnno2.json").mock(
            return_value=httpx.Response(
                200,
                json={"success": True, "uploadToken": "up", "apiToken": "api", "annoUUID": "a-1"},
            )
        )
        files = respx.post("https://slides.example.org/files").mock(
            return_value=httpx.Response(201, headers={"Location": "/files/f00d"})
        )
        chunks = respx.patch("https://slides.example.org/files/f00d").mock(
            side_effect=_accept_chunks
        )
        finish = respx.post(f"{BASE}/FinishAnno2Upload.json").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        result = runner.invoke(
            app,
            ["upload", str(wire), "-q", "Tumor area", "--url", SLIDE_URL, "--no-tma", "--json"],
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"mode": "chunked", "annotation_id": "a-1"}
        assert create.called and files.called and finish.called
        uploaded = b"".join(call.request.content for call in chunks.calls)
        assert gzip.decompress(uploaded).decode() == payload
        assert b"uploadId=f00d" in finish.calls.last.request.content

    @respx.mock
    def test_refused_session(self, tmp_path: Path) -> None:
        payload = "[" + ",".join([RECT_WIRE[1:-1]] * 2000) + "]"
        wire = _write(tmp_path, "wire.json", payload)
        respx.post(f"{BASE}/CreateAnno2.json").mock(
            return_value=httpx.Response(200, json={"success": False, "error": "not allowed"})
        )

        result = runner.invoke(
            app,
            ["upload", str(wire), "-q", "Tumor area", "--url", SLIDE_URL, "--no-tma", "--json"],
        )

        assert result.exit_code == 1
        assert "not allowed" in json.loads(result.stdout)["error"]

    def test_requires_question(self, tmp_path: Path) -> None:
        wire = _write(tmp_path, "wire.json", RECT_WIRE)
        result = runner.invoke(app, ["upload", str(wire), "--url", SLIDE_URL])
        assert result.exit_code != 0
