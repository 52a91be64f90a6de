"""
Tests for the PDF command-line wrappers. ``subprocess.run`` is replaced so no
external tool is needed.
"""

import subprocess
from pathlib import Path

import pytest

from conversion_backend.errors import ConversionFailure, ValidationError
from conversion_backend.pdf_tools import PdfTools


class FakeRunner:
    """Records invocations and writes the output file each tool would produce."""

    def __init__(self, output=b"%PDF-out", fail_with=None):
        self.output = output
        self.fail_with = fail_with
        self.calls = []
        self.work_dirs = []

    def __call__(self, args, **kwargs):
        self.calls.append((args, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

        binary = args[0]
        if binary == "soffice":
            out_dir = Path(args[args.index("--outdir") + 1])
            out_path = out_dir / f"{Path(args[-1]).stem}.pdf"
        elif binary == "gs":
            out_path = Path(next(a for a in args if a.startswith("-sOutputFile=")).split("=", 1)[1])
        else:
            out_path = Path(args[-1])

        self.work_dirs.append(out_path.parent)
        out_path.write_bytes(self.output)
        return subprocess.CompletedProcess(args, 0, b"", b"")


@pytest.fixture
def tools():
    return PdfTools(timeout_seconds=5)


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


class TestConvertToPdf:
    def test_invokes_soffice_headless(self, tools, runner):
        data, name = tools.convert_to_pdf(b"docx-bytes", "Quarterly Report.docx")

        assert data == b"%PDF-out"
        assert name == "Quarterly-Report.pdf"
        args, kwargs = runner.calls[0]
        assert args[:4] == ["soffice", "--headless", "--convert-to", "pdf"]
        assert Path(args[-1]).name == "Quarterly-Report.docx"
        assert kwargs["check"] is True
        assert kwargs["timeout"] == 5

    def test_staging_directory_is_removed(self, tools, runner):
        tools.convert_to_pdf(b"x", "a.docx")
        assert runner.work_dirs
        assert not any(path.exists() for path in runner.work_dirs)

    def test_missing_output_fails(self, tools, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda args, **kwargs: subprocess.CompletedProcess(args, 0))
        with pytest.raises(ConversionFailure):
            tools.convert_to_pdf(b"x", "a.docx")


class TestCompress:
    @pytest.mark.parametrize("quality, preset", [("low", "/screen"), ("medium", "/ebook"), ("high", "/printer")])
    def test_quality_presets(self, tools, runner, quality, preset):
        data, name = tools.compress_pdf(b"%PDF-in", "in.pdf", quality)

        assert data == b"%PDF-out"
        assert name == "compressed-in.pdf"
        args, _ = runner.calls[0]
        assert args[0] == "gs"
        assert f"-dPDFSETTINGS={preset}" in args

    def test_default_quality(self, tools, runner):
        tools.compress_pdf(b"%PDF-in", "in.pdf")
        assert "-dPDFSETTINGS=/ebook" in runner.calls[0][0]

    def test_unknown_quality(self, tools, runner):
        with pytest.raises(ValidationError):
            tools.compress_pdf(b"%PDF-in", "in.pdf", "ultra")
        assert runner.calls == []

    def test_tool_failure_cleans_up(self, tools, monkeypatch):
        staged = []

        def failing(args, **kwargs):
            staged.append(Path(args[-1]).parent)
            raise subprocess.CalledProcessError(1, args, stderr=b"Unrecoverable error")

        monkeypatch.setattr(subprocess, "run", failing)
        with pytest.raises(ConversionFailure) as exc_info:
            tools.compress_pdf(b"%PDF-in", "in.pdf", "low")

        assert "exited with status 1" in str(exc_info.value)
        assert not staged[0].exists()


class TestMerge:
    def test_merges_in_order(self, tools, runner):
        data, name = tools.merge_pdfs([(b"1", "b.pdf"), (b"2", "a.pdf"), (b"3", "b.pdf")])

        assert (data, name) == (b"%PDF-out", "merged.pdf")
        args, _ = runner.calls[0]
        assert args[:3] == ["qpdf", "--empty", "--pages"]
        inputs = [Path(a).name for a in args[3:args.index("--")]]
        assert inputs == ["001-b.pdf", "002-a.pdf", "003-b.pdf"]

    def test_needs_two_files(self, tools, runner):
        with pytest.raises(ValidationError):
            tools.merge_pdfs([(b"1", "only.pdf")])
        assert runner.calls == []


class TestToolErrors:
    def test_missing_binary(self, tools, monkeypatch):
        monkeypatch.setattr(subprocess, "run", FakeRunner(fail_with=FileNotFoundError("qpdf")))
        with pytest.raises(ConversionFailure, match="qpdf is not installed"):
            tools.merge_pdfs([(b"1", "a.pdf"), (b"2", "b.pdf")])

    def test_timeout(self, tools, monkeypatch):
        monkeypatch.setattr(subprocess, "run", FakeRunner(fail_with=subprocess.TimeoutExpired("soffice", 5)))
        with pytest.raises(ConversionFailure, match="timed out"):
            tools.convert_to_pdf(b"x", "a.docx")
