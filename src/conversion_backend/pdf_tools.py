"""
PDF manipulation through external command-line tools.

- LibreOffice (``soffice``) converts office documents to PDF
- Ghostscript (``gs``) recompresses PDFs
- qpdf merges PDFs

Every operation stages its inputs in a fresh temporary directory. The
directory is removed when the call returns, whether the tool succeeded or not.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from omegaconf import DictConfig

from .errors import ConversionFailure, ValidationError
from .utils import sanitize_filename

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"

# Ghostscript -dPDFSETTINGS presets
QUALITY_PRESETS: Dict[str, str] = {
    "low": "/screen",
    "medium": "/ebook",
    "high": "/printer",
}


class PdfTools:
    def __init__(
        self,
        soffice_binary: str = "soffice",
        ghostscript_binary: str = "gs",
        qpdf_binary: str = "qpdf",
        timeout_seconds: float = 120,
        default_quality: str = "medium",
    ) -> None:
        self.soffice_binary = soffice_binary
        self.ghostscript_binary = ghostscript_binary
        self.qpdf_binary = qpdf_binary
        self.timeout_seconds = timeout_seconds
        self.default_quality = default_quality

    @classmethod
    def from_config(cls, config: DictConfig) -> "PdfTools":
        pdf = config.pdf
        return cls(
            soffice_binary=str(pdf.soffice_binary),
            ghostscript_binary=str(pdf.ghostscript_binary),
            qpdf_binary=str(pdf.qpdf_binary),
            timeout_seconds=float(pdf.timeout_seconds),
            default_quality=str(pdf.default_quality),
        )

    def _run(self, args: Sequence[str]) -> None:
        try:
            subprocess.run(
                list(args),
                check=True,
                capture_output=True,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as exc:
            logger.error("Command not found: %s", args[0])
            raise ConversionFailure(f"{args[0]} is not installed") from exc
        except subprocess.TimeoutExpired as exc:
            logger.error("Command timed out after %ss: %s", self.timeout_seconds, " ".join(args))
            raise ConversionFailure(f"{Path(args[0]).name} timed out") from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
            logger.error("Command failed (exit %s): %s\n%s", exc.returncode, " ".join(args), stderr)
            raise ConversionFailure(f"{Path(args[0]).name} exited with status {exc.returncode}") from exc

    def convert_to_pdf(self, data: bytes, file_name: str) -> Tuple[bytes, str]:
        """
        Convert an office document to PDF.

        Returns:
            (pdf_bytes, output_file_name)
        """
        safe_name = sanitize_filename(file_name, default_suffix=".docx")
        out_name = f"{Path(safe_name).stem}.pdf"

        with tempfile.TemporaryDirectory(prefix="pdf-convert-") as tmp:
            in_dir = Path(tmp) / "in"
            out_dir = Path(tmp) / "out"
            in_dir.mkdir()
            out_dir.mkdir()
            input_path = in_dir / safe_name
            input_path.write_bytes(data)

            self._run([
                self.soffice_binary, "--headless",
                "--convert-to", "pdf",
                "--outdir", str(out_dir),
                str(input_path),
            ])

            out_path = out_dir / out_name
            if not out_path.exists():
                raise ConversionFailure("Converter did not produce a PDF")
            return out_path.read_bytes(), out_name

    def compress_pdf(self, data: bytes, file_name: str, quality: str | None = None) -> Tuple[bytes, str]:
        """
        Recompress a PDF with Ghostscript.

        Returns:
            (pdf_bytes, output_file_name)
        """
        quality = quality or self.default_quality
        if quality not in QUALITY_PRESETS:
            raise ValidationError(details=[f"Unknown quality '{quality}'"])

        safe_name = sanitize_filename(file_name, default_suffix=".pdf")
        out_name = f"compressed-{safe_name}"

        with tempfile.TemporaryDirectory(prefix="pdf-compress-") as tmp:
            input_path = Path(tmp) / safe_name
            input_path.write_bytes(data)
            out_path = Path(tmp) / out_name

            self._run([
                self.ghostscript_binary,
                "-sDEVICE=pdfwrite",
                "-dCompatibilityLevel=1.4",
                "-dNOPAUSE",
                "-dQUIET",
                "-dBATCH",
                f"-dPDFSETTINGS={QUALITY_PRESETS[quality]}",
                f"-sOutputFile={out_path}",
                str(input_path),
            ])
            return out_path.read_bytes(), out_name

    def merge_pdfs(self, files: List[Tuple[bytes, str]]) -> Tuple[bytes, str]:
        """
        Merge PDFs in the given order.

        Args:
            files: (pdf_bytes, file_name) pairs; at least two

        Returns:
            (pdf_bytes, "merged.pdf")
        """
        if len(files) < 2:
            raise ValidationError(details=["Need at least 2 PDF files to merge"])

        with tempfile.TemporaryDirectory(prefix="pdf-merge-") as tmp:
            input_paths = []
            for index, (data, file_name) in enumerate(files, start=1):
                # Index prefix keeps duplicate names from overwriting each other
                safe_name = sanitize_filename(file_name, fallback=f"file-{index}", default_suffix=".pdf")
                path = Path(tmp) / f"{index:03d}-{safe_name}"
                path.write_bytes(data)
                input_paths.append(str(path))

            out_path = Path(tmp) / "merged.pdf"
            self._run([self.qpdf_binary, "--empty", "--pages", *input_paths, "--", str(out_path)])
            return out_path.read_bytes(), "merged.pdf"
