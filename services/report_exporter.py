"""
PDF report export for finished analysis sessions.

Renders a summary page and one page per face with Pillow and stores the
result as a multi-page PDF under REPORTS_DIR.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from PIL import Image, ImageDraw, ImageFont

import config
from core.logger import logger
from core.result_formatter import format_analysis_results, parse_session_info, summarize_results
from core.schemas import AnalysisResult, SessionInfo
from core.validators import validate_uuid


# A4 at 100 DPI
PAGE_SIZE = (827, 1169)
PAGE_DPI = 100.0
MARGIN = 60
LINE_HEIGHT = 22
BAR_WIDTH = 300
BAR_HEIGHT = 12

TEXT_COLOR = (33, 37, 41)
MUTED_COLOR = (108, 117, 125)
REAL_COLOR = (40, 167, 69)
FAKE_COLOR = (220, 53, 69)


def report_filename(session_id: str) -> str:
    return f"proofly-report-{session_id}.pdf"


def _percent(value: float) -> str:
    return f"{value * 100:.2f}%"


@dataclass
class ExportResult:
    success: bool
    filename: Optional[str] = None
    path: Optional[Path] = None
    error: Optional[str] = None


class _Page:
    """Cursor-based text layout on a blank page."""

    def __init__(self, font):
        self.image = Image.new("RGB", PAGE_SIZE, (255, 255, 255))
        self.draw = ImageDraw.Draw(self.image)
        self.font = font
        self.y = MARGIN

    def line(self, text: str = "", color=TEXT_COLOR, indent: int = 0):
        self.draw.text((MARGIN + indent, self.y), text, fill=color, font=self.font)
        self.y += LINE_HEIGHT

    def rule(self):
        self.draw.line([(MARGIN, self.y), (PAGE_SIZE[0] - MARGIN, self.y)], fill=MUTED_COLOR, width=1)
        self.y += LINE_HEIGHT // 2

    def bar(self, label: str, real: float, indent: int = 0):
        """Label plus a horizontal bar split into real (green) and fake (red)."""
        x = MARGIN + indent
        self.draw.text((x, self.y), label, fill=TEXT_COLOR, font=self.font)
        bar_x = PAGE_SIZE[0] - MARGIN - BAR_WIDTH
        split = bar_x + int(BAR_WIDTH * max(0.0, min(1.0, real)))
        top = self.y + 4
        self.draw.rectangle([bar_x, top, split, top + BAR_HEIGHT], fill=REAL_COLOR)
        self.draw.rectangle([split, top, bar_x + BAR_WIDTH, top + BAR_HEIGHT], fill=FAKE_COLOR)
        self.y += LINE_HEIGHT

    @property
    def full(self) -> bool:
        return self.y > PAGE_SIZE[1] - MARGIN - LINE_HEIGHT


class ReportExporter:
    """Writes PDF reports for sessions that have at least one face."""

    def __init__(self, output_dir: Path = config.REPORTS_DIR):
        self.output_dir = Path(output_dir)
        self.font = ImageFont.load_default()

    def path_for(self, session_id: str) -> Optional[Path]:
        """Path of an existing report, None if it was never generated."""
        if not validate_uuid(session_id):
            return None
        path = self.output_dir / report_filename(session_id)
        return path if path.is_file() else None

    def export(self, session_id: str, session: Union[SessionInfo, dict]) -> ExportResult:
        try:
            info = parse_session_info(session)
            results = format_analysis_results(info)
            if not results:
                return ExportResult(success=False, error="No face data available in session")

            pages = [self._summary_page(session_id, info, results)]
            for result in results:
                pages.extend(self._face_pages(result))

            self.output_dir.mkdir(parents=True, exist_ok=True)
            filename = report_filename(session_id)
            path = self.output_dir / filename
            pages[0].save(path, "PDF", save_all=True, append_images=pages[1:], resolution=PAGE_DPI)
        except (OSError, ValueError) as e:
            logger.error(f"PDF export failed for session {session_id}: {e}", exc_info=True)
            return ExportResult(success=False, error=str(e))

        logger.info(f"PDF report written: {path} ({len(pages)} pages)")
        return ExportResult(success=True, filename=filename, path=path)

    def _summary_page(self, session_id: str, info: SessionInfo, results: List[AnalysisResult]) -> Image.Image:
        summary = summarize_results(results)
        page = _Page(self.font)
        page.line("Deepfake Analysis Report")
        page.rule()
        page.line(f"Session: {session_id}")
        page.line(f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}")
        if info.sha256:
            page.line(f"SHA-256: {info.sha256}", color=MUTED_COLOR)
        page.line(f"Status: {info.status or 'unknown'}")
        page.line(f"Faces analysed: {summary['total_faces']}")
        page.line()
        page.line("Verdicts")
        page.rule()
        for verdict, count in sorted(summary["verdicts"].items()):
            page.line(f"{verdict}: {count}", indent=20)
        page.line()
        page.line("Faces")
        page.rule()
        for result in results:
            if page.full:
                break
            page.bar(
                f"Face {result.faceIndex}  {result.verdict}  "
                f"(real {_percent(result.ensembleProbability.real)})",
                result.ensembleProbability.real,
            )
        return page.image

    def _face_pages(self, result: AnalysisResult) -> List[Image.Image]:
        page = _Page(self.font)
        pages = [page]
        page.line(f"Face {result.faceIndex}")
        page.rule()
        page.line(f"Verdict: {result.verdict}")
        page.line(f"Real: {_percent(result.ensembleProbability.real)}   "
                  f"Fake: {_percent(result.ensembleProbability.fake)}")
        if result.facePath:
            page.line(f"Storage path: {result.facePath}", color=MUTED_COLOR)
        page.line()
        page.line("Model breakdown")
        page.rule()
        for model in result.modelProbabilities:
            if page.full:
                page = _Page(self.font)
                pages.append(page)
                page.line(f"Face {result.faceIndex} (continued)")
                page.rule()
            page.bar(
                f"{model.model}: real {_percent(model.realProbability)}, "
                f"fake {_percent(model.fakeProbability)}",
                model.realProbability,
                indent=20,
            )
        return [p.image for p in pages]
