"""PDF certificates for redeemed recognition rewards."""

import hashlib
from pathlib import Path
from typing import Dict, List
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle


PAGE_MARGIN = 25 * mm
CONTENT_WIDTH = A4[0] - (PAGE_MARGIN * 2)

styles = getSampleStyleSheet()

TITLE_STYLE = ParagraphStyle(
    name="CertificateTitle",
    parent=styles["Title"],
    fontName="Helvetica-Bold",
    fontSize=24,
    leading=30,
    alignment=1,
    spaceAfter=16,
    textColor=colors.HexColor("#0b5394"),
)

SUBTITLE_STYLE = ParagraphStyle(
    name="CertificateSubtitle",
    fontName="Helvetica",
    fontSize=12,
    leading=16,
    alignment=1,
    textColor=colors.black,
)

HOLDER_STYLE = ParagraphStyle(
    name="CertificateHolder",
    fontName="Helvetica-Bold",
    fontSize=20,
    leading=26,
    alignment=1,
    spaceBefore=10,
    spaceAfter=10,
)

BODY_STYLE = ParagraphStyle(
    name="CertificateBody",
    fontName="Helvetica",
    fontSize=9,
    leading=12,
    textColor=colors.black,
    wordWrap="CJK",
    splitLongWords=True,
)

LABEL_STYLE = ParagraphStyle(name="CertificateLabel", parent=BODY_STYLE, fontName="Helvetica-Bold")


def _para(value: str, style: ParagraphStyle = BODY_STYLE) -> Paragraph:
    text = escape(str(value or "").strip()) or "N/A"
    return Paragraph(text, style)


def _details_table(rows: List[List[str]]) -> Table:
    table = Table(
        [[_para(label, LABEL_STYLE), _para(value)] for label, value in rows],
        colWidths=[50 * mm, CONTENT_WIDTH - (50 * mm)],
        hAlign="CENTER",
    )
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 4),
                ("RIGHTPADDING", (0, 0), (-1, -1), 4),
                ("TOPPADDING", (0, 0), (-1, -1), 4),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )
    return table


def generate_certificate(payload: Dict, output_path: str) -> str:
    """Render the certificate and return the sha256 checksum of the written file."""
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    doc = SimpleDocTemplate(
        output_path,
        pagesize=A4,
        leftMargin=PAGE_MARGIN,
        rightMargin=PAGE_MARGIN,
        topMargin=PAGE_MARGIN,
        bottomMargin=PAGE_MARGIN,
        title=payload.get("title", "Certificate"),
    )

    story: List = [
        Paragraph(escape(payload.get("title", "City Champion Certificate")), TITLE_STYLE),
        Paragraph("This certificate is proudly presented to", SUBTITLE_STYLE),
        Paragraph(escape(payload.get("holder_name", "")), HOLDER_STYLE),
        Paragraph(
            escape(
                "in recognition of outstanding contribution to keeping the city free of "
                "unauthorized and unsafe billboards."
            ),
            SUBTITLE_STYLE,
        ),
        Spacer(1, 18),
        _details_table(
            [
                ["Certificate ID", payload.get("certificate_id", "")],
                ["Issued On (UTC)", payload.get("issued_at", "")],
                ["Contributor Rank", payload.get("rank", "")],
                ["Contributor Level", str(payload.get("level", ""))],
                ["Verified Reports", str(payload.get("verified_reports", 0))],
                ["Points Redeemed", str(payload.get("points_spent", ""))],
                ["Verification Hash", payload.get("verification_hash", "")],
            ]
        ),
        Spacer(1, 12),
        _para(
            "Digitally issued by the Municipal Corporation billboard compliance programme. "
            "The verification hash binds the holder, certificate ID and issue date."
        ),
    ]
    doc.build(story)

    with open(output_path, "rb") as handle:
        return hashlib.sha256(handle.read()).hexdigest()
