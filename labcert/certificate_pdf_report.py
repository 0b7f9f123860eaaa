from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any, BinaryIO
from xml.sax.saxutils import escape

from .chart_render import ChartRenderError, render_chart_png

logger = logging.getLogger(__name__)

# Glyphs missing from the standard Type 1 fonts.
PDF_TEXT_REPLACEMENTS = {"≥": ">=", "≤": "<="}


class CertificatePdfReportError(RuntimeError):
    pass


def _pdf_text(value: Any) -> str:
    text = "-" if value is None else str(value)
    for source, target in PDF_TEXT_REPLACEMENTS.items():
        text = text.replace(source, target)
    return text


def _para_text(value: Any) -> str:
    return escape(_pdf_text(value))


class CertificatePdfReportBuilder:
    SECTION_TITLES = (
        "1. Datos de la Muestra",
        "2. Resultados Obtenidos",
        "3. Curva de Resultados",
        "4. Detalle por Probeta",
        "5. Evidencia Visual",
        "6. Firmas Autorizadas",
        "7. Cadena Original y Sello",
    )

    def build_pdf(self, *, certificate: dict[str, Any], output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self._build(certificate, str(output_path))
        logger.info("Rendered certificate PDF to %s", output_path)
        return output_path

    def build_pdf_bytes(self, *, certificate: dict[str, Any]) -> bytes:
        buffer = io.BytesIO()
        self._build(certificate, buffer)
        return buffer.getvalue()

    def _build(self, certificate: dict[str, Any], target: str | BinaryIO) -> None:
        try:
            from reportlab.graphics.barcode.qr import QrCodeWidget
            from reportlab.graphics.shapes import Drawing
            from reportlab.lib import colors
            from reportlab.lib.pagesizes import A4
            from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
            from reportlab.lib.units import mm
            from reportlab.platypus import (
                Image,
                PageBreak,
                Paragraph,
                SimpleDocTemplate,
                Spacer,
                Table,
                TableStyle,
            )
        except Exception as exc:  # pragma: no cover - environment dependent
            raise CertificatePdfReportError(
                "reportlab is required for certificate PDF export. Install reportlab."
            ) from exc

        if not isinstance(certificate, dict):
            raise CertificatePdfReportError(
                f"Certificate model must be a dict, got {type(certificate).__name__}."
            )

        header = certificate.get("header", {})
        company = header.get("company", {})
        sample_info = certificate.get("sample_info", {})
        template = certificate.get("template", {})
        labels = certificate.get("labels", {})
        signature = certificate.get("signature", {})
        footer = certificate.get("footer", {})

        try:
            primary = colors.HexColor(template.get("primaryColor") or "#000000")
        except ValueError:
            primary = colors.black

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "CertTitle",
            parent=styles["Heading1"],
            fontSize=15,
            leading=19,
            textColor=primary,
            spaceAfter=4,
        )
        section_style = ParagraphStyle(
            "CertSection",
            parent=styles["Heading2"],
            fontSize=11,
            leading=14,
            textColor=primary,
            spaceBefore=8,
            spaceAfter=4,
        )
        text_style = ParagraphStyle(
            "CertText",
            parent=styles["BodyText"],
            fontSize=8.5,
            leading=11,
            textColor=colors.HexColor("#22324A"),
        )
        mono_style = ParagraphStyle(
            "CertMono",
            parent=text_style,
            fontName="Courier",
            fontSize=7,
            leading=9,
            wordWrap="CJK",
        )

        doc = SimpleDocTemplate(
            target,
            pagesize=A4,
            leftMargin=16 * mm,
            rightMargin=16 * mm,
            topMargin=14 * mm,
            bottomMargin=14 * mm,
            pageCompression=0,
            title=_pdf_text(header.get("title")),
            author=_pdf_text(company.get("name")),
        )

        base_table_style = [
            ("BOX", (0, 0), (-1, -1), 0.7, colors.HexColor("#A6B7CF")),
            ("INNERGRID", (0, 0), (-1, -1), 0.35, colors.HexColor("#CBD7E7")),
            ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("LEFTPADDING", (0, 0), (-1, -1), 4),
            ("RIGHTPADDING", (0, 0), (-1, -1), 4),
            ("TOPPADDING", (0, 0), (-1, -1), 3),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
        ]
        header_row_style = [
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#EEF2F7")),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ]

        identity_rows = [
            [_pdf_text(company.get("name")), _pdf_text(header.get("title"))],
            [_pdf_text(company.get("address")), _pdf_text(header.get("code"))],
            [_pdf_text(company.get("city")), _pdf_text(str(header.get("status") or "").upper())],
            [f"Tel: {_pdf_text(company.get('phone'))}", _pdf_text(company.get("email"))],
        ]
        identity_table = Table(identity_rows, colWidths=[110 * mm, 68 * mm], hAlign="LEFT")
        identity_table.setStyle(
            TableStyle(
                [
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, 0), 11),
                    ("FONTSIZE", (0, 1), (-1, -1), 8),
                    ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                    ("LINEBELOW", (0, -1), (-1, -1), 1.2, primary),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
                ]
            )
        )

        info_rows = [
            ["Cliente", _pdf_text(sample_info.get("client")), "Proyecto", _pdf_text(sample_info.get("project"))],
            ["Ubicación", _pdf_text(sample_info.get("location")), "Material", _pdf_text(sample_info.get("material"))],
            [
                "Fecha Recepción",
                _pdf_text(sample_info.get("received_at")),
                "Fecha Ensayo",
                _pdf_text(sample_info.get("tested_at")),
            ],
            ["Norma", _pdf_text(sample_info.get("standard_code")), "Proveedor", _pdf_text(sample_info.get("provider"))],
        ]
        info_table = Table(info_rows, colWidths=[28 * mm, 61 * mm, 28 * mm, 61 * mm], hAlign="LEFT")
        info_table.setStyle(
            TableStyle(
                base_table_style
                + [
                    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                    ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold"),
                ]
            )
        )

        compliance_rows = [["Parámetro", "Unidad", "Especificación", "Resultado", "Cumplimiento"]]
        status_rows: list[tuple[int, str]] = []
        for row_index, row in enumerate(certificate.get("compliance_table", []), start=1):
            compliance_rows.append(
                [
                    Paragraph(_para_text(row.get("name")), text_style),
                    _pdf_text(row.get("unit")),
                    _pdf_text(row.get("specification")),
                    Paragraph(_para_text(row.get("value")), text_style),
                    _pdf_text(row.get("badge")),
                ]
            )
            status_rows.append((row_index, str(row.get("status", "n/a"))))
        if len(compliance_rows) == 1:
            compliance_rows.append(["-", "-", "-", "-", "-"])

        compliance_table = Table(
            compliance_rows,
            colWidths=[58 * mm, 20 * mm, 34 * mm, 38 * mm, 28 * mm],
            repeatRows=1,
            hAlign="LEFT",
        )
        compliance_style = TableStyle(base_table_style + header_row_style + [("ALIGN", (4, 0), (4, -1), "CENTER")])
        status_colors = {
            "pass": colors.HexColor("#EAF8ED"),
            "fail": colors.HexColor("#FDE8E9"),
        }
        for row_index, status in status_rows:
            if status in status_colors:
                compliance_style.add("BACKGROUND", (4, row_index), (4, row_index), status_colors[status])
        compliance_table.setStyle(compliance_style)

        story: list[Any] = [
            identity_table,
            Spacer(1, 6),
            Paragraph(self.SECTION_TITLES[0], section_style),
            info_table,
            Paragraph(self.SECTION_TITLES[1], section_style),
            compliance_table,
        ]

        chart = certificate.get("chart")
        if chart:
            try:
                png_bytes = render_chart_png(chart, color=template.get("primaryColor") or "#102542")
            except ChartRenderError as exc:
                logger.warning("Skipping chart in certificate %s: %s", header.get("code"), exc)
            else:
                story.extend(
                    [
                        Paragraph(self.SECTION_TITLES[2], section_style),
                        Image(io.BytesIO(png_bytes), width=160 * mm, height=85 * mm),
                    ]
                )

        detail = certificate.get("specimen_detail")
        if detail and detail.get("rows"):
            columns = detail.get("columns", [])
            detail_rows = [
                ["#"]
                + [
                    f"{column.get('name')} ({column.get('unit')})" if column.get("unit") else str(column.get("name"))
                    for column in columns
                ]
            ]
            flagged_cells: list[tuple[int, int]] = []
            for row_index, row in enumerate(detail["rows"], start=1):
                cells = [str(row.get("index", row_index))]
                for column_index, cell in enumerate(row.get("cells", []), start=1):
                    text = _pdf_text(cell.get("display"))
                    if cell.get("out_of_range"):
                        text = f"{text}\n{_pdf_text(cell.get('marker') or labels.get('out_of_range'))}"
                        flagged_cells.append((column_index, row_index))
                    cells.append(text)
                detail_rows.append(cells)
            available = 168 * mm
            column_width = available / max(len(columns), 1)
            detail_table = Table(
                detail_rows,
                colWidths=[10 * mm] + [column_width] * len(columns),
                repeatRows=1,
                hAlign="LEFT",
            )
            detail_style = TableStyle(base_table_style + header_row_style + [("ALIGN", (0, 0), (-1, -1), "CENTER")])
            for column_index, row_index in flagged_cells:
                detail_style.add("TEXTCOLOR", (column_index, row_index), (column_index, row_index), colors.HexColor("#B91C1C"))
            detail_table.setStyle(detail_style)
            story.extend([Paragraph(self.SECTION_TITLES[3], section_style), detail_table])

        story.append(PageBreak())

        story.append(Paragraph(self.SECTION_TITLES[4], section_style))
        evidence = certificate.get("photographic_evidence") or []
        if evidence:
            for index, reference in enumerate(evidence, start=1):
                story.append(Paragraph(f"{index}. {_para_text(reference)}", mono_style))
        else:
            story.append(Paragraph("-", text_style))

        story.append(Paragraph(self.SECTION_TITLES[5], section_style))
        signatories = certificate.get("signatories") or []
        signature_cells = [
            [
                "\n\n______________________________\n"
                + "\n".join(
                    part
                    for part in (
                        _pdf_text(item.get("name")) if item.get("name") else "",
                        _pdf_text(item.get("role")),
                        f"Céd. {_pdf_text(item.get('license'))}" if item.get("license") else "",
                    )
                    if part
                )
                for item in signatories
            ]
        ]
        if signatories:
            signature_table = Table(signature_cells, colWidths=[178 * mm / len(signatories)] * len(signatories))
            signature_table.setStyle(
                TableStyle(
                    [
                        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
                        ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
                        ("FONTSIZE", (0, 0), (-1, -1), 8),
                    ]
                )
            )
            story.append(signature_table)

        story.extend(
            [
                Paragraph(self.SECTION_TITLES[6], section_style),
                Paragraph(_para_text(signature.get("original_chain")), mono_style),
                Spacer(1, 4),
                Paragraph(f"Sello: {_para_text(signature.get('seal'))}", mono_style),
                Paragraph(f"Firma: {_para_text(signature.get('signature'))}", mono_style),
            ]
        )
        if signature.get("integrity_token"):
            story.append(Paragraph(f"HMAC-SHA256: {_para_text(signature.get('integrity_token'))}", mono_style))

        qr_payload = signature.get("qr_payload") or signature.get("validation_url")
        if template.get("showQr", True) and qr_payload:
            widget = QrCodeWidget(str(qr_payload))
            x1, y1, x2, y2 = widget.getBounds()
            size = 32 * mm
            drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
            drawing.add(widget)
            story.extend([Spacer(1, 6), drawing])
        story.append(Paragraph(_para_text(signature.get("validation_url")), mono_style))

        story.extend(
            [
                Spacer(1, 8),
                Paragraph(_para_text(footer.get("disclaimer")), text_style),
                Paragraph(_para_text(footer.get("non_cryptographic_notice")), text_style),
            ]
        )

        watermark = header.get("watermark") if template.get("showWatermark", True) else None
        show_border = bool(template.get("showBorder", True))

        def decorate_page(canvas, page_doc) -> None:
            canvas.saveState()
            width, height = A4
            if show_border:
                canvas.setStrokeColor(primary)
                canvas.setLineWidth(0.8)
                canvas.rect(8 * mm, 8 * mm, width - 16 * mm, height - 16 * mm)
            if watermark:
                canvas.setFillColor(colors.Color(0.85, 0.85, 0.85, alpha=0.35))
                canvas.setFont("Helvetica-Bold", 64)
                canvas.translate(width / 2, height / 2)
                canvas.rotate(45)
                canvas.drawCentredString(0, 0, _pdf_text(watermark))
            canvas.restoreState()

        try:
            doc.build(story, onFirstPage=decorate_page, onLaterPages=decorate_page)
        except Exception as exc:
            raise CertificatePdfReportError(f"Failed to generate certificate PDF: {exc}") from exc
