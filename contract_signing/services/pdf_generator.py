"""PDF export of signed documents, with the digital certification block"""

import base64
import binascii
import html
import io
import logging
from pathlib import Path
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from contract_signing.models.certification import CertificationRecord
from contract_signing.models.contract import Contract
from contract_signing.services.document_types import (
    CONTRACTOR_LINE,
    CONTRACTOR_SIGNATORY,
    SIGNATURE_CLAUSE,
    SIGNATURE_MARKER,
    document_body,
    get_kind,
)
from contract_signing.utils.portuguese import format_datetime

logger = logging.getLogger(__name__)

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


def decode_data_url(data_url: Optional[str]) -> Optional[bytes]:
    """Bytes of a ``data:image/png;base64,...`` signature, or None."""
    if not data_url or "," not in data_url:
        return None
    try:
        return base64.b64decode(data_url.split(",", 1)[1], validate=True)
    except (binascii.Error, ValueError):
        return None


class SignedDocumentPDF:
    """Render a signed contract and its certification record to A4 PDF"""

    def __init__(self):
        self.styles = {
            'brand': ParagraphStyle('Brand', fontName=FONT_BOLD, fontSize=14,
                textColor=colors.HexColor('#1d4ed8')),
            'small': ParagraphStyle('Small', fontName=FONT, fontSize=8, textColor=colors.gray),
            'title': ParagraphStyle('Title', fontName=FONT_BOLD, fontSize=14, alignment=TA_CENTER,
                spaceBefore=12, spaceAfter=12, textColor=colors.HexColor('#1d4ed8')),
            'notice': ParagraphStyle('Notice', fontName='Helvetica-Oblique', fontSize=9, leading=12,
                backColor=colors.HexColor('#fefce8'), borderColor=colors.HexColor('#fde047'),
                borderWidth=0.5, borderPadding=6, spaceAfter=10),
            'normal': ParagraphStyle('Normal', fontName=FONT, fontSize=10, leading=14,
                alignment=TA_JUSTIFY, spaceAfter=8),
            'section': ParagraphStyle('Section', fontName=FONT_BOLD, fontSize=11, spaceBefore=16,
                spaceAfter=8, textColor=colors.HexColor('#1e40af')),
            'mono': ParagraphStyle('Mono', fontName='Courier', fontSize=8, leading=10),
        }

    def generate(
        self,
        contract: Contract,
        certification: Optional[CertificationRecord],
        output_path: str,
        verification_url: Optional[str] = None,
    ) -> str:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        doc = SimpleDocTemplate(output_path, pagesize=A4,
            rightMargin=2*cm, leftMargin=2*cm, topMargin=1.5*cm, bottomMargin=1.5*cm)
        doc.build(self._build_story(contract, certification, verification_url))
        logger.info(f"Exported contract {contract.id} to {output_path}")
        return output_path

    def _build_story(self, contract, certification, verification_url) -> list:
        kind = get_kind(contract.document_type)
        story = [
            Paragraph("WebMarcas", self.styles['brand']),
            Paragraph("www.webmarcas.com.br · contato@webmarcas.com.br", self.styles['small']),
            Paragraph(html.escape(kind.title), self.styles['title']),
        ]

        if kind.legal_notice:
            for paragraph in kind.legal_notice.split("\n\n"):
                story.append(Paragraph(html.escape(paragraph), self.styles['notice']))

        if contract.is_signed and contract.signed_document:
            body = document_body(contract.signed_document)
        else:
            body = contract.content.replace(SIGNATURE_MARKER, "").strip()
        for paragraph in body.split("\n\n"):
            if paragraph.strip():
                text = html.escape(paragraph.strip()).replace("\n", "<br/>")
                story.append(Paragraph(text, self.styles['normal']))

        story.append(Spacer(1, 16))
        story.append(Paragraph(html.escape(SIGNATURE_CLAUSE), self.styles['normal']))
        story.append(self._signature_table(contract, kind))

        if certification is not None:
            story.extend(self._certification(certification, verification_url))
        return story

    def _signature_table(self, contract: Contract, kind) -> Table:
        image_bytes = decode_data_url(contract.signature_image)
        client_mark = (
            Image(io.BytesIO(image_bytes), width=6*cm, height=2*cm, kind='proportional')
            if image_bytes else Paragraph("<i>Aguardando assinatura...</i>", self.styles['small'])
        )
        data = [
            ["Assinatura autorizada:", "Contratante:"],
            [Paragraph(html.escape(CONTRACTOR_LINE), self.styles['small']),
             Paragraph(html.escape(kind.signer_line(contract.signer)), self.styles['small'])],
            ["", client_mark],
            [CONTRACTOR_SIGNATORY, contract.signer.name],
        ]
        table = Table(data, colWidths=[8*cm, 8*cm])
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, -1), FONT),
            ('FONTNAME', (0, 0), (-1, 0), FONT_BOLD),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LINEBELOW', (0, 2), (-1, 2), 0.8, colors.black),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))
        return table

    def _certification(self, record: CertificationRecord, verification_url: Optional[str]) -> list:
        pending = "Pendente de confirmação"
        rows = [
            ["Hash SHA-256", Paragraph(record.content_hash, self.styles['mono'])],
            ["Data/Hora da Assinatura", format_datetime(record.captured_at)],
            ["ID da Transação", Paragraph(html.escape(record.tx_id or pending), self.styles['mono'])],
            ["Rede Blockchain", record.network or pending],
            ["IP do Signatário", record.signer_ip or "unknown"],
        ]
        table = Table(rows, colWidths=[5*cm, 11*cm])
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), FONT_BOLD),
            ('FONTNAME', (1, 0), (1, -1), FONT),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#eff6ff')),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ]))
        story = [
            Paragraph("CERTIFICAÇÃO DIGITAL E VALIDADE JURÍDICA", self.styles['section']),
            table,
        ]
        if verification_url:
            story.append(Spacer(1, 6))
            story.append(Paragraph(
                f"Verifique a autenticidade em: {html.escape(verification_url)}", self.styles['small']))
        return story


def export_signed_pdf(
    contract: Contract,
    certification: Optional[CertificationRecord],
    output_path: str,
    verification_url: Optional[str] = None,
) -> str:
    """Export a signed contract to PDF"""
    return SignedDocumentPDF().generate(contract, certification, output_path, verification_url)
