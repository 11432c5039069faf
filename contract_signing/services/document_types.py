"""Per-document-type rendering rules.

Each DocumentType has one DocumentKind that knows its title, optional
legal notice, the channels a signature request may use, how to render a
template body and how to wrap a body for presentation. Adding a document
type means adding one DocumentKind to KINDS.
"""

import html
import re
from typing import Dict, FrozenSet, List, Optional, Tuple

from contract_signing.models.certification import CertificationRecord
from contract_signing.models.contract import SignerSnapshot
from contract_signing.models.dispatch import Channel
from contract_signing.models.template import DocumentType, VariableBag
from contract_signing.utils.portuguese import format_datetime

PLACEHOLDER = re.compile(r"\{\{([^{}]*)\}\}")
SIGNATURE_MARKER = "{contract_signature}"

CONTRACTOR_LINE = "WebMarcas Patentes - CNPJ/MF sob o nº 39.528.012/0001-29"
CONTRACTOR_SIGNATORY = "Davilys Danques de Oliveira Cunha"
SIGNATURE_CLAUSE = (
    "Por estarem justas e contratadas, as partes assinam o presente de igual teor e forma, "
    "de forma digital válido juridicamente."
)
DISTRATO_NOTICE = (
    "Os termos deste instrumento aplicam-se apenas a contratações com negociações "
    "personalizadas, tratadas diretamente com a equipe comercial da Web Marcas e Patentes Eireli."
    "\n\n"
    "Os termos aqui celebrados são adicionais ao \"Contrato de Prestação de Serviços e Gestão de "
    "Pagamentos e Outras Avenças\" com aceite integral no momento do envio da Proposta."
)

ALL_CHANNELS = frozenset(Channel)


def render_placeholders(content: str, bag: VariableBag) -> Tuple[str, List[str]]:
    """Replace every {{name}} with its bag value, or "" when absent.

    Matching is exact and case-sensitive. Returns the body and the names
    that had no value, in first-seen order.
    """
    missing: List[str] = []

    def _value(match: "re.Match") -> str:
        name = match.group(1)
        if name not in bag:
            if name not in missing:
                missing.append(name)
            return ""
        # a value must not reintroduce a placeholder
        return PLACEHOLDER.sub("", bag.get(name))

    return PLACEHOLDER.sub(_value, content), missing


CONTENT_SECTION = re.compile(r'<section class="content">(.*?)</section>', re.S)
PARAGRAPH = re.compile(r"<p>(.*?)</p>", re.S)


def content_section(body: str) -> str:
    """The body as it appears inside a wrapped document."""
    body = body.replace(SIGNATURE_MARKER, "").strip()
    return f'<section class="content">{_paragraphs(body)}</section>'


def document_body(document: str) -> str:
    """Plain-text body of a wrapped document, one blank line between paragraphs."""
    match = CONTENT_SECTION.search(document)
    if not match:
        return ""
    return "\n\n".join(
        html.unescape(p.replace("<br/>", "\n")) for p in PARAGRAPH.findall(match.group(1))
    )


def _paragraphs(text: str, css_class: str = "") -> str:
    attr = f' class="{css_class}"' if css_class else ""
    parts = [p.strip() for p in text.split("\n\n") if p.strip()]
    return "\n".join(
        f"<p{attr}>{html.escape(p).replace(chr(10), '<br/>')}</p>" for p in parts
    )


class DocumentKind:
    """Rendering rules for one document type"""

    document_type: DocumentType
    title: str = "DOCUMENTO"
    display_name: str = "Documento"
    legal_notice: Optional[str] = None
    channels_allowed: FrozenSet[Channel] = ALL_CHANNELS

    def render(self, content: str, bag: VariableBag) -> Tuple[str, List[str]]:
        return render_placeholders(content, bag)

    def signer_line(self, signer: SignerSnapshot) -> str:
        line = signer.name or "Nome do Representante"
        if signer.tax_id:
            line += f", CPF/CNPJ sob o nº {signer.tax_id}"
        return line

    def wrap(
        self,
        body: str,
        signer: SignerSnapshot,
        signed: bool = False,
        signature_image: Optional[str] = None,
        certification: Optional[CertificationRecord] = None,
        verification_url: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> str:
        """Compose the presentation document.

        Pure and deterministic: identical inputs give identical output,
        which is what gets hashed at signing time. ``document_id`` ties the
        signed bytes to one contract so equal texts never share a digest.
        """
        id_attr = f' data-id="{html.escape(document_id, quote=True)}"' if document_id else ""
        parts = [
            '<article class="document"%s data-type="%s" data-signed="%s">'
            % (id_attr, self.document_type.value, "true" if signed else "false"),
            '<header class="letterhead"><strong>WebMarcas</strong>'
            "<span>www.webmarcas.com.br</span><span>contato@webmarcas.com.br</span></header>",
            f"<h1>{html.escape(self.title)}</h1>",
        ]
        if self.legal_notice:
            parts.append(f'<aside class="legal-notice">{_paragraphs(self.legal_notice)}</aside>')
        parts.append(content_section(body))

        parts.append('<section class="signatures">')
        parts.append(f"<p>{html.escape(SIGNATURE_CLAUSE)}</p>")
        parts.append(
            '<div class="signature contractor"><p>Assinatura autorizada:</p>'
            f"<p>{html.escape(CONTRACTOR_LINE)}</p><p>{html.escape(CONTRACTOR_SIGNATORY)}</p></div>"
        )
        if signed and signature_image:
            mark = f'<img alt="Assinatura do Cliente" src="{html.escape(signature_image, quote=True)}"/>'
        else:
            mark = "<p><em>Aguardando assinatura...</em></p>"
        parts.append(
            '<div class="signature client"><p>Contratante:</p>'
            f"<p>{html.escape(self.signer_line(signer))}</p>{mark}</div>"
        )
        parts.append("</section>")

        if certification is not None:
            parts.append(self._certification_block(certification, verification_url))
        parts.append("</article>")
        return "\n".join(parts)

    def attach_certification(
        self,
        signed_document: str,
        certification: CertificationRecord,
        verification_url: Optional[str] = None,
    ) -> str:
        """The frozen signed document with the certification block appended.

        The block carries the digest, so it sits outside the hashed bytes.
        """
        head, sep, tail = signed_document.rpartition("</article>")
        if not sep:
            return signed_document + "\n" + self._certification_block(certification, verification_url)
        return head + self._certification_block(certification, verification_url) + "\n" + sep + tail

    def _certification_block(self, record: CertificationRecord, verification_url: Optional[str]) -> str:
        network = record.network or "Pendente de confirmação"
        tx_id = record.tx_id or "Pendente de confirmação"
        rows = [
            ("Hash SHA-256", record.content_hash),
            ("Data/Hora da Assinatura", format_datetime(record.captured_at)),
            ("ID da Transação", tx_id),
            ("Rede Blockchain", network),
            ("IP do Signatário", record.signer_ip or "unknown"),
        ]
        items = "".join(
            f"<dt>{html.escape(label)}</dt><dd>{html.escape(value)}</dd>" for label, value in rows
        )
        link = ""
        if verification_url:
            link = f'<p>Verifique em: <a href="{html.escape(verification_url, quote=True)}">{html.escape(verification_url)}</a></p>'
        return (
            '<section class="certification"><h3>CERTIFICAÇÃO DIGITAL E VALIDADE JURÍDICA</h3>'
            f"<dl>{items}</dl>{link}</section>"
        )


class ContractKind(DocumentKind):
    document_type = DocumentType.CONTRACT
    title = "CONTRATO PARTICULAR DE PRESTAÇÃO DE SERVIÇOS"
    display_name = "Contrato"


class ProcuracaoKind(DocumentKind):
    document_type = DocumentType.PROCURACAO
    title = "PROCURAÇÃO"
    display_name = "Procuração"
    channels_allowed = frozenset({Channel.EMAIL, Channel.WHATSAPP, Channel.IN_APP})


class DistratoMultaKind(DocumentKind):
    document_type = DocumentType.DISTRATO_MULTA
    title = "Acordo de Distrato de Parceria - Anexo I"
    display_name = "Distrato"
    legal_notice = DISTRATO_NOTICE
    channels_allowed = frozenset({Channel.EMAIL, Channel.WHATSAPP, Channel.IN_APP})


class DistratoSemMultaKind(DistratoMultaKind):
    document_type = DocumentType.DISTRATO_SEM_MULTA


KINDS: Dict[DocumentType, DocumentKind] = {
    kind.document_type: kind
    for kind in (ContractKind(), ProcuracaoKind(), DistratoMultaKind(), DistratoSemMultaKind())
}


def get_kind(document_type: DocumentType) -> DocumentKind:
    return KINDS[DocumentType(document_type)]
