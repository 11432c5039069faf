"""Template resolver: pick the active template for a document type and render it"""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from contract_signing.db.base import DatabaseInterface
from contract_signing.errors import NoActiveTemplate, TemplateNotFound
from contract_signing.models.contract import SignerSnapshot
from contract_signing.models.template import (
    DocumentTemplate,
    DocumentType,
    RenderedDocument,
    VariableBag,
)
from contract_signing.services.document_types import get_kind
from contract_signing.utils.config import Settings, get_settings
from contract_signing.utils.portuguese import fold_accents

logger = logging.getLogger(__name__)

BUNDLED_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


class TemplateResolver:
    """Resolves document type tags to rendered documents.

    Each tag has a priority-ordered alias list (``Settings.template_aliases``).
    A template matches when it is active and its name contains one of the
    aliases, compared case- and accent-insensitively. Among matches the most
    recently created wins; equal creation times go to the template matched
    by the earlier alias, then to the larger id.
    """

    def __init__(
        self,
        db: DatabaseInterface,
        aliases: Optional[Dict[str, List[str]]] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        settings = settings or get_settings()
        self.aliases = aliases if aliases is not None else settings.template_aliases

    def _document_type(self, tag: Union[str, DocumentType]) -> DocumentType:
        try:
            document_type = DocumentType(tag)
        except ValueError:
            raise TemplateNotFound(document_type=str(tag))
        if not self.aliases.get(document_type.value):
            raise TemplateNotFound(document_type=document_type.value)
        return document_type

    def _alias_rank(self, name: str, aliases: List[str]) -> Optional[int]:
        folded = fold_accents(name)
        for rank, alias in enumerate(aliases):
            if fold_accents(alias) in folded:
                return rank
        return None

    def select(self, tag: Union[str, DocumentType]) -> DocumentTemplate:
        """Pick the active template for a tag or raise."""
        document_type = self._document_type(tag)
        aliases = self.aliases[document_type.value]

        candidates = []
        for row in self.db.list_templates(active_only=True):
            template = DocumentTemplate(**row)
            if not template.is_active:
                continue
            rank = self._alias_rank(template.name, aliases)
            if rank is not None:
                candidates.append((template, rank))

        if not candidates:
            raise NoActiveTemplate(document_type=document_type.value)
        if len(candidates) > 1:
            logger.warning(
                f"{len(candidates)} active templates match {document_type.value}; using most recent"
            )

        template, _ = max(
            candidates, key=lambda c: (c[0].created_at, -c[1], c[0].id)
        )
        return template

    def resolve(
        self,
        tag: Union[str, DocumentType],
        bag: VariableBag,
        signer: Optional[SignerSnapshot] = None,
    ) -> RenderedDocument:
        """Render the active template for ``tag`` against ``bag``.

        Missing placeholders render as empty strings; they are listed in
        ``unresolved`` but never fail the render.
        """
        template = self.select(tag)
        document_type = self._document_type(tag)
        kind = get_kind(document_type)

        body, missing = kind.render(template.content, bag)
        if missing:
            logger.info(f"Template {template.name!r} rendered with empty placeholders: {missing}")

        signer = signer or SignerSnapshot(
            name=bag.get("nome_cliente") or bag.get("nome_representante"),
            tax_id=bag.get("cpf_cnpj") or bag.get("cpf_representante"),
        )
        return RenderedDocument(
            document_type=document_type,
            template_id=template.id,
            template_name=template.name,
            body=body,
            wrapped=kind.wrap(body, signer),
            unresolved=missing,
        )

    def list_templates(self, active_only: bool = False) -> List[DocumentTemplate]:
        return [DocumentTemplate(**row) for row in self.db.list_templates(active_only=active_only)]


def load_template_catalogue(db: DatabaseInterface, directory: Optional[Path] = None) -> int:
    """Import JSON template files from a directory into the template source.

    Each file holds one template: ``{"id"?, "name", "document_type"?,
    "content", "is_active"?, "created_at"?}``. Returns the count imported.
    """
    directory = Path(directory or BUNDLED_TEMPLATES_DIR)
    count = 0
    for template_file in sorted(directory.glob("*.json")):
        with open(template_file, "r", encoding="utf-8") as f:
            data = json.load(f)
        data.setdefault("id", str(uuid.uuid5(uuid.NAMESPACE_URL, template_file.stem)))
        data.setdefault("created_at", datetime.now(timezone.utc))
        template = DocumentTemplate(**data)
        db.insert_template(template.model_dump())
        logger.info(f"Loaded template {template.name!r} from {template_file.name}")
        count += 1
    return count
