"""Document template models"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


class DocumentType(str, Enum):
    """Closed set of signable document types"""
    CONTRACT = "contract"                       # Contrato de registro de marca
    PROCURACAO = "procuracao"                   # Procuração INPI
    DISTRATO_MULTA = "distrato_multa"           # Distrato com multa
    DISTRATO_SEM_MULTA = "distrato_sem_multa"   # Distrato sem multa


class DocumentTemplate(BaseModel):
    """A versioned legal text with {{placeholders}}"""
    id: str
    name: str
    document_type: Optional[str] = None
    content: str
    is_active: bool = True
    created_at: datetime


class VariableBag(BaseModel):
    """Placeholder name -> resolved string value.

    Values are always strings; None becomes "" so rendering never has to
    special-case missing facts.
    """
    values: Dict[str, str] = Field(default_factory=dict)

    @field_validator("values", mode="before")
    @classmethod
    def _stringify(cls, value):
        if value is None:
            return {}
        return {str(k): "" if v is None else str(v) for k, v in dict(value).items()}

    def get(self, name: str, default: str = "") -> str:
        return self.values.get(name, default)

    def merged(self, other: "VariableBag | Dict[str, object]") -> "VariableBag":
        """Return a new bag where keys from ``other`` win."""
        extra = other.values if isinstance(other, VariableBag) else other
        return VariableBag(values={**self.values, **extra})

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def __len__(self) -> int:
        return len(self.values)


class RenderedDocument(BaseModel):
    """Output of the template resolver"""
    document_type: DocumentType
    template_id: str
    template_name: str
    body: str                        # placeholders substituted
    wrapped: str                     # letterhead + notice + body + signature block
    unresolved: list[str] = []       # placeholders that rendered as empty
