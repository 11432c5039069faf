"""Error taxonomy for the contract signing core.

Every failure a caller can act on maps to one family here. The HTTP layer
translates families to status codes; nothing below the API decides how an
error is shown.
"""

from typing import Optional


class ContractSigningError(Exception):
    """Base class for all contract signing errors."""

    code = "error"
    default_message = "Erro ao processar o documento"

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        data = {"error": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


# ---- NotFound ----

class NotFound(ContractSigningError):
    code = "not_found"
    default_message = "Registro não encontrado"


class TemplateNotFound(NotFound):
    """Document type tag has no known alias set."""
    code = "template_not_found"
    default_message = "Tipo de documento desconhecido"


class NoActiveTemplate(NotFound):
    """Known document type, but no active template matches its aliases."""
    code = "no_active_template"
    default_message = "Nenhum modelo ativo para este tipo de documento"


class ContractNotFound(NotFound):
    code = "contract_not_found"
    default_message = "Contrato não encontrado"


class TokenNotFound(NotFound):
    code = "token_not_found"
    default_message = "Documento não encontrado ou link inválido"


# ---- Expired ----

class Expired(ContractSigningError):
    code = "expired"
    default_message = "Prazo expirado"


class TokenExpired(Expired):
    code = "token_expired"
    default_message = "Link de assinatura expirado. Solicite um novo link."


# ---- InvalidTransition ----

class InvalidTransition(ContractSigningError):
    code = "invalid_transition"
    default_message = "Operação inválida para o estado atual do documento"


class AlreadySigned(InvalidTransition):
    code = "already_signed"
    default_message = "Este documento já foi assinado"


# ---- Channels ----

class ChannelUnavailable(ContractSigningError):
    code = "channel_unavailable"
    default_message = "Canal de envio indisponível"


class MissingRecipientAttribute(ChannelUnavailable):
    code = "missing_recipient_attribute"
    default_message = "Destinatário sem o dado necessário para este canal"


# ---- Certification ----

class CertificationPending(ContractSigningError):
    code = "certification_pending"
    default_message = "A prova de registro em blockchain ainda está pendente"


class IntegrityMismatch(ContractSigningError):
    code = "integrity_mismatch"
    default_message = "O conteúdo armazenado não corresponde ao hash certificado"
