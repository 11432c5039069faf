"""Notification texts per business event"""

from typing import Dict, Optional

from contract_signing.models.dispatch import NotificationEvent

SMS_MAX_LENGTH = 160

TITLES: Dict[str, str] = {
    NotificationEvent.FORM_FILLED.value: "Formulário recebido",
    NotificationEvent.SIGNATURE_LINK.value: "Contrato pronto para assinatura",
    NotificationEvent.SIGNATURE_PENDING.value: "Documento pendente de assinatura",
    NotificationEvent.EXPIRATION_REMINDER.value: "Link de assinatura expirando",
    NotificationEvent.CONTRACT_SIGNED.value: "Contrato assinado com sucesso",
    NotificationEvent.INVOICE_CREATED.value: "Nova cobrança gerada",
    NotificationEvent.INVOICE_OVERDUE.value: "Fatura vencida",
    NotificationEvent.PAYMENT_CONFIRMED.value: "Pagamento confirmado",
    NotificationEvent.MANUAL.value: "Nova notificação",
}

SEVERITY: Dict[str, str] = {
    NotificationEvent.FORM_FILLED.value: "info",
    NotificationEvent.SIGNATURE_LINK.value: "info",
    NotificationEvent.SIGNATURE_PENDING.value: "info",
    NotificationEvent.EXPIRATION_REMINDER.value: "warning",
    NotificationEvent.CONTRACT_SIGNED.value: "success",
    NotificationEvent.INVOICE_CREATED.value: "warning",
    NotificationEvent.INVOICE_OVERDUE.value: "error",
    NotificationEvent.PAYMENT_CONFIRMED.value: "success",
    NotificationEvent.MANUAL.value: "info",
}


def notification_title(event_type: str, payload: Optional[dict] = None) -> str:
    if payload and payload.get("titulo"):
        return payload["titulo"]
    return TITLES.get(event_type, "Nova notificação")


def notification_severity(event_type: str) -> str:
    return SEVERITY.get(event_type, "info")


def build_message(event_type: str, payload: dict, name: str, brand: str = "WebMarcas") -> str:
    """Render the plain-text message for an event.

    ``payload`` keys: link, marca, valor, documento, expira_em, mensagem_custom.
    """
    if payload.get("mensagem_custom"):
        return payload["mensagem_custom"]

    name = name or "Cliente"
    marca = payload.get("marca") or "sua marca"
    link = payload.get("link") or ""
    valor = f"R$ {payload['valor']}" if payload.get("valor") else ""
    documento = payload.get("documento") or "Documento"
    expira_em = payload.get("expira_em") or ""

    messages = {
        NotificationEvent.FORM_FILLED.value:
            f"Olá {name}, recebemos seu formulário para o registro de {marca}. Em breve entraremos em contato!",
        NotificationEvent.SIGNATURE_LINK.value:
            f"Olá {name}, seu contrato para {marca} está pronto para assinatura. Acesse: {link}",
        NotificationEvent.SIGNATURE_PENDING.value:
            f"Olá {name}, o documento {documento} referente a {marca} aguarda sua assinatura. Acesse: {link}",
        NotificationEvent.EXPIRATION_REMINDER.value:
            f"Olá {name}, o link para assinar {documento} de {marca} expira em {expira_em}. Acesse: {link}",
        NotificationEvent.CONTRACT_SIGNED.value:
            f"Parabéns {name}! Seu contrato para {marca} foi assinado com sucesso.",
        NotificationEvent.INVOICE_CREATED.value:
            f"Olá {name}, uma nova cobrança de {valor} foi gerada para {marca}. Acesse: {link}",
        NotificationEvent.INVOICE_OVERDUE.value:
            f"Atenção {name}! Sua fatura de {valor} para {marca} está vencida. Regularize em: {link or 'webmarcas.net'}",
        NotificationEvent.PAYMENT_CONFIRMED.value:
            f"Olá {name}, confirmamos o recebimento do pagamento de {valor} para {marca}. Obrigado!",
        NotificationEvent.MANUAL.value: "Você tem uma nova notificação.",
    }
    body = messages.get(event_type, f"Olá {name}, você tem uma nova notificação.")
    return f"{brand}: {body}"


def build_email_subject(event_type: str, payload: dict, brand: str = "WebMarcas") -> str:
    if event_type in (
        NotificationEvent.SIGNATURE_PENDING.value,
        NotificationEvent.SIGNATURE_LINK.value,
    ):
        documento = payload.get("documento") or "Documento"
        subject = payload.get("marca") or payload.get("assunto") or ""
        return f"[{brand}] {documento} pendente de assinatura - {subject}".rstrip(" -")
    return f"[{brand}] {notification_title(event_type, payload)}"


def truncate_sms(message: str) -> str:
    return message[:SMS_MAX_LENGTH]
