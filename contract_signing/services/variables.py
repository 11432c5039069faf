"""Variable bag assembly from signer profile, brand and payment facts"""

from datetime import date
from typing import Optional

from pydantic import BaseModel

from contract_signing.models.contract import SignerSnapshot
from contract_signing.models.template import VariableBag
from contract_signing.utils.portuguese import long_date, short_date

PAYMENT_DETAILS = {
    "avista": (
        "• Pagamento à vista via PIX: R$ 699,00 (seiscentos e noventa e nove reais) - "
        "com 43% de desconto sobre o valor integral de R$ 1.230,00."
    ),
    "cartao6x": (
        "• Pagamento parcelado no Cartão de Crédito: 6x de R$ 199,00 (cento e noventa e nove "
        "reais) = Total: R$ 1.194,00 - sem juros."
    ),
    "boleto3x": (
        "• Pagamento parcelado via Boleto Bancário: 3x de R$ 399,00 (trezentos e noventa e nove "
        "reais) = Total: R$ 1.197,00."
    ),
}
DEFAULT_PAYMENT_DETAIL = "• Forma de pagamento a ser definida."


class SignerProfile(BaseModel):
    """Row of the signer profile source"""
    id: Optional[str] = None
    full_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf: Optional[str] = None
    cnpj: Optional[str] = None
    company_name: Optional[str] = None
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    @property
    def has_cnpj(self) -> bool:
        return bool(self.cnpj)

    @property
    def full_address(self) -> str:
        return (
            f"{self.address or ''}, {self.neighborhood or ''}, "
            f"{self.city or ''} - {self.state or ''}, CEP {self.zip_code or ''}"
        )

    def snapshot(self) -> SignerSnapshot:
        return SignerSnapshot(
            name=self.full_name,
            tax_id=self.cnpj or self.cpf or "",
            email=self.email,
            phone=self.phone,
            user_id=self.id,
        )


class BrandFacts(BaseModel):
    """Trademark being registered"""
    brand_name: str = ""
    business_area: str = ""


def payment_detail(method: Optional[str]) -> str:
    return PAYMENT_DETAILS.get(method or "", DEFAULT_PAYMENT_DETAIL)


def build_variable_bag(
    profile: SignerProfile,
    brand: Optional[BrandFacts] = None,
    payment_method: Optional[str] = None,
    today: Optional[date] = None,
    extra: Optional[dict] = None,
) -> VariableBag:
    """Assemble every placeholder the bundled templates use.

    ``extra`` wins over computed values (e.g. data_distrato, valor_multa).
    """
    brand = brand or BrandFacts()
    today = today or date.today()
    cpf_cnpj = profile.cnpj if profile.has_cnpj else profile.cpf

    values = {
        # Registration contract
        "nome_cliente": profile.full_name,
        "cpf": profile.cpf,
        "cpf_cnpj": cpf_cnpj,
        "email": profile.email,
        "telefone": profile.phone,
        "marca": brand.brand_name,
        "ramo_atividade": brand.business_area,
        "endereco_completo": profile.full_address,
        "endereco": profile.address,
        "bairro": profile.neighborhood,
        "cidade": profile.city,
        "estado": profile.state,
        "cep": profile.zip_code,
        "razao_social_ou_nome": (
            profile.company_name if profile.has_cnpj and profile.company_name else profile.full_name
        ),
        "dados_cnpj": f"inscrita no CNPJ sob nº {profile.cnpj}, " if profile.has_cnpj else "",
        "forma_pagamento_detalhada": payment_detail(payment_method),
        "data_extenso": long_date(today),
        "data": short_date(today),
        # Procuração and distratos
        "nome_empresa": profile.company_name or profile.full_name,
        "cnpj": profile.cnpj,
        "nome_representante": profile.full_name,
        "cpf_representante": profile.cpf,
        "data_distrato": long_date(today),
        "numero_parcela": "1",
    }
    bag = VariableBag(values=values)
    if extra:
        bag = bag.merged(extra)
    return bag
