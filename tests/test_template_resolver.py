"""Tests for template selection and placeholder rendering"""

import json
from datetime import datetime, timezone

import pytest

from contract_signing.errors import NoActiveTemplate, TemplateNotFound
from contract_signing.models.template import DocumentType, VariableBag
from contract_signing.services.document_types import PLACEHOLDER, get_kind, render_placeholders
from contract_signing.services.templates import TemplateResolver, load_template_catalogue


def add_template(db, id, name, content, created_at, is_active=True):
    db.insert_template({
        "id": id,
        "name": name,
        "content": content,
        "is_active": is_active,
        "created_at": created_at,
    })


T1 = datetime(2026, 1, 1, tzinfo=timezone.utc)
T2 = datetime(2026, 2, 1, tzinfo=timezone.utc)


class TestRenderPlaceholders:

    def test_replaces_every_occurrence(self):
        body, missing = render_placeholders(
            "{{marca}} e {{marca}} de {{nome}}", VariableBag(values={"marca": "Aurora", "nome": "Ana"})
        )
        assert body == "Aurora e Aurora de Ana"
        assert missing == []

    def test_missing_placeholder_renders_empty(self):
        body, missing = render_placeholders("Eu, {{nome}}, CPF {{cpf}}", VariableBag(values={"nome": "Ana"}))
        assert body == "Eu, Ana, CPF "
        assert missing == ["cpf"]

    def test_case_sensitive(self):
        body, missing = render_placeholders("{{Marca}}", VariableBag(values={"marca": "Aurora"}))
        assert body == ""
        assert missing == ["Marca"]

    def test_value_cannot_inject_placeholder(self):
        body, _ = render_placeholders("{{a}}", VariableBag(values={"a": "x{{b}}y", "b": "z"}))
        assert body == "xy"
        assert not PLACEHOLDER.search(body)

    def test_none_values_become_empty(self):
        bag = VariableBag(values={"email": None})
        assert bag.get("email") == ""
        assert "email" in bag


class TestTemplateResolver:

    def test_procuracao_scenario(self, db):
        add_template(db, "p1", "Procuração Padrão", "Eu, {{nome_representante}}, CPF {{cpf_representante}}", T1)
        resolver = TemplateResolver(db)

        rendered = resolver.resolve("procuracao", VariableBag(values={"nome_representante": "Ana Silva"}))

        assert rendered.body == "Eu, Ana Silva, CPF "
        assert rendered.document_type == DocumentType.PROCURACAO
        assert rendered.template_id == "p1"
        assert rendered.unresolved == ["cpf_representante"]

    def test_alias_match_ignores_case_and_accents(self, db):
        add_template(db, "p1", "PROCURACAO INPI", "x", T1)
        assert TemplateResolver(db).select(DocumentType.PROCURACAO).id == "p1"

    def test_most_recent_active_wins(self, db):
        add_template(db, "old", "Contrato Padrão Registro de Marca", "old", T1)
        add_template(db, "new", "Contrato Registro de Marca v2", "new", T2)
        add_template(db, "off", "Contrato Registro de Marca rascunho",
                     "off", datetime(2026, 3, 1, tzinfo=timezone.utc), is_active=False)

        assert TemplateResolver(db).select("contract").id == "new"

    def test_tie_goes_to_earlier_alias(self, db):
        # "registro de marca" is listed before "prestação de serviços"
        add_template(db, "b", "Prestação de Serviços", "b", T1)
        add_template(db, "a", "Registro de Marca", "a", T1)
        assert TemplateResolver(db).select("contract").id == "a"

    def test_tie_with_same_alias_goes_to_larger_id(self, db):
        add_template(db, "aaa", "Registro de Marca A", "a", T1)
        add_template(db, "bbb", "Registro de Marca B", "b", T1)
        assert TemplateResolver(db).select("contract").id == "bbb"

    def test_distrato_aliases_do_not_overlap(self, db):
        add_template(db, "com", "Distrato com Multa", "com", T1)
        add_template(db, "sem", "Distrato sem Multa", "sem", T2)
        resolver = TemplateResolver(db)
        assert resolver.select("distrato_multa").id == "com"
        assert resolver.select("distrato_sem_multa").id == "sem"

    def test_no_active_template(self, db):
        add_template(db, "off", "Procuração Padrão", "x", T1, is_active=False)
        with pytest.raises(NoActiveTemplate):
            TemplateResolver(db).select("procuracao")

    def test_unknown_tag(self, db):
        with pytest.raises(TemplateNotFound):
            TemplateResolver(db).select("boleto")

    def test_tag_without_aliases(self, db):
        add_template(db, "p1", "Procuração Padrão", "x", T1)
        resolver = TemplateResolver(db, aliases={"contract": ["registro de marca"]})
        with pytest.raises(TemplateNotFound):
            resolver.select("procuracao")

    def test_wrapped_uses_document_title(self, db):
        add_template(db, "d1", "Distrato com Multa", "Marca {{marca}}", T1)
        rendered = TemplateResolver(db).resolve("distrato_multa", VariableBag(values={"marca": "Aurora"}))
        kind = get_kind(DocumentType.DISTRATO_MULTA)
        assert kind.title in rendered.wrapped
        assert "legal-notice" in rendered.wrapped
        assert "Marca Aurora" in rendered.wrapped


class TestCatalogue:

    def test_bundled_templates_resolve_without_leftovers(self, db, catalogue, contract_bag):
        assert catalogue == 4
        resolver = TemplateResolver(db)
        for document_type in DocumentType:
            rendered = resolver.resolve(document_type, VariableBag(values=contract_bag))
            assert "{{" not in rendered.body
            assert "}}" not in rendered.body

    def test_contract_template_renders_brand(self, db, catalogue, contract_bag):
        rendered = TemplateResolver(db).resolve("contract", VariableBag(values=contract_bag))
        assert 'registro da marca "Café Aurora"' in rendered.body
        assert "CLÁUSULA DÉCIMA SEGUNDA" in rendered.body
        assert "{contract_signature}" not in rendered.wrapped

    def test_reload_is_idempotent(self, db, catalogue):
        assert load_template_catalogue(db) == 4
        assert len(db.list_templates(active_only=False)) == 4

    def test_custom_directory(self, db, tmp_path):
        (tmp_path / "custom.json").write_text(json.dumps({
            "name": "Procuração Especial",
            "content": "Outorgante {{nome_empresa}}",
        }), encoding="utf-8")

        assert load_template_catalogue(db, tmp_path) == 1
        rendered = TemplateResolver(db).resolve("procuracao", VariableBag(values={"nome_empresa": "Aurora Ltda"}))
        assert rendered.body == "Outorgante Aurora Ltda"
