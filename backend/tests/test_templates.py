import pytest

from gentepro.pipeline import templates
from gentepro.pipeline.enums import ContractType, DeadlineUnit, StageType, TemplateKind
from gentepro.pipeline.schemas.rules import AutomationRuleCreate


pytestmark = pytest.mark.unit

EXCLUDED_FOR_FREELANCER = {
    "Realização de Exames Médicos",
    "Período de Experiência – Fase 1",
    "Prorrogação do Contrato de Experiência",
    "Efetivação – Após 90 dias",
}


def test_clt_gets_the_full_stage_catalog_in_order():
    stages = templates.stage_templates(ContractType.CLT)

    assert len(stages) == len(templates.stage_templates())
    assert stages[0].name == "Triagem de Currículos"
    assert stages[0].type == StageType.INITIAL


def test_freelancer_stages_exclude_medical_and_probation():
    names = [s.name for s in templates.stage_templates(ContractType.FREELANCER)]

    assert not EXCLUDED_FOR_FREELANCER & set(names)
    assert "Contratado" in names
    assert len(names) == len(templates.stage_templates()) - len(EXCLUDED_FOR_FREELANCER)


def test_internship_keeps_only_listed_stages():
    names = [s.name for s in templates.stage_templates(ContractType.INTERNSHIP)]

    assert names == [
        "Triagem de Currículos",
        "Entrevista com o Candidato",
        "Resultado da Entrevista – Aprovado",
        "Contratado",
    ]


def test_unknown_category_yields_empty_list():
    assert templates.list_templates(TemplateKind.SLA, "inexistente") == []
    assert not templates.has_category(TemplateKind.SLA, "inexistente")


def test_sla_templates_for_screening():
    slas = templates.list_templates(TemplateKind.SLA, "triagem")

    assert [s.name for s in slas] == ["SLA Triagem Rápida", "SLA Triagem Padrão"]
    assert slas[0].deadline_unit == DeadlineUnit.HOURS
    assert slas[0].deadline_hours == 4
    assert slas[1].notifications.recipients == ["recrutador"]


def test_every_automation_template_validates_as_a_rule():
    for category in templates.categories(TemplateKind.AUTOMATION):
        for entry in templates.list_templates(TemplateKind.AUTOMATION, category):
            rule = AutomationRuleCreate.model_validate(entry.model_dump())
            assert rule.actions, f"{entry.name} has no actions"


def test_webhook_header_template_becomes_secret_reference():
    entry = next(
        t for t in templates.list_templates(TemplateKind.AUTOMATION, "entrevista") if t.type.value == "webhook"
    )
    rule = AutomationRuleCreate.model_validate(entry.model_dump())

    auth = next(h for h in rule.webhook_headers if h.name == "Authorization")
    assert auth.secret_ref == "API_KEY"
    assert auth.prefix == "Bearer "
    assert auth.value is None


def test_rejection_reasons_keep_catalog_order():
    pairs = templates.all_rejection_reasons()
    orders = [entry.order for _, entry in pairs]

    assert orders == sorted(orders)
    assert pairs[0][0] == "geral"
    assert [c for c, _ in templates.all_rejection_reasons(["tecnico"])] == ["tecnico"] * 5
