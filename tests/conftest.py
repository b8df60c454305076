from __future__ import annotations

from types import SimpleNamespace

import pytest

from procflow import persistence
from procflow.constants import BASE_APPROVAL_ID, BASE_FORM_ID
from procflow.contracts import FieldType, FormField
from procflow.definitions import DefinitionStore


def build_expense_flow(store: DefinitionStore) -> SimpleNamespace:
    """C = [Form A, D = [Form B, Approval E]]"""
    form_a = store.derive(BASE_FORM_ID, "Form A").definition
    store.add_field(form_a.id, FormField(name="title", label="Title", required=True))
    form_b = store.derive(BASE_FORM_ID, "Form B").definition
    store.add_field(form_b.id, FormField(name="amount", type=FieldType.NUMBER))
    approval_e = store.derive(BASE_APPROVAL_ID, "Approval E").definition

    d = store.create_composite("D").definition
    store.add_child(d.id, form_b.id)
    store.add_child(d.id, approval_e.id)

    c = store.create_composite("C", code="EXP").definition
    store.add_child(c.id, form_a.id)
    store.add_child(c.id, d.id)

    return SimpleNamespace(
        c=c.id, d=d.id, form_a=form_a.id, form_b=form_b.id, approval_e=approval_e.id
    )


@pytest.fixture
def store() -> DefinitionStore:
    return DefinitionStore()


@pytest.fixture
def flow(store: DefinitionStore) -> SimpleNamespace:
    return build_expense_flow(store)


@pytest.fixture(autouse=True)
def reset_repository(monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.delenv("PROCFLOW_CONFIG", raising=False)
    monkeypatch.delenv("PROCFLOW_DATABASE_URL", raising=False)


@pytest.fixture
def workspace():
    from procflow.workspace import Workspace

    return Workspace()


@pytest.fixture
def workspace_flow(workspace) -> SimpleNamespace:
    return build_expense_flow(workspace.definitions)
