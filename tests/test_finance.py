from datetime import date
from decimal import Decimal

import pytest

from lodge.core.errors import ValidationError
from lodge.models.models import BankAccount, Budget, FinancialCategory, FinancialGoal, FinancialTransaction
from lodge.services import finance as finance_service
from lodge.services import positions as position_service


def _tx(type, category, amount, account_id=None):
    return FinancialTransaction(
        date=date(2024, 3, 1),
        description="x",
        category=category,
        type=type,
        amount=Decimal(amount),
        account_id=account_id,
    )


def test_budget_progress_sums_matching_type_and_category():
    budget = Budget(name="Manutenção", type="Despesa", category="Manutenção", amount=Decimal("500.00"))
    transactions = [
        _tx("Despesa", "Manutenção", "150.00"),
        _tx("Despesa", "Utilidades", "100.00"),
        _tx("Receita", "Manutenção", "50.00"),
    ]

    progress = finance_service.budget_progress(budget, transactions)

    assert progress.current == Decimal("150.00")
    assert progress.percentage == pytest.approx(30.0)


def test_budget_without_category_counts_every_transaction_of_its_type():
    budget = Budget(name="Despesas", type="Despesa", category=None, amount=Decimal("200.00"))
    transactions = [_tx("Despesa", "Manutenção", "150.00"), _tx("Despesa", "Utilidades", "100.00")]

    progress = finance_service.budget_progress(budget, transactions)

    assert progress.current == Decimal("250.00")
    assert progress.percentage == 100.0


def test_budget_percentage_is_not_rounded():
    budget = Budget(name="Ritualística", type="Despesa", category="Ritualística", amount=Decimal("3.00"))

    progress = finance_service.budget_progress(budget, [_tx("Despesa", "Ritualística", "1.00")])

    assert progress.percentage == pytest.approx(100 / 3)
    assert progress.percentage != 33.33


@pytest.mark.parametrize("amount", ["0", "-10"])
def test_progress_with_non_positive_target_is_zero(amount):
    budget = Budget(name="Vazio", type="Despesa", category=None, amount=Decimal(amount))
    progress = finance_service.budget_progress(budget, [_tx("Despesa", "Manutenção", "10.00")])
    assert progress.percentage == 0.0


def test_goal_progress_counts_linked_income_only():
    goal = FinancialGoal(name="Reforma", target_amount=Decimal("1000.00"), linked_category="Doações")
    transactions = [
        _tx("Receita", "Doações", "250.00"),
        _tx("Despesa", "Doações", "100.00"),
        _tx("Receita", "Mensalidades", "400.00"),
    ]

    progress = finance_service.goal_progress(goal, transactions)
    assert progress.current == Decimal("250.00")
    assert progress.percentage == 25.0

    unlinked = FinancialGoal(name="Livre", target_amount=Decimal("1000.00"), linked_category=None)
    assert finance_service.goal_progress(unlinked, transactions).current == Decimal("0.00")


def test_account_balance_applies_income_and_expense():
    account = BankAccount(id=7, name="Caixa", type="Caixa", initial_balance=Decimal("100.00"))
    transactions = [
        _tx("Receita", "Mensalidades", "40.00", account_id=7),
        _tx("Despesa", "Utilidades", "15.50", account_id=7),
        _tx("Receita", "Doações", "999.00", account_id=8),
    ]
    assert finance_service.account_balance(account, transactions) == Decimal("124.50")


def test_resolve_period_presets_and_custom_range():
    today = date(2024, 3, 15)
    assert finance_service.resolve_period("current_month", today=today) == (date(2024, 3, 1), date(2024, 3, 31))
    assert finance_service.resolve_period("last_month", today=today) == (date(2024, 2, 1), date(2024, 2, 29))
    assert finance_service.resolve_period("current_year", today=today) == (date(2024, 1, 1), date(2024, 12, 31))
    with pytest.raises(ValidationError):
        finance_service.resolve_period(start=date(2024, 3, 1))
    with pytest.raises(ValidationError):
        finance_service.resolve_period(start=date(2024, 3, 2), end=date(2024, 3, 1))


def test_ensure_category_reuses_existing_row(db_session):
    first = finance_service.ensure_category(db_session, "Manutenção", "Despesa")
    second = finance_service.ensure_category(db_session, " Manutenção ", "Despesa")
    assert first.id == second.id
    assert db_session.query(FinancialCategory).count() == 1


def test_expense_list_renders_brl(db_session, create_user, api_client):
    admin = create_user(email="treasury@example.com", role_name="ADMIN")
    client = api_client(admin)

    payload = {
        "date": "2024-03-01",
        "description": "Reparo do telhado",
        "category": "Manutenção",
        "type": "Despesa",
        "amount": "150.00",
    }
    response = client.post("/finance/transactions", json=payload)
    assert response.status_code == 201

    response = client.get("/finance/transactions", params={"type": "Despesa"})
    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 1
    assert rows[0]["amount_display"] == "R$ 150,00"
    assert rows[0]["category"] == "Manutenção"
    assert rows[0]["date"] == "2024-03-01"

    categories = db_session.query(FinancialCategory).filter(FinancialCategory.name == "Manutenção").all()
    assert len(categories) == 1


def test_transaction_amount_must_be_positive(db_session, create_user, api_client):
    admin = create_user(email="positive@example.com", role_name="ADMIN")
    client = api_client(admin)
    payload = {"date": "2024-03-01", "description": "Zero", "category": "Manutenção", "type": "Despesa", "amount": "0"}
    response = client.post("/finance/transactions", json=payload)
    assert response.status_code == 422


def test_duplicate_category_returns_conflict(db_session, create_user, api_client):
    admin = create_user(email="categories@example.com", role_name="ADMIN")
    client = api_client(admin)

    response = client.post("/finance/categories", json={"name": "Ágape", "type": "Despesa"})
    assert response.status_code == 201
    response = client.post("/finance/categories", json={"name": "Ágape", "type": "Despesa"})
    assert response.status_code == 409


def test_budget_endpoint_reports_progress(db_session, create_user, api_client):
    admin = create_user(email="budgets@example.com", role_name="ADMIN")
    finance_service.create_transaction(
        db_session,
        date=date(2024, 3, 1),
        description="Conta de luz",
        category="Utilidades",
        type="Despesa",
        amount=Decimal("80.00"),
    )
    client = api_client(admin)

    response = client.post(
        "/finance/budgets",
        json={"name": "Utilidades", "type": "Despesa", "category": "Utilidades", "amount": "200.00"},
    )
    assert response.status_code == 201
    body = response.json()
    assert Decimal(body["current"]) == Decimal("80.00")
    assert body["percentage"] == pytest.approx(40.0)


def test_finance_requires_treasury_office(db_session, create_user, api_client):
    member = create_user(email="member-finance@example.com", role_name="MEMBER")
    client = api_client(member)
    assert client.get("/finance/transactions").status_code == 403

    today = date.today()
    position_service.assign_position(db_session, "tesoureiro", member.id, today, position_service.default_end_date(today))
    assert client.get("/finance/transactions").status_code == 200


def test_budget_update_rejects_null_for_required_fields(db_session, create_user, api_client):
    admin = create_user(email="budget-null@example.com", role_name="ADMIN")
    client = api_client(admin)
    budget = client.post("/finance/budgets", json={"name": "Ágape", "amount": "300.00"}).json()

    response = client.patch(f"/finance/budgets/{budget['id']}", json={"amount": None})
    assert response.status_code == 422
    assert client.patch("/finance/accounts/999", json={"name": None}).status_code == 422
    assert client.patch("/finance/goals/999", json={"target_amount": None}).status_code == 422

    response = client.patch(f"/finance/budgets/{budget['id']}", json={"category": None, "amount": "450.00"})
    assert response.status_code == 200
    assert Decimal(response.json()["amount"]) == Decimal("450.00")
    assert db_session.get(Budget, budget["id"]).amount == Decimal("450.00")
