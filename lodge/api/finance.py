from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import require_module
from ..models.models import (
    BankAccount,
    Brother,
    Budget,
    Contribution,
    FinancialCategory,
    FinancialGoal,
    FinancialTransaction,
    User,
)
from ..schemas.schemas import (
    AccountCreate,
    AccountRead,
    AccountUpdate,
    BudgetCreate,
    BudgetRead,
    BudgetUpdate,
    CategoryCreate,
    CategoryRead,
    CategoryUpdate,
    CharityCreate,
    CharityRead,
    ContributionCreate,
    ContributionRead,
    ContributionUpdate,
    FinancialSummaryRead,
    GoalCreate,
    GoalRead,
    GoalUpdate,
    TransactionCreate,
    TransactionRead,
    TransactionUpdate,
)
from ..services import finance as finance_service
from ..services.audit import audit_log
from ..utils.format_utils import format_brl

router = APIRouter(prefix="/finance", tags=["finance"])

require_financial = require_module("financial")


def _serialize_transaction(transaction: FinancialTransaction) -> TransactionRead:
    return TransactionRead(
        id=transaction.id,
        date=transaction.date,
        description=transaction.description,
        category=transaction.category,
        type=transaction.type,
        amount=transaction.amount,
        amount_display=format_brl(transaction.amount),
        account_id=transaction.account_id,
        created_at=transaction.created_at,
    )


def _serialize_account(account: BankAccount, transactions: List[FinancialTransaction]) -> AccountRead:
    balance = finance_service.account_balance(account, transactions)
    return AccountRead(
        id=account.id,
        name=account.name,
        type=account.type,
        initial_balance=account.initial_balance,
        color=account.color,
        balance=balance,
        balance_display=format_brl(balance),
    )


def _serialize_budget(budget: Budget, transactions: List[FinancialTransaction]) -> BudgetRead:
    progress = finance_service.budget_progress(budget, transactions)
    return BudgetRead(
        id=budget.id,
        name=budget.name,
        type=budget.type,
        category=budget.category,
        amount=budget.amount,
        period=budget.period,
        start_date=budget.start_date,
        end_date=budget.end_date,
        current=progress.current,
        percentage=progress.percentage,
    )


def _serialize_goal(goal: FinancialGoal, transactions: List[FinancialTransaction]) -> GoalRead:
    progress = finance_service.goal_progress(goal, transactions)
    return GoalRead(
        id=goal.id,
        name=goal.name,
        target_amount=goal.target_amount,
        linked_category=goal.linked_category,
        deadline=goal.deadline,
        status=goal.status,
        current=progress.current,
        percentage=progress.percentage,
    )


def _all_transactions(db: Session) -> List[FinancialTransaction]:
    return db.query(FinancialTransaction).all()


# --- Transactions ---


@router.get("/transactions", response_model=List[TransactionRead])
def list_transactions(
    type: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    account_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> List[TransactionRead]:
    transactions = finance_service.list_transactions(
        db, type=type, category=category, start=start, end=end, account_id=account_id
    )
    return [_serialize_transaction(transaction) for transaction in transactions]


@router.post("/transactions", response_model=TransactionRead, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_financial),
) -> TransactionRead:
    transaction = finance_service.create_transaction(db, created_by_user_id=actor.id, **payload.model_dump())
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="finance.transaction.create",
        target_entity_type="FinancialTransaction",
        target_entity_id=str(transaction.id),
        after={"type": transaction.type, "category": transaction.category, "amount": str(transaction.amount)},
    )
    return _serialize_transaction(transaction)


@router.get("/transactions/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> TransactionRead:
    return _serialize_transaction(get_or_404(db, FinancialTransaction, transaction_id, "Transaction"))


@router.patch("/transactions/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_financial),
) -> TransactionRead:
    transaction = get_or_404(db, FinancialTransaction, transaction_id, "Transaction")
    before = {"type": transaction.type, "category": transaction.category, "amount": str(transaction.amount)}
    transaction = finance_service.update_transaction(db, transaction, payload.model_dump(exclude_unset=True))
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="finance.transaction.update",
        target_entity_type="FinancialTransaction",
        target_entity_id=str(transaction.id),
        before=before,
        after={"type": transaction.type, "category": transaction.category, "amount": str(transaction.amount)},
    )
    return _serialize_transaction(transaction)


@router.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    actor: User = Depends(require_financial),
) -> Response:
    transaction = get_or_404(db, FinancialTransaction, transaction_id, "Transaction")
    before = {"type": transaction.type, "category": transaction.category, "amount": str(transaction.amount)}
    db.delete(transaction)
    db.commit()
    audit_log(
        db_session=db,
        actor_user_id=actor.id,
        action="finance.transaction.delete",
        target_entity_type="FinancialTransaction",
        target_entity_id=str(transaction_id),
        before=before,
    )
    return Response(status_code=204)


# --- Categories ---


@router.get("/categories", response_model=List[CategoryRead])
def list_categories(
    type: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> List[FinancialCategory]:
    query = db.query(FinancialCategory)
    if type:
        query = query.filter(FinancialCategory.type == type)
    return query.order_by(FinancialCategory.type.asc(), FinancialCategory.name.asc()).all()


@router.post("/categories", response_model=CategoryRead, status_code=201)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> FinancialCategory:
    return finance_service.create_category(db, payload.name, payload.type, payload.description)


@router.patch("/categories/{category_id}", response_model=CategoryRead)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> FinancialCategory:
    category = get_or_404(db, FinancialCategory, category_id, "Category")
    updates = payload.model_dump(exclude_unset=True)
    if "description" in updates:
        category.description = updates["description"]
        db.commit()
    if updates.get("name"):
        category = finance_service.rename_category(db, category, updates["name"])
    db.refresh(category)
    return category


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> Response:
    category = get_or_404(db, FinancialCategory, category_id, "Category")
    db.delete(category)
    db.commit()
    return Response(status_code=204)


# --- Bank accounts ---


@router.get("/accounts", response_model=List[AccountRead])
def list_accounts(
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> List[AccountRead]:
    transactions = _all_transactions(db)
    accounts = db.query(BankAccount).order_by(BankAccount.name.asc()).all()
    return [_serialize_account(account, transactions) for account in accounts]


@router.post("/accounts", response_model=AccountRead, status_code=201)
def create_account(
    payload: AccountCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> AccountRead:
    account = BankAccount(**payload.model_dump())
    db.add(account)
    db.commit()
    db.refresh(account)
    return _serialize_account(account, [])


@router.patch("/accounts/{account_id}", response_model=AccountRead)
def update_account(
    account_id: int,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> AccountRead:
    account = get_or_404(db, BankAccount, account_id, "Bank account")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(account, key, value)
    db.commit()
    db.refresh(account)
    return _serialize_account(account, _all_transactions(db))


@router.delete("/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> Response:
    account = get_or_404(db, BankAccount, account_id, "Bank account")
    in_use = db.query(FinancialTransaction).filter(FinancialTransaction.account_id == account_id).first()
    if in_use:
        raise HTTPException(status_code=409, detail="Account has transactions and cannot be deleted")
    db.delete(account)
    db.commit()
    return Response(status_code=204)


# --- Budgets ---


@router.get("/budgets", response_model=List[BudgetRead])
def list_budgets(
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> List[BudgetRead]:
    transactions = _all_transactions(db)
    budgets = db.query(Budget).order_by(Budget.name.asc()).all()
    return [_serialize_budget(budget, transactions) for budget in budgets]


@router.post("/budgets", response_model=BudgetRead, status_code=201)
def create_budget(
    payload: BudgetCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> BudgetRead:
    budget = Budget(**payload.model_dump())
    db.add(budget)
    db.commit()
    db.refresh(budget)
    return _serialize_budget(budget, _all_transactions(db))


@router.patch("/budgets/{budget_id}", response_model=BudgetRead)
def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> BudgetRead:
    budget = get_or_404(db, Budget, budget_id, "Budget")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(budget, key, value)
    db.commit()
    db.refresh(budget)
    return _serialize_budget(budget, _all_transactions(db))


@router.delete("/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> Response:
    budget = get_or_404(db, Budget, budget_id, "Budget")
    db.delete(budget)
    db.commit()
    return Response(status_code=204)


# --- Goals ---


@router.get("/goals", response_model=List[GoalRead])
def list_goals(
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> List[GoalRead]:
    transactions = _all_transactions(db)
    goals = db.query(FinancialGoal).order_by(FinancialGoal.name.asc()).all()
    return [_serialize_goal(goal, transactions) for goal in goals]


@router.post("/goals", response_model=GoalRead, status_code=201)
def create_goal(
    payload: GoalCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> GoalRead:
    goal = FinancialGoal(**payload.model_dump())
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return _serialize_goal(goal, _all_transactions(db))


@router.patch("/goals/{goal_id}", response_model=GoalRead)
def update_goal(
    goal_id: int,
    payload: GoalUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> GoalRead:
    goal = get_or_404(db, FinancialGoal, goal_id, "Goal")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(goal, key, value)
    db.commit()
    db.refresh(goal)
    return _serialize_goal(goal, _all_transactions(db))


@router.delete("/goals/{goal_id}", status_code=204)
def delete_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> Response:
    goal = get_or_404(db, FinancialGoal, goal_id, "Goal")
    db.delete(goal)
    db.commit()
    return Response(status_code=204)


# --- Contributions ---


@router.get("/contributions", response_model=List[ContributionRead])
def list_contributions(
    brother_id: Optional[int] = Query(None),
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> List[Contribution]:
    query = db.query(Contribution)
    if brother_id:
        query = query.filter(Contribution.brother_id == brother_id)
    if year:
        query = query.filter(Contribution.year == year)
    if month:
        query = query.filter(Contribution.month == month)
    if status:
        query = query.filter(Contribution.status == status)
    return query.order_by(Contribution.year.desc(), Contribution.month.desc(), Contribution.id.asc()).all()


@router.post("/contributions", response_model=ContributionRead, status_code=201)
def create_contribution(
    payload: ContributionCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> Contribution:
    get_or_404(db, Brother, payload.brother_id, "Brother")
    contribution = Contribution(**payload.model_dump())
    db.add(contribution)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=409, detail="Contribution already registered for this brother and month"
        ) from exc
    db.refresh(contribution)
    return contribution


@router.patch("/contributions/{contribution_id}", response_model=ContributionRead)
def update_contribution(
    contribution_id: int,
    payload: ContributionUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> Contribution:
    contribution = get_or_404(db, Contribution, contribution_id, "Contribution")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(contribution, key, value)
    if contribution.status == "Pago" and contribution.payment_date is None:
        contribution.payment_date = date.today()
    db.commit()
    db.refresh(contribution)
    return contribution


@router.delete("/contributions/{contribution_id}", status_code=204)
def delete_contribution(
    contribution_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> Response:
    contribution = get_or_404(db, Contribution, contribution_id, "Contribution")
    db.delete(contribution)
    db.commit()
    return Response(status_code=204)


# --- Summaries ---


@router.get("/summary", response_model=FinancialSummaryRead)
def financial_summary(
    period: Optional[str] = Query(None, description="current_month, last_month or current_year"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> FinancialSummaryRead:
    if period or start or end:
        start, end = finance_service.resolve_period(period, start, end)
        summary = finance_service.cash_flow(db, start, end)
    else:
        summary = finance_service.summarize(_all_transactions(db))
    return FinancialSummaryRead(start=start, end=end, **asdict(summary))


@router.get("/charity", response_model=CharityRead)
def charity_collections(
    db: Session = Depends(get_db),
    _: User = Depends(require_financial),
) -> CharityRead:
    transactions = finance_service.charity_transactions(db)
    total = sum((transaction.amount for transaction in transactions), Decimal("0"))
    return CharityRead(
        total=total,
        total_display=format_brl(total),
        count=len(transactions),
        items=[_serialize_transaction(transaction) for transaction in transactions],
    )


@router.post("/charity", response_model=TransactionRead, status_code=201)
def record_charity(
    payload: CharityCreate,
    db: Session = Depends(get_db),
    actor: User = Depends(require_financial),
) -> TransactionRead:
    transaction = finance_service.record_charity_collection(
        db,
        event_id=payload.event_id,
        amount=payload.amount,
        account_id=payload.account_id,
        collected_on=payload.date,
        description=payload.description,
        created_by_user_id=actor.id,
    )
    return _serialize_transaction(transaction)
