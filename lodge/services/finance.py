from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..constants import CHARITY_CATEGORY, TRANSACTION_TYPES
from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..models.models import (
    BankAccount,
    Budget,
    Event,
    FinancialCategory,
    FinancialGoal,
    FinancialTransaction,
)

logger = logging.getLogger(__name__)

INCOME = "Receita"
EXPENSE = "Despesa"

PERIOD_PRESETS = ("current_month", "last_month", "current_year")


@dataclass
class Progress:
    current: Decimal
    percentage: float


@dataclass
class FinancialSummary:
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    income_by_category: Dict[str, Decimal] = field(default_factory=dict)
    expense_by_category: Dict[str, Decimal] = field(default_factory=dict)


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _percentage(current: Decimal, target) -> float:
    """``min(current / target * 100, 100)``, unrounded. Display code rounds."""
    target_value = _as_decimal(target)
    if target_value <= 0:
        return 0.0
    ratio = float(current) / float(target_value) * 100
    return max(min(ratio, 100.0), 0.0)


def budget_progress(budget: Budget, transactions: Iterable[FinancialTransaction]) -> Progress:
    """Sum of matching transactions against the budget amount.

    The budget period is not applied; every matching transaction counts.
    """
    current = Decimal("0")
    for transaction in transactions:
        if transaction.type != budget.type:
            continue
        if budget.category and transaction.category != budget.category:
            continue
        current += _as_decimal(transaction.amount)
    return Progress(current=_money(current), percentage=_percentage(current, budget.amount))


def goal_progress(goal: FinancialGoal, transactions: Iterable[FinancialTransaction]) -> Progress:
    current = Decimal("0")
    if goal.linked_category:
        for transaction in transactions:
            if transaction.type == INCOME and transaction.category == goal.linked_category:
                current += _as_decimal(transaction.amount)
    return Progress(current=_money(current), percentage=_percentage(current, goal.target_amount))


def account_balance(account: BankAccount, transactions: Iterable[FinancialTransaction]) -> Decimal:
    balance = _as_decimal(account.initial_balance)
    for transaction in transactions:
        if transaction.account_id != account.id:
            continue
        if transaction.type == INCOME:
            balance += _as_decimal(transaction.amount)
        elif transaction.type == EXPENSE:
            balance -= _as_decimal(transaction.amount)
    return _money(balance)


def summarize(transactions: Iterable[FinancialTransaction]) -> FinancialSummary:
    income: Dict[str, Decimal] = defaultdict(Decimal)
    expense: Dict[str, Decimal] = defaultdict(Decimal)
    for transaction in transactions:
        bucket = income if transaction.type == INCOME else expense
        bucket[transaction.category] += _as_decimal(transaction.amount)
    total_income = sum(income.values(), Decimal("0"))
    total_expense = sum(expense.values(), Decimal("0"))
    return FinancialSummary(
        total_income=_money(total_income),
        total_expense=_money(total_expense),
        balance=_money(total_income - total_expense),
        income_by_category={name: _money(value) for name, value in sorted(income.items())},
        expense_by_category={name: _money(value) for name, value in sorted(expense.items())},
    )


def resolve_period(
    preset: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[date, date]:
    today = today or date.today()
    if start or end:
        if not (start and end):
            raise ValidationError("Both start and end dates are required for a custom period")
        if start > end:
            raise ValidationError("Start date must be on or before end date")
        return start, end
    preset = preset or "current_month"
    if preset == "current_month":
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last_day)
    if preset == "last_month":
        last_of_previous = today.replace(day=1) - timedelta(days=1)
        return last_of_previous.replace(day=1), last_of_previous
    if preset == "current_year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    raise ValidationError(f"Unknown period preset: {preset}")


def transactions_in_period(db: Session, start: date, end: date) -> List[FinancialTransaction]:
    return (
        db.query(FinancialTransaction)
        .filter(FinancialTransaction.date >= start, FinancialTransaction.date <= end)
        .order_by(FinancialTransaction.date.asc(), FinancialTransaction.id.asc())
        .all()
    )


def cash_flow(db: Session, start: date, end: date) -> FinancialSummary:
    return summarize(transactions_in_period(db, start, end))


def list_transactions(
    db: Session,
    type: Optional[str] = None,
    category: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    account_id: Optional[int] = None,
) -> List[FinancialTransaction]:
    query = db.query(FinancialTransaction)
    if type:
        query = query.filter(FinancialTransaction.type == type)
    if category:
        query = query.filter(FinancialTransaction.category == category)
    if start:
        query = query.filter(FinancialTransaction.date >= start)
    if end:
        query = query.filter(FinancialTransaction.date <= end)
    if account_id:
        query = query.filter(FinancialTransaction.account_id == account_id)
    return query.order_by(FinancialTransaction.date.desc(), FinancialTransaction.id.desc()).all()


def _validate_type(type: str) -> None:
    if type not in TRANSACTION_TYPES:
        raise ValidationError(f"Transaction type must be one of: {', '.join(TRANSACTION_TYPES)}")


def ensure_category(db: Session, name: str, type: str, commit: bool = True) -> FinancialCategory:
    """Return the category called ``name`` for ``type``, creating it when missing."""
    _validate_type(type)
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Category name is required")

    existing = (
        db.query(FinancialCategory)
        .filter(FinancialCategory.name == cleaned, FinancialCategory.type == type)
        .first()
    )
    if existing:
        return existing

    category = FinancialCategory(name=cleaned, type=type)
    try:
        with db.begin_nested():
            db.add(category)
            db.flush()
    except IntegrityError:
        # Inserted concurrently; the savepoint was rolled back.
        category = (
            db.query(FinancialCategory)
            .filter(FinancialCategory.name == cleaned, FinancialCategory.type == type)
            .one()
        )
    if commit:
        db.commit()
    return category


def create_category(db: Session, name: str, type: str, description: Optional[str] = None) -> FinancialCategory:
    _validate_type(type)
    cleaned = (name or "").strip()
    duplicate = (
        db.query(FinancialCategory)
        .filter(FinancialCategory.name == cleaned, FinancialCategory.type == type)
        .first()
    )
    if duplicate:
        raise ConflictError(f"Category '{cleaned}' already exists for {type}")
    category = FinancialCategory(name=cleaned, type=type, description=description)
    db.add(category)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f"Category '{cleaned}' already exists for {type}") from exc
    db.refresh(category)
    return category


def _check_account(db: Session, account_id: Optional[int]) -> None:
    if account_id is not None and db.get(BankAccount, account_id) is None:
        raise NotFoundError("Bank account not found")


def create_transaction(
    db: Session,
    *,
    date: date,
    description: str,
    category: str,
    type: str,
    amount: Decimal,
    account_id: Optional[int] = None,
    created_by_user_id: Optional[int] = None,
) -> FinancialTransaction:
    _validate_type(type)
    if _as_decimal(amount) <= 0:
        raise ValidationError("Amount must be greater than zero")
    _check_account(db, account_id)

    try:
        resolved = ensure_category(db, category, type, commit=False)
        transaction = FinancialTransaction(
            date=date,
            description=description,
            category=resolved.name,
            type=type,
            amount=_money(_as_decimal(amount)),
            account_id=account_id,
            created_by_user_id=created_by_user_id,
        )
        db.add(transaction)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(transaction)
    logger.info("Recorded %s of %s in %s", type, transaction.amount, transaction.category)
    return transaction


def update_transaction(db: Session, transaction: FinancialTransaction, updates: dict) -> FinancialTransaction:
    new_type = updates.get("type", transaction.type)
    _validate_type(new_type)
    if "amount" in updates and _as_decimal(updates["amount"]) <= 0:
        raise ValidationError("Amount must be greater than zero")
    if "account_id" in updates:
        _check_account(db, updates["account_id"])

    try:
        if "category" in updates or "type" in updates:
            resolved = ensure_category(db, updates.get("category", transaction.category), new_type, commit=False)
            updates["category"] = resolved.name
        for key, value in updates.items():
            if key == "amount":
                value = _money(_as_decimal(value))
            setattr(transaction, key, value)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(transaction)
    return transaction


def charity_transactions(db: Session) -> List[FinancialTransaction]:
    return list_transactions(db, type=INCOME, category=CHARITY_CATEGORY)


def record_charity_collection(
    db: Session,
    *,
    event_id: int,
    amount: Decimal,
    account_id: int,
    collected_on: date,
    description: Optional[str] = None,
    created_by_user_id: Optional[int] = None,
) -> FinancialTransaction:
    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    label = description or f"Tronco - {event.title}"
    return create_transaction(
        db,
        date=collected_on,
        description=label,
        category=CHARITY_CATEGORY,
        type=INCOME,
        amount=amount,
        account_id=account_id,
        created_by_user_id=created_by_user_id,
    )


def rename_category(db: Session, category: FinancialCategory, new_name: str) -> FinancialCategory:
    """Rename a category and carry its transactions and budgets along."""
    cleaned = (new_name or "").strip()
    if not cleaned:
        raise ValidationError("Category name is required")
    if cleaned == category.name:
        return category
    clash = (
        db.query(FinancialCategory)
        .filter(
            FinancialCategory.name == cleaned,
            FinancialCategory.type == category.type,
            FinancialCategory.id != category.id,
        )
        .first()
    )
    if clash:
        raise ConflictError(f"Category '{cleaned}' already exists for {category.type}")

    old_name = category.name
    try:
        db.query(FinancialTransaction).filter(
            FinancialTransaction.category == old_name, FinancialTransaction.type == category.type
        ).update({FinancialTransaction.category: cleaned}, synchronize_session=False)
        db.query(Budget).filter(Budget.category == old_name, Budget.type == category.type).update(
            {Budget.category: cleaned}, synchronize_session=False
        )
        if category.type == INCOME:
            db.query(FinancialGoal).filter(FinancialGoal.linked_category == old_name).update(
                {FinancialGoal.linked_category: cleaned}, synchronize_session=False
            )
        category.name = cleaned
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(category)
    return category
