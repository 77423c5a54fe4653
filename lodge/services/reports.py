from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import Brother
from ..utils.csv_utils import rows_to_csv
from ..utils.format_utils import format_brl, format_cpf, format_date_br, format_phone
from . import attendance as attendance_service
from . import finance as finance_service
from . import messages as message_service


@dataclass
class CsvReport:
    filename: str
    content: str


def transactions_report(
    session: Session,
    type: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> CsvReport:
    transactions = finance_service.list_transactions(session, type=type, start=start, end=end)
    account_names = {}
    for transaction in transactions:
        if transaction.account_id and transaction.account_id not in account_names:
            account = transaction.account
            account_names[transaction.account_id] = account.name if account else ""

    headers = ["Data", "Descrição", "Categoria", "Tipo", "Valor", "Conta"]
    rows = [
        [
            format_date_br(transaction.date),
            transaction.description,
            transaction.category,
            transaction.type,
            format_brl(transaction.amount),
            account_names.get(transaction.account_id, ""),
        ]
        for transaction in transactions
    ]
    label = {"Receita": "receitas", "Despesa": "despesas"}.get(type or "", "transacoes")
    return CsvReport(filename=f"{label}.csv", content=rows_to_csv(headers, rows, bom=True))


def cash_flow_report(session: Session, start: date, end: date) -> CsvReport:
    summary = finance_service.cash_flow(session, start, end)
    headers = ["Tipo", "Categoria", "Valor"]
    rows: List[List[str]] = []
    for name, amount in summary.income_by_category.items():
        rows.append(["Receita", name, format_brl(amount)])
    for name, amount in summary.expense_by_category.items():
        rows.append(["Despesa", name, format_brl(amount)])
    rows.append(["Total", "Receitas", format_brl(summary.total_income)])
    rows.append(["Total", "Despesas", format_brl(summary.total_expense)])
    rows.append(["Total", "Saldo", format_brl(summary.balance)])
    filename = f"fluxo_caixa_{start.isoformat()}_{end.isoformat()}.csv"
    return CsvReport(filename=filename, content=rows_to_csv(headers, rows, bom=True))


def frequency_report(session: Session) -> CsvReport:
    frequencies = attendance_service.frequency_for_all(session)
    headers = ["Irmão", "Presenças", "Sessões", "Frequência (%)"]
    rows = [[entry.name, entry.presences, entry.total_sessions, entry.percentage] for entry in frequencies]
    return CsvReport(filename="frequencia.csv", content=rows_to_csv(headers, rows, bom=True))


def brothers_report(session: Session) -> CsvReport:
    brothers = session.query(Brother).order_by(Brother.name).all()
    headers = ["Nome", "Email", "Telefone", "CPF", "Grau", "Status", "Data de Iniciação", "Data de Nascimento"]
    rows = [
        [
            brother.name,
            brother.email,
            format_phone(brother.phone),
            format_cpf(brother.cpf),
            brother.degree,
            brother.status,
            format_date_br(brother.initiation_date),
            format_date_br(brother.dob),
        ]
        for brother in brothers
    ]
    return CsvReport(filename="irmaos.csv", content=rows_to_csv(headers, rows, bom=True))


def contact_messages_report(session: Session, status: Optional[str] = None) -> CsvReport:
    messages = message_service.list_messages(session, status=status)
    return CsvReport(filename=message_service.export_filename(), content=message_service.messages_to_csv(messages))
