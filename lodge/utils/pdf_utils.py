import re
from datetime import date
from pathlib import Path
from textwrap import wrap
from typing import Iterable, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from ..config import settings
from .format_utils import format_brl, format_date_br

MARGIN_X = 56
MARGIN_Y = 56
LINE_HEIGHT = 15
MAX_CHARS_PER_LINE = 90


def _output_path(filename: str) -> Path:
    base = Path(settings.pdf_output_dir)
    base.mkdir(parents=True, exist_ok=True)
    return base / filename


def _write_pdf(filename: str, lines: Iterable[Optional[str]]) -> str:
    path = _output_path(filename)
    pdf_canvas = canvas.Canvas(str(path), pagesize=A4)
    _, height = A4

    def _new_page():
        text = pdf_canvas.beginText(MARGIN_X, height - MARGIN_Y)
        text.setFont("Helvetica", 11)
        text.setLeading(LINE_HEIGHT)
        return text

    text_stream = _new_page()
    for line in lines:
        normalized = "" if line is None else str(line)
        chunks = wrap(normalized, MAX_CHARS_PER_LINE) or [""]
        for chunk in chunks:
            if text_stream.getY() < MARGIN_Y:
                pdf_canvas.drawText(text_stream)
                pdf_canvas.showPage()
                text_stream = _new_page()
            text_stream.textLine(chunk)

    pdf_canvas.drawText(text_stream)
    pdf_canvas.showPage()
    pdf_canvas.save()
    return str(path)


def _header(title: str, subtitle: Optional[str] = None) -> List[str]:
    lines = [settings.lodge_name, title]
    if subtitle:
        lines.append(subtitle)
    lines.append(f"Emitido em {format_date_br(date.today())}")
    lines.append("")
    return lines


def generate_cash_flow_pdf(summary, start: date, end: date) -> str:
    lines = _header("Relatório de Fluxo de Caixa", f"Período: {format_date_br(start)} a {format_date_br(end)}")
    lines.append("Receitas por categoria")
    for name, amount in summary.income_by_category.items():
        lines.append(f"  {name}: {format_brl(amount)}")
    if not summary.income_by_category:
        lines.append("  Nenhuma receita no período.")
    lines.append("")
    lines.append("Despesas por categoria")
    for name, amount in summary.expense_by_category.items():
        lines.append(f"  {name}: {format_brl(amount)}")
    if not summary.expense_by_category:
        lines.append("  Nenhuma despesa no período.")
    lines.extend(
        [
            "",
            f"Total de receitas: {format_brl(summary.total_income)}",
            f"Total de despesas: {format_brl(summary.total_expense)}",
            f"Saldo do período: {format_brl(summary.balance)}",
        ]
    )
    filename = f"fluxo_caixa_{start.isoformat()}_{end.isoformat()}.pdf"
    return _write_pdf(filename, lines)


def generate_frequency_pdf(frequencies) -> str:
    total_sessions = frequencies[0].total_sessions if frequencies else 0
    lines = _header("Relatório de Frequência", f"Sessões finalizadas: {total_sessions}")
    for entry in frequencies:
        lines.append(f"{entry.name}: {entry.presences}/{entry.total_sessions} ({entry.percentage}%)")
    if not frequencies:
        lines.append("Nenhum irmão ativo cadastrado.")
    return _write_pdf(f"frequencia_{date.today().isoformat()}.pdf", lines)


def generate_minute_pdf(minute) -> str:
    lines = _header(minute.title, f"Sessão de {format_date_br(minute.date)}")
    body_lines = _html_to_plain_text_lines(minute.content)
    lines.extend(body_lines if body_lines else ["(ata sem conteúdo)"])
    lines.append("")
    lines.append("Assinaturas")
    for signature in minute.signatures:
        signer = (signature.user.full_name or signature.user.email) if signature.user else "Desconhecido"
        lines.append(f"  {signer} em {format_date_br(signature.signed_at)}")
    if not minute.signatures:
        lines.append("  Nenhuma assinatura registrada.")
    return _write_pdf(f"ata_{minute.id}.pdf", lines)


def _html_to_plain_text_lines(body_html: Optional[str]) -> List[str]:
    if not body_html:
        return []
    normalized = re.sub(r"<br\s*/?>|</p>|</li>|</h[1-6]>", "\n", body_html, flags=re.IGNORECASE)
    stripped = re.sub(r"<[^>]+>", "", normalized)
    stripped = stripped.replace("&nbsp;", " ").replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">")
    return [line.strip() for line in stripped.splitlines() if line.strip()]
