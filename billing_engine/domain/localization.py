"""Locale-aware display strings for statements, due dates and generated transactions"""

from datetime import date
from typing import Callable, Dict

from billing_engine.domain.models import StatementPeriod

PT_BR = "pt-BR"
EN = "en"

_MONTHS = {
    PT_BR: [
        "janeiro", "fevereiro", "março", "abril", "maio", "junho",
        "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
    ],
    EN: [
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ],
}

_MONTHS_SHORT = {
    PT_BR: ["Jan", "Fev", "Mar", "Abr", "Mai", "Jun", "Jul", "Ago", "Set", "Out", "Nov", "Dez"],
    EN: ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"],
}

MESSAGES: Dict[str, Dict[str, Callable[..., str]]] = {
    PT_BR: {
        "auto_payment_description": lambda card, month_year: f"Pagamento Cartão {card} - Fatura {month_year}",
        "payoff_description": lambda description: f"Quitação: {description}",
        "installment_description": lambda description, n, total: f"{description} ({n}/{total})",
        "uncategorized": lambda: "Sem Categoria",
    },
    EN: {
        "auto_payment_description": lambda card, month_year: f"{card} Payment - Statement {month_year}",
        "payoff_description": lambda description: f"Payoff: {description}",
        "installment_description": lambda description, n, total: f"{description} ({n}/{total})",
        "uncategorized": lambda: "Uncategorized",
    },
}


def normalize_locale(locale: str | None) -> str:
    """Map 'pt-br', 'pt_BR', 'pt' to pt-BR; anything else English"""
    if locale and locale.replace("_", "-").lower().startswith("pt"):
        return PT_BR
    return EN


def message(locale: str | None, key: str, *args) -> str:
    return MESSAGES[normalize_locale(locale)][key](*args)


def month_name(day: date, locale: str | None) -> str:
    return _MONTHS[normalize_locale(locale)][day.month - 1]


def month_year(day: date, locale: str | None) -> str:
    """Short month/year label, e.g. Dez/2024 or Dec/2024"""
    return f"{_MONTHS_SHORT[normalize_locale(locale)][day.month - 1]}/{day.year}"


def format_auto_payment_description(card_name: str, statement_period_end: date, locale: str | None) -> str:
    return message(locale, "auto_payment_description", card_name, month_year(statement_period_end, locale))


def format_statement_period(period: StatementPeriod, locale: str | None) -> str:
    """
    "6 de dezembro - 5 de janeiro de 2025" / "December 6 - January 5, 2025"

    The start year is repeated only when the period crosses a year boundary.
    """
    start, end = period.period_start, period.period_end
    start_month, end_month = month_name(start, locale), month_name(end, locale)

    if normalize_locale(locale) == PT_BR:
        if start.year == end.year:
            return f"{start.day} de {start_month} - {end.day} de {end_month} de {end.year}"
        return f"{start.day} de {start_month} de {start.year} - {end.day} de {end_month} de {end.year}"

    if start.year == end.year:
        return f"{start_month} {start.day} - {end_month} {end.day}, {end.year}"
    return f"{start_month} {start.day}, {start.year} - {end_month} {end.day}, {end.year}"


def format_payment_due_date(due_date: date, locale: str | None) -> str:
    if normalize_locale(locale) == PT_BR:
        return f"{due_date.day} de {month_name(due_date, locale)} de {due_date.year}"
    return f"{month_name(due_date, locale)} {due_date.day}, {due_date.year}"


def ordinal_suffix(day: int) -> str:
    if 11 <= day <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def format_due_day(day: int, locale: str | None) -> str:
    """'15' in Portuguese, '15th' in English"""
    if normalize_locale(locale) == PT_BR:
        return str(day)
    return f"{day}{ordinal_suffix(day)}"
