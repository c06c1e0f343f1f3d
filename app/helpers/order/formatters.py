from datetime import datetime
from babel.dates import format_datetime, get_timezone
from babel.numbers import format_currency as babel_format_currency

STORE_TIMEZONE = "America/Sao_Paulo"


def format_currency(value: float, locale_str: str = 'pt_BR') -> str:
    return babel_format_currency(round(value or 0, 2), 'BRL', locale=locale_str)


def format_local_datetime(date: datetime, locale_str: str = 'pt_BR') -> str:
    """Data UTC no horário da loja, para logs e descrições ("18/10/2026 14:30")."""
    return format_datetime(date, "dd/MM/yyyy HH:mm", tzinfo=get_timezone(STORE_TIMEZONE), locale=locale_str)
