from datetime import date
from typing import Optional

from flask import request

from ...errors import ValidationError
from ...utils.parsing import clean_string, parse_date


def current_actor(payload: Optional[dict] = None) -> Optional[str]:
    """Who is posting: the X-Actor header, else an ``actor`` field in the body."""
    actor = clean_string(request.headers.get('X-Actor'))
    if actor:
        return actor
    return clean_string((payload or {}).get('actor'))


def date_arg(name: str) -> Optional[date]:
    raw = request.args.get(name)
    if raw in (None, ''):
        return None
    parsed = parse_date(raw)
    if parsed is None:
        raise ValidationError(f"Query parameter '{name}' must be a YYYY-MM-DD date, got {raw!r}.")
    return parsed


def bool_arg(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'on'}
