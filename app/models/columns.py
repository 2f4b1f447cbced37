from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Marca de tiempo UTC con zona horaria en Python.

    En la base se guarda como UTC sin tzinfo (SQLite no conserva la zona);
    al leer se devuelve con `timezone.utc`. Un valor sin zona se toma como UTC.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return value.replace(tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normaliza un datetime a UTC con zona (sin zona se asume UTC)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
