"""
Almacén de documentos sobre SQLModel.

Cada colección (`cabs`, `trips`, `expenses`) es una tabla SQLModel. El almacén
ofrece CRUD, consultas por igualdad/rango con orden, incrementos numéricos
atómicos, un reloj de servidor monótono y listeners por colección que reciben
el snapshot completo y ordenado después de cada escritura.

Los métodos son síncronos: los repositorios los ejecutan en el threadpool de
FastAPI. Las escrituras y su notificación se serializan con un lock, así que
los listeners pueden ser llamados desde cualquier hilo del threadpool.

Los errores de SQLAlchemy se propagan tal cual; los repositorios los envuelven
en `StoreUnavailableError`.
"""
import logging
import threading
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from sqlalchemy import Date, DateTime, Enum as SAEnum, update
from sqlmodel import Session, SQLModel, select

from app.models import Cab, Trip, Expense
from app.models.columns import UTCDateTime, as_utc

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[str, Type[SQLModel]] = {
    "cabs": Cab,
    "trips": Trip,
    "expenses": Expense,
}

# Orden del snapshot en vivo de cada colección (descendente)
SNAPSHOT_ORDER: Dict[str, Tuple[str, ...]] = {
    "cabs": ("created_at",),
    "trips": ("created_at",),
    "expenses": ("date", "created_at"),
}

Listener = Callable[[List[SQLModel]], None]
RangeFilter = Tuple[str, Any, Any]


class DocumentStore:
    def __init__(self, engine):
        self.engine = engine
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._last_timestamp: Optional[datetime] = None
        # Serializa escritura + notificación: los snapshots salen en orden de commit
        self._write_lock = threading.RLock()

    # --- utilidades ---

    def now(self) -> datetime:
        """Marca de tiempo del servidor (UTC), estrictamente creciente"""
        current = datetime.now(timezone.utc)
        if self._last_timestamp is not None and current <= self._last_timestamp:
            current = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = current
        return current

    def model_for(self, collection: str) -> Type[SQLModel]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Colección desconocida: {collection}")

    def column_for(self, collection: str, field: str):
        model = self.model_for(collection)
        if field not in model.__table__.c:
            raise ValueError(f"{collection} no tiene el campo '{field}'")
        return model.__table__.c[field]

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def _coerce_value(self, column, value):
        if value is None:
            return value
        if isinstance(column.type, SAEnum) and column.type.enum_class is not None:
            return column.type.enum_class(value)
        return value

    def coerce_bound(self, column, value, upper: bool):
        if value is None:
            return value
        if isinstance(column.type, (DateTime, UTCDateTime)):
            if isinstance(value, datetime):
                return as_utc(value)
            if isinstance(value, date):
                # Un día completo (UTC): inicio o fin del día
                return datetime.combine(
                    value, time.max if upper else time.min, tzinfo=timezone.utc)
        elif isinstance(column.type, Date) and isinstance(value, datetime):
            return value.date()
        return value

    # --- lectura ---

    def get(self, collection: str, record_id: str) -> Optional[SQLModel]:
        model = self.model_for(collection)
        with self._session() as session:
            return session.get(model, record_id)

    def query(
        self,
        collection: str,
        equals: Optional[Dict[str, Any]] = None,
        ranges: Iterable[RangeFilter] = (),
        order_by: Optional[Sequence[str]] = None,
        descending: bool = True,
    ) -> List[SQLModel]:
        """Filtros de igualdad y de rango (inclusivos) combinados con AND"""
        model = self.model_for(collection)
        statement = select(model)
        for field, value in (equals or {}).items():
            column = self.column_for(collection, field)
            statement = statement.where(column == self._coerce_value(column, value))
        for field, start, end in ranges:
            column = self.column_for(collection, field)
            if start is not None:
                statement = statement.where(
                    column >= self.coerce_bound(column, start, upper=False))
            if end is not None:
                statement = statement.where(
                    column <= self.coerce_bound(column, end, upper=True))

        order_fields = list(order_by or SNAPSHOT_ORDER[collection])
        if "id" not in order_fields:
            order_fields.append("id")
        for field in order_fields:
            column = self.column_for(collection, field)
            statement = statement.order_by(column.desc() if descending else column.asc())

        with self._session() as session:
            return list(session.exec(statement).all())

    def snapshot(self, collection: str) -> List[SQLModel]:
        return self.query(collection)

    # --- escritura ---

    def add(self, collection: str, values: Dict[str, Any]) -> SQLModel:
        model = self.model_for(collection)
        record = model(**values)
        with self._write_lock:
            with self._session() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
            self._emit(collection)
        return record

    def update(self, collection: str, record_id: str, values: Dict[str, Any]) -> Optional[SQLModel]:
        model = self.model_for(collection)
        with self._write_lock:
            with self._session() as session:
                record = session.get(model, record_id)
                if not record:
                    return None
                for key, value in values.items():
                    setattr(record, key, value)
                session.add(record)
                session.commit()
                session.refresh(record)
            self._emit(collection)
        return record

    def update_where(
        self,
        collection: str,
        record_id: str,
        expected: Dict[str, Any],
        values: Dict[str, Any],
    ) -> Optional[SQLModel]:
        """
        UPDATE condicionado: solo escribe si el registro sigue cumpliendo
        `expected`. Devuelve el registro actualizado o None si no cambió nada.
        """
        model = self.model_for(collection)
        statement = update(model).where(model.id == record_id)
        for field, value in expected.items():
            column = self.column_for(collection, field)
            statement = statement.where(column == self._coerce_value(column, value))
        statement = statement.values(**values)
        with self._write_lock:
            with self._session() as session:
                result = session.connection().execute(statement)
                session.commit()
                if result.rowcount == 0:
                    return None
                record = session.get(model, record_id)
            self._emit(collection)
        return record

    def increment(
        self,
        collection: str,
        record_id: str,
        deltas: Dict[str, float],
        values: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """UPDATE campo = campo + delta; False si el registro no existe"""
        model = self.model_for(collection)
        assignments = dict(values or {})
        for field, delta in deltas.items():
            column = self.column_for(collection, field)
            assignments[field] = column + delta
        statement = update(model).where(model.id == record_id).values(**assignments)
        with self._write_lock:
            with self._session() as session:
                result = session.connection().execute(statement)
                session.commit()
                changed = result.rowcount > 0
            if changed:
                self._emit(collection)
        return changed

    def delete(self, collection: str, record_id: str) -> bool:
        model = self.model_for(collection)
        with self._write_lock:
            with self._session() as session:
                record = session.get(model, record_id)
                if not record:
                    return False
                session.delete(record)
                session.commit()
            self._emit(collection)
        return True

    # --- notificaciones ---

    def listen(self, collection: str, listener: Listener) -> Callable[[], None]:
        """Registra un listener de colección; devuelve la función para quitarlo"""
        self.model_for(collection)
        self._listeners[collection].append(listener)

        def unlisten():
            if listener in self._listeners[collection]:
                self._listeners[collection].remove(listener)

        return unlisten

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, ()))

    def _emit(self, collection: str):
        listeners = list(self._listeners.get(collection, ()))
        if not listeners:
            return
        # La escritura ya está confirmada; una falla al notificar no la revierte
        try:
            snapshot = self.snapshot(collection)
        except Exception:
            logger.exception("No se pudo leer el snapshot de %s", collection)
            return
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Listener de %s falló", collection)
