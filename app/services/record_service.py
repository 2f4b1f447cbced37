import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Type, Union

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlmodel import SQLModel

from app.core.errors import NotFoundError, ValidationError, store_errors
from app.core.live_view import LiveViewCoordinator, SKIP, transform_callback
from app.core.store import DocumentStore

logger = logging.getLogger(__name__)

Payload = Union[Dict[str, Any], BaseModel]


def describe_validation_error(error: PydanticValidationError) -> str:
    """Resume los errores de pydantic en un mensaje de una línea"""
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item.get("loc", ())) or "payload"
        parts.append(f"{field}: {item.get('msg')}")
    return "; ".join(parts)


class RecordService:
    """
    Repositorio genérico de una colección del almacén.

    Las subclases definen la colección, los esquemas de create/update y los
    campos que solo asigna el servidor. Las validaciones se hacen antes de
    cualquier escritura, así que un error local nunca deja escrituras parciales.
    """
    collection: str = ""
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]
    # Campos que nunca se aceptan en update
    server_fields: FrozenSet[str] = frozenset({"id", "created_at", "updated_at"})
    # Campos que no admiten None en update
    required_fields: FrozenSet[str] = frozenset()

    def __init__(self, store: DocumentStore, live_view: LiveViewCoordinator):
        self.store = store
        self.live_view = live_view

    # --- hooks para subclases ---

    def _server_defaults(self) -> Dict[str, Any]:
        return {}

    def _normalize(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return values

    async def _check_create(self, values: Dict[str, Any]):
        pass

    async def _check_update(self, record: SQLModel, changes: Dict[str, Any]):
        pass

    async def _apply_update(self, record: SQLModel, changes: Dict[str, Any]) -> Optional[SQLModel]:
        return await self._store_call(
            f"actualizar {record.id} en {self.collection}",
            self.store.update, self.collection, record.id, changes)

    # --- validación ---

    def _validate(self, schema: Type[BaseModel], data: Payload, partial: bool = False) -> Dict[str, Any]:
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=partial)
        if not isinstance(data, dict):
            raise ValidationError(
                f"{self.collection}: se esperaba un objeto con los campos del registro")
        try:
            validated = schema.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"{self.collection}: {describe_validation_error(e)}") from e
        return validated.model_dump(exclude_unset=partial)

    def _reject_server_fields(self, patch: Dict[str, Any]):
        forbidden = sorted(set(patch) & self.server_fields)
        if forbidden:
            raise ValidationError(
                f"{self.collection}: campos administrados por el servidor: {', '.join(forbidden)}")

    async def _store_call(self, action: str, func: Callable, *args, **kwargs):
        """Ejecuta una operación síncrona del almacén en el threadpool"""
        with store_errors(action):
            return await run_in_threadpool(func, *args, **kwargs)

    # --- CRUD ---

    async def create(self, data: Payload) -> str:
        values = self._normalize(self._validate(self.create_schema, data))
        await self._check_create(values)
        now = self.store.now()
        values.update(self._server_defaults())
        values["created_at"] = now
        values["updated_at"] = now
        record = await self._store_call(
            f"crear el registro en {self.collection}", self.store.add, self.collection, values)
        logger.info("%s: registro %s creado", self.collection, record.id)
        return record.id

    async def update(self, record_id: str, patch: Payload) -> SQLModel:
        if isinstance(patch, BaseModel):
            patch = patch.model_dump(exclude_unset=True)
        if isinstance(patch, dict):
            self._reject_server_fields(patch)
        changes = self._normalize(self._validate(self.update_schema, patch, partial=True))
        nulls = sorted(f for f in self.required_fields if f in changes and changes[f] is None)
        if nulls:
            raise ValidationError(
                f"{self.collection}: campos requeridos sin valor: {', '.join(nulls)}")

        record = await self.get_by_id(record_id)
        if not record:
            raise NotFoundError(self.collection, record_id)
        await self._check_update(record, changes)

        changes["updated_at"] = self.store.now()
        updated = await self._apply_update(record, changes)
        if updated is None:
            raise NotFoundError(self.collection, record_id)
        return updated

    async def delete(self, record_id: str) -> bool:
        """Borra el registro sin cascada ni verificación de referencias"""
        deleted = await self._store_call(
            f"borrar {record_id} de {self.collection}", self.store.delete, self.collection, record_id)
        if deleted:
            logger.info("%s: registro %s borrado", self.collection, record_id)
        return deleted

    async def get_all(self) -> List[SQLModel]:
        return await self._store_call(
            f"leer {self.collection}", self.store.snapshot, self.collection)

    async def get_by_id(self, record_id: str) -> Optional[SQLModel]:
        return await self._store_call(
            f"leer {record_id} de {self.collection}", self.store.get, self.collection, record_id)

    async def query_by_range(
        self,
        field: str,
        start: Any,
        end: Any,
        extra_equals: Optional[Dict[str, Any]] = None,
    ) -> List[SQLModel]:
        """
        Registros con `field` dentro de [start, end] que además cumplen todos
        los filtros de igualdad, ordenados por `field` descendente.
        """
        equals = {k: v for k, v in (extra_equals or {}).items() if v is not None}
        try:
            return await self._store_call(
                f"consultar {self.collection} por {field}",
                self.store.query,
                self.collection,
                equals=equals,
                ranges=[(field, start, end)],
                order_by=[field],
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

    # --- vistas en vivo ---

    async def subscribe(self, callback: Callable) -> Callable[[], None]:
        return await self.live_view.add_observer(self.collection, callback)

    async def subscribe_by_range(self, field: str, start: Any, end: Any, callback: Callable) -> Callable[[], None]:
        """Vista en vivo filtrada por rango; el filtro se aplica sobre cada snapshot"""
        try:
            column = self.store.column_for(self.collection, field)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        low = self.store.coerce_bound(column, start, upper=False)
        high = self.store.coerce_bound(column, end, upper=True)

        def within(snapshot):
            selected = []
            for record in snapshot:
                value = getattr(record, field)
                if value is None:
                    continue
                if low is not None and value < low:
                    continue
                if high is not None and value > high:
                    continue
                selected.append(record)
            selected.sort(key=lambda r: getattr(r, field), reverse=True)
            return selected

        return await self.subscribe(transform_callback(callback, within))

    def _single(self, record_id: str):
        def pick(snapshot):
            for record in snapshot:
                if record.id == record_id:
                    return record
            return SKIP
        return pick
