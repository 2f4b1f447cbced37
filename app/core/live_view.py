"""
Coordinador de vistas en vivo.

Multiplexa un único listener del almacén por colección entre cualquier número
de observadores (dashboard, lista de viajes, seguimiento). Cada observador
recibe siempre el snapshot completo y ordenado, nunca un diff.

Entrega por observador:
- Un worker (tarea asyncio) por observador entrega los snapshots en el orden
  en que el almacén los emite.
- Si llegan varios snapshots mientras el observador procesa el anterior, solo
  se entrega el más reciente ("gana el último"); nunca uno viejo después de
  uno nuevo.
- Desuscribirse es idempotente, corta las entregas futuras de inmediato y no
  cancela una entrega en curso.

Las entregas corren en el event loop donde se registraron los observadores;
los snapshots que el almacén emite desde el threadpool se pasan a ese loop
con `call_soon_threadsafe`, en el mismo orden en que se emitieron.
"""
import asyncio
import inspect
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from fastapi.concurrency import run_in_threadpool

from app.core.errors import store_errors
from app.core.store import DocumentStore

logger = logging.getLogger(__name__)

Snapshot = List[Any]
ObserverCallback = Callable[[Any], Union[None, Awaitable[None]]]

# Valor que una transformación devuelve para omitir la entrega
SKIP = object()


class _Observer:
    def __init__(self, collection: str, callback: ObserverCallback):
        self.collection = collection
        self.callback = callback
        self.active = True
        self.pushed = False
        self._pending: Optional[Snapshot] = None
        self._has_pending = False
        self.task: Optional[asyncio.Task] = None

    def push(self, snapshot: Snapshot) -> Optional[asyncio.Task]:
        """Deja el snapshot pendiente y arranca el worker si no está corriendo"""
        if not self.active:
            return None
        self.pushed = True
        self._pending = snapshot
        self._has_pending = True
        if self.task is None or self.task.done():
            self.task = asyncio.get_running_loop().create_task(self._run())
            return self.task
        return None

    async def _run(self):
        while self.active and self._has_pending:
            snapshot = self._pending
            self._pending = None
            self._has_pending = False
            try:
                result = self.callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Observador de %s falló al procesar el snapshot", self.collection)

    def close(self):
        self.active = False
        self._pending = None
        self._has_pending = False


class LiveViewCoordinator:
    def __init__(self, store: DocumentStore):
        self.store = store
        self._observers: Dict[str, List[_Observer]] = {}
        self._unlisteners: Dict[str, Callable[[], None]] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def add_observer(self, collection: str, callback: ObserverCallback) -> Callable[[], None]:
        """
        Registra un observador para la colección y le entrega el snapshot actual.

        Args:
            collection: "cabs", "trips" o "expenses"
            callback: función o corrutina que recibe la lista completa

        Returns:
            Función sin argumentos que quita el observador (idempotente)
        """
        self.store.model_for(collection)
        self._loop = asyncio.get_running_loop()
        observer = _Observer(collection, callback)
        observers = self._observers.setdefault(collection, [])
        observers.append(observer)
        if collection not in self._unlisteners:
            logger.info("Abriendo listener del almacén para %s", collection)
            self._unlisteners[collection] = self.store.listen(
                collection, partial(self._on_snapshot, collection))

        try:
            with store_errors(f"leer el snapshot de {collection}"):
                snapshot = await run_in_threadpool(self.store.snapshot, collection)
        except Exception:
            self._remove(observer)
            raise
        # Si ya llegó un snapshot del listener durante la lectura, es igual o más nuevo
        if not observer.pushed:
            self._track(observer.push(snapshot))
        return partial(self._remove, observer)

    def observer_count(self, collection: str) -> int:
        return len(self._observers.get(collection, ()))

    async def flush(self):
        """Espera a que terminen todas las entregas pendientes"""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending)

    def _on_snapshot(self, collection: str, snapshot: Snapshot):
        loop = self._loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is None or running is loop:
            self._dispatch(collection, snapshot)
        else:
            loop.call_soon_threadsafe(self._dispatch, collection, snapshot)

    def _dispatch(self, collection: str, snapshot: Snapshot):
        # Copia: quitar un observador durante el reparto no afecta a los demás
        for observer in tuple(self._observers.get(collection, ())):
            self._track(observer.push(snapshot))

    def _track(self, task: Optional[asyncio.Task]):
        if task is None:
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _remove(self, observer: _Observer):
        observers = self._observers.get(observer.collection)
        if not observers or observer not in observers:
            return
        observer.close()
        observers.remove(observer)
        if not observers:
            del self._observers[observer.collection]
            unlisten = self._unlisteners.pop(observer.collection, None)
            if unlisten:
                logger.info("Cerrando listener del almacén para %s",
                            observer.collection)
                unlisten()


def transform_callback(callback: ObserverCallback, transform: Callable[[Snapshot], Any]) -> ObserverCallback:
    """Aplica `transform` al snapshot antes de entregarlo; SKIP omite la entrega"""
    async def deliver(snapshot: Snapshot):
        value = transform(snapshot)
        if value is SKIP:
            return
        result = callback(value)
        if inspect.isawaitable(result):
            await result
    return deliver
