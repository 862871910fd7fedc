"""Worker que empuja estados de reservación a los canales externos."""

import asyncio
import logging
from datetime import timedelta
from uuid import uuid4

from pms.application.interfaces.clock import Clock
from pms.application.interfaces.sync_queue import SyncQueue
from pms.application.use_cases.process_sync_item import ProcessSyncItemUseCase

logger = logging.getLogger(__name__)


class SyncWorker:
    """
    Worker que consume la cola de sincronización con canales.

    Características:
    - Polling configurable a través del Clock
    - Orden por prioridad (las cancelaciones primero)
    - Backoff exponencial en reintentos (delegado al caso de uso)
    - Graceful shutdown con periodo de gracia
    """

    def __init__(
        self,
        sync_queue: SyncQueue,
        process_item: ProcessSyncItemUseCase,
        clock: Clock,
        worker_id: str | None = None,
        poll_interval_seconds: float = 1.0,
        batch_size: int = 20,
        shutdown_grace_seconds: float = 10.0,
    ) -> None:
        """
        Inicializa el worker.

        Args:
            sync_queue: Cola de sincronización.
            process_item: Caso de uso que procesa un elemento.
            clock: Servicio de reloj.
            worker_id: Identificador único del worker (auto-generado si no se provee).
            poll_interval_seconds: Intervalo entre polls cuando la cola está vacía.
            batch_size: Número máximo de elementos por ciclo.
            shutdown_grace_seconds: Tiempo máximo para terminar el lote en curso al detenerse.
        """
        self._queue = sync_queue
        self._process_item = process_item
        self._clock = clock
        self._worker_id = worker_id or f"sync-worker-{uuid4().hex[:8]}"
        self._poll_interval = timedelta(seconds=poll_interval_seconds)
        self._batch_size = batch_size
        self._shutdown_grace = shutdown_grace_seconds
        self._running = False
        self._busy = False
        self._task: asyncio.Task | None = None

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Inicia el ciclo de polling en segundo plano."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"SyncWorker {self._worker_id} iniciado")

    async def stop(self) -> None:
        """Detiene el worker; el lote en curso tiene el periodo de gracia para terminar."""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        if not self._busy:
            task.cancel()
        try:
            await asyncio.wait_for(task, timeout=self._shutdown_grace)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        logger.info(f"SyncWorker {self._worker_id} detenido")

    async def _run(self) -> None:
        while self._running:
            self._busy = True
            try:
                processed = await self.process_batch()
            except Exception as e:
                logger.exception(f"Error en ciclo del sync worker: {e}")
                processed = 0
            finally:
                self._busy = False
            if processed == 0 and self._running:
                await self._clock.sleep_until(self._clock.now() + self._poll_interval)

    async def process_batch(self) -> int:
        """
        Procesa un lote de elementos listos.

        Returns:
            Número de elementos procesados (cualquier resultado).
        """
        now = self._clock.now()
        items = await self._queue.claim_ready(now=now, limit=self._batch_size, worker_id=self._worker_id)
        if not items:
            return 0

        processed = 0
        for item in items:
            try:
                result = await self._process_item.execute(item, now=now)
                processed += 1
                logger.debug(f"Sync item {item.id} procesado: {result['status']}")
            except Exception as e:
                logger.exception(f"Error procesando sync item {item.id}: {e}")
        return processed
