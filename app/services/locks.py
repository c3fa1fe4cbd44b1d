"""
Locks por producto para serializar las escrituras de stock.

Cada producto tiene su propio `threading.Lock`: dos commits sobre el mismo
producto nunca se solapan y productos distintos no se bloquean entre sí.
Con varios procesos la exclusión la da el `SELECT ... FOR UPDATE` del ledger.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Dict

from app.services.errors import StockBusy

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = float(os.getenv("STOCK_LOCK_TIMEOUT", 2))  # segundos por intento
LOCK_RETRIES = int(os.getenv("STOCK_LOCK_RETRIES", 3))


class ProductLockRegistry:
    """Registro de locks, uno por id de producto."""

    def __init__(self, timeout: float = LOCK_TIMEOUT, retries: int = LOCK_RETRIES):
        self.timeout = timeout
        self.retries = retries
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def get(self, product_id: int) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(product_id, threading.Lock())

    @contextmanager
    def hold(self, product_id: int):
        """Retiene el lock del producto o lanza `StockBusy` tras agotar los reintentos."""
        lock = self.get(product_id)
        for attempt in range(1, self.retries + 1):
            if lock.acquire(timeout=self.timeout):
                break
            logger.warning(
                "Lock del producto %s ocupado (intento %s de %s)",
                product_id,
                attempt,
                self.retries,
            )
        else:
            raise StockBusy()

        try:
            yield
        finally:
            lock.release()


# Instanciamos para compartirla entre todas las peticiones del proceso
product_locks = ProductLockRegistry()
