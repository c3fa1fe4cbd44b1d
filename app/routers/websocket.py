import logging
from typing import List

import anyio.from_thread
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """Guarda las conexiones activas de los paneles que muestran stock.
    Cada vez que se registra un movimiento se les avisa para que refresquen."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: str):
        """Envía un mensaje de texto a todos los clientes conectados.
        Una conexión que falla se descarta sin cortar el envío al resto."""
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message)
            except Exception:
                logger.warning("Conexión WebSocket descartada al emitir", exc_info=True)
                self.disconnect(connection)


manager = ConnectionManager()


def notify_from_thread(message: str):
    """Emite un mensaje desde una ruta sincrónica (corre en el threadpool de FastAPI).

    Un fallo al notificar nunca afecta al movimiento ya confirmado.
    """
    try:
        anyio.from_thread.run(manager.broadcast, message)
    except Exception:
        logger.warning("Error al emitir WebSocket: %s", message, exc_info=True)


@router.websocket("/ws/movimientos")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)

    try:
        # Mantenemos la conexión viva hasta que el cliente se desconecte.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
