"""
Errores del ledger de stock.

Cada error lleva un `code` estable (para que el panel muestre su propio mensaje)
y el `status_code` HTTP con el que lo traducen los routers.
"""

from fastapi import HTTPException, status


class StockError(Exception):
    code = "stock_error"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Error al registrar el movimiento."

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_http(self) -> HTTPException:
        """Convierte el error en la respuesta HTTP equivalente."""
        return HTTPException(
            status_code=self.status_code,
            detail={"code": self.code, "message": self.message},
        )


class ProductNotFound(StockError):
    code = "product_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Producto no encontrado o inactivo."


class MovementValidationError(StockError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "Datos del movimiento inválidos."


class QuantityNotIntegral(MovementValidationError):
    code = "quantity_not_integral"
    message = "La cantidad debe ser un número entero para productos por unidad."


class ZeroQuantity(MovementValidationError):
    code = "zero_quantity"
    message = "La cantidad no puede ser cero."


class InsufficientStock(StockError):
    code = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT
    message = "No hay stock suficiente para esta salida."


class NegativeResultingStock(StockError):
    code = "negative_resulting_stock"
    status_code = status.HTTP_409_CONFLICT
    message = "El ajuste dejaría el stock en negativo."


class StockBusy(StockError):
    code = "stock_busy"
    status_code = status.HTTP_409_CONFLICT
    message = "El producto está siendo modificado. Intenta de nuevo."


class StorageUnavailable(StockError):
    code = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Error de conexión con la base de datos."
