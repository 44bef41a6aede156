"""ORM models for the stock kernel."""

from stock_kernel.models.reservation import StockReservationModel
from stock_kernel.models.stock_movement import StockMovementModel
from stock_kernel.models.stock_record import StockRecordModel

__all__ = [
    "StockRecordModel",
    "StockReservationModel",
    "StockMovementModel",
]
