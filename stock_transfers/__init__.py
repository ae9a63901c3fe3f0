"""
Stock Transfers Package.

============================================================
PURPOSE
============================================================
Hub-to-store stock movement:

- BalancedStockAllocator  surplus distribution per product
- TransferPolicyService   demand signal -> proposed order
- TransferOrder           lifecycle-checked value object
- TransferOrderRepository idempotent persistence

============================================================
"""

from .types import (
    TransferStatus,
    TransferPriority,
    TransferLine,
    TransferOrder,
    Outlet,
    ProductStock,
    AllocationRow,
)
from .state_machine import VALID_TRANSITIONS, TransitionGuard
from .allocator import BalancedStockAllocator
from .repository import TransferOrderRepository
from .policy import TransferSignal, TransferPolicyService, orders_from_allocation


__all__ = [
    # Types
    "TransferStatus",
    "TransferPriority",
    "TransferLine",
    "TransferOrder",
    "Outlet",
    "ProductStock",
    "AllocationRow",
    # State machine
    "VALID_TRANSITIONS",
    "TransitionGuard",
    # Components
    "BalancedStockAllocator",
    "TransferOrderRepository",
    "TransferSignal",
    "TransferPolicyService",
    "orders_from_allocation",
]
