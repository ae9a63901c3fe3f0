"""
Stock Transfers - Balanced Stock Allocator.

============================================================
PURPOSE
============================================================
Distribute surplus warehouse stock of ONE product across
destination outlets using stock levels only.

============================================================
ALGORITHM
============================================================
1. RESERVE
   - reserve = min(stock, max(reserve_min_units,
                             ceil(stock * reserve_percent)))
   - surplus = stock - reserve; nothing to do if <= 0

2. BASELINE NEED (by outlet stock tier)
   - 0 units   -> seed_qty_zero
   - < 5       -> top up to topup_low_to
   - < 20      -> mid_topup
   - >= 20     -> 0
   - capped at max_per_store

3. GREEDY PASS
   - Outlets ordered by (stock asc, weight desc, outlet_id asc)
   - Baseline needs met until surplus runs out

4. PROPORTIONAL PASS
   - pool = floor(remaining * proportional_share)
   - Each outlet gets floor(weight / total_weight * pool),
     limited by its remaining room under max_per_store

5. ROWS
   - One row per outlet with a non-zero allocation
   - capped = quantity >= max_per_store

Pure and stateless. Safe to run in parallel per product.

============================================================
"""

from typing import Dict, List, Mapping, Optional, Sequence, Union
import logging
import math

from decision_pipeline.config import AllocatorConfig

from .types import AllocationRow, Outlet, ProductStock


logger = logging.getLogger(__name__)


class BalancedStockAllocator:
    """
    Stock-only allocator.

    Usage:
        allocator = BalancedStockAllocator(AllocatorConfig(max_per_store=30))
        rows = allocator.allocate(
            ProductStock("P1", 100, {"A": 0, "B": 3}),
            [Outlet("A"), Outlet("B")],
        )
    """

    def __init__(self, config: Optional[AllocatorConfig] = None):
        self.config = config or AllocatorConfig()

    # ============================================================
    # PUBLIC API
    # ============================================================

    def allocate(
        self,
        product: Union[ProductStock, Mapping],
        outlets: Sequence[Union[Outlet, Mapping]],
        weights: Optional[Mapping[str, float]] = None,
    ) -> List[AllocationRow]:
        """
        Allocate one product's surplus across outlets.

        Args:
            product: Warehouse and outlet stock for the product
            outlets: Destination outlets
            weights: Optional outlet_id -> weight; falls back to
                turnover_rate, then default_turnover_pct

        Returns:
            Allocation rows in allocation order
        """
        product = self._as_product(product)
        outlets = [o if isinstance(o, Outlet) else Outlet.from_dict(o) for o in outlets]
        weights = weights or {}
        cfg = self.config

        warehouse = max(0, int(product.warehouse_stock))
        if not product.product_id or warehouse <= 0 or not outlets:
            return []

        surplus = warehouse - self.reserve_for(warehouse)
        if surplus <= 0:
            logger.debug(f"No surplus for {product.product_id} (stock={warehouse})")
            return []

        stocks = {o.outlet_id: product.stock_at(o.outlet_id) for o in outlets}
        needs = {oid: min(self.baseline_need(stock), cfg.max_per_store) for oid, stock in stocks.items()}
        outlet_weights = {o.outlet_id: self._weight_for(o, weights) for o in outlets}

        order = sorted(
            stocks,
            key=lambda oid: (stocks[oid], -outlet_weights[oid], oid),
        )

        allocation: Dict[str, int] = {}
        remaining = surplus

        # Greedy baseline pass
        for oid in order:
            if remaining <= 0:
                break
            give = min(needs[oid], remaining, cfg.max_per_store)
            if give > 0:
                allocation[oid] = allocation.get(oid, 0) + give
                remaining -= give

        # Proportional pass
        if remaining > 0 and cfg.proportional_share > 0:
            pool = min(int(math.floor(remaining * cfg.proportional_share)), remaining)
            total_weight = sum(outlet_weights.values()) or 1.0
            if pool > 0:
                for oid in order:
                    share = int(math.floor(outlet_weights[oid] / total_weight * pool))
                    if share <= 0:
                        continue
                    room = cfg.max_per_store - allocation.get(oid, 0)
                    give = max(0, min(share, room, remaining))
                    if give > 0:
                        allocation[oid] = allocation.get(oid, 0) + give
                        remaining -= give
                        if remaining <= 0:
                            break

        rows = [
            AllocationRow(
                outlet_id=oid,
                product_id=product.product_id,
                quantity=qty,
                capped=qty >= cfg.max_per_store,
            )
            for oid, qty in allocation.items()
            if qty > 0
        ]

        logger.info(
            f"Allocated {surplus - remaining}/{surplus} surplus units of {product.product_id} "
            f"across {len(rows)} outlets"
        )
        return rows

    # ============================================================
    # HELPERS
    # ============================================================

    def reserve_for(self, warehouse_stock: int) -> int:
        """Hub reserve floor, never more than the stock itself."""
        cfg = self.config
        pct_units = math.ceil(round(warehouse_stock * cfg.reserve_percent, 9))
        return min(warehouse_stock, max(cfg.reserve_min_units, pct_units))

    def baseline_need(self, stock: int) -> int:
        """Uncapped baseline need for an outlet holding ``stock`` units."""
        cfg = self.config
        if stock <= 0:
            return cfg.seed_qty_zero
        if stock < 5:
            return max(0, cfg.topup_low_to - stock)
        if stock < 20:
            return cfg.mid_topup
        return 0

    def _weight_for(self, outlet: Outlet, weights: Mapping[str, float]) -> float:
        if outlet.outlet_id in weights and weights[outlet.outlet_id] is not None:
            return max(0.0, float(weights[outlet.outlet_id]))
        if outlet.turnover_rate is not None:
            return max(0.0, float(outlet.turnover_rate))
        return float(self.config.default_turnover_pct)

    @staticmethod
    def _as_product(product: Union[ProductStock, Mapping]) -> ProductStock:
        if isinstance(product, ProductStock):
            return product
        return ProductStock(
            product_id=str(product.get("product_id") or ""),
            warehouse_stock=int(product.get("warehouse_stock") or 0),
            outlet_stocks=product.get("outlet_stocks") or {},
        )
