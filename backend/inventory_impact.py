# backend/inventory_impact.py

"""
Inventory Impact - order line → stock projection

Builds the "inventory impact" preview shown before an order is committed:
for every order line (and every line deleted during the edit) it works out
the signed stock change and runs it through the UnitConversionEngine.

Business rules:
1) Customer orders remove stock, purchase orders add stock
2) Editing an order only moves the difference against the original line
3) A deleted line reverses what the line had committed
4) A line added and deleted in the same session (transient) never touches stock
5) Missing packing constants fall back to the configured defaults
6) Negative stock is previewed as-is; clamping is a commit-time choice
"""

import math
from enum import Enum
from typing import Optional, List, Dict, Iterable, Mapping, Union
from pydantic import BaseModel, ConfigDict
import logging

from settings import Settings, get_settings
from unit_conversion_engine import (
    UnitConversionEngine,
    ConversionError,
    PackingSpec,
    SignedChange,
    StockLevel,
    is_layered_unit
)

logger = logging.getLogger(__name__)

_engine = UnitConversionEngine()

# ==================== ENUMS ====================

class OrderKind(str, Enum):
    """Which way active order lines move stock"""
    CUSTOMER_ORDER = "CUSTOMER_ORDER"
    PURCHASE_ORDER = "PURCHASE_ORDER"


class StockStatus(str, Enum):
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class EntryField(str, Enum):
    """The field the user typed into on an order item form"""
    QUANTITY = "QUANTITY"
    PALLETS_LAYERS = "PALLETS_LAYERS"


# ==================== ERROR CLASSES ====================

class VariantNotFoundError(ConversionError):
    """Order line points at a variant with no stock snapshot"""
    def __init__(self, variant_id: str):
        super().__init__(
            "VARIANT_NOT_FOUND",
            f"No stock snapshot for product variant '{variant_id}'.",
            field="variant_id",
            severity="HARD_ERROR"
        )


# ==================== DATA MODELS ====================

class VariantSnapshot(BaseModel):
    """Product variant row joined with its product's packing data"""
    model_config = ConfigDict(extra="ignore")

    variant_id: str
    variant_name: str = ""
    product_name: str = ""
    unit: Optional[str] = None
    quantity: Optional[float] = None
    pallets: Optional[int] = None
    layers: Optional[int] = None
    warning_threshold: Optional[float] = None
    critical_threshold: Optional[float] = None
    feet_per_layer: Optional[float] = None
    layers_per_pallet: Optional[int] = None

    @property
    def is_layered(self) -> bool:
        return is_layered_unit(self.unit)

    def stock_level(self) -> StockLevel:
        return StockLevel(
            quantity=self.quantity or 0,
            pallets=self.pallets or 0,
            layers=self.layers or 0
        )


class OrderLine(BaseModel):
    """A customer order or purchase order item"""
    model_config = ConfigDict(extra="ignore")

    id: str
    variant_id: Optional[str] = None
    quantity: float = 0
    pallets: Optional[float] = None
    layers: Optional[float] = None
    is_pallet: bool = False
    variant_name: Optional[str] = None
    product_name: Optional[str] = None
    is_transient: bool = False


class InventoryChange(BaseModel):
    """
    One row of the impact preview.

    change_* are signed stock deltas: positive puts stock back on the
    shelf, negative takes it off. Pallet/layer columns are None for
    non-layered units.
    """
    variant_id: str
    variant_name: str = ""
    product_name: str = ""
    unit: Optional[str] = None
    current_quantity: float = 0
    current_pallets: Optional[int] = None
    current_layers: Optional[int] = None
    change_quantity: float = 0
    change_pallets: Optional[int] = None
    change_layers: Optional[int] = None
    new_quantity: float = 0
    new_pallets: int = 0
    new_layers: int = 0
    warning_threshold: Optional[float] = None
    critical_threshold: Optional[float] = None
    feet_per_layer: Optional[float] = None
    layers_per_pallet: Optional[int] = None
    is_deleted: bool = False
    is_transient: bool = False

    @property
    def is_layered(self) -> bool:
        return is_layered_unit(self.unit)

    @property
    def has_no_change(self) -> bool:
        return (
            self.change_quantity == 0
            and not self.change_pallets
            and not self.change_layers
        )

    @property
    def adds_stock(self) -> bool:
        return self.change_quantity > 0

    @property
    def status(self) -> StockStatus:
        return stock_status(self.new_quantity, self.warning_threshold, self.critical_threshold)


class LineEntry(BaseModel):
    """Quantity and pallet/layer values of an order item form, kept in sync"""
    quantity: float
    pallets: int
    layers: int


# ==================== HELPERS ====================

def resolve_packing_spec(
    feet_per_layer: Optional[float],
    layers_per_pallet: Optional[int],
    settings: Optional[Settings] = None
) -> PackingSpec:
    """
    Packing constants for a product, falling back to the configured
    defaults when the stored value is null or zero.

    Raises:
        InvalidPackingSpecError: If a stored constant is negative or
            layers_per_pallet is fractional
    """
    settings = settings or get_settings()
    return PackingSpec(
        feet_per_layer=feet_per_layer or settings.default_feet_per_layer,
        layers_per_pallet=layers_per_pallet or settings.default_layers_per_pallet
    )


def normalize_order_line(line: OrderLine) -> OrderLine:
    """Quantity rounds UP to a whole unit; pallets and layers round DOWN."""
    return line.model_copy(update={
        "quantity": math.ceil(line.quantity),
        "pallets": math.floor(line.pallets or 0),
        "layers": math.floor(line.layers or 0)
    })


def line_delta(
    line: OrderLine,
    original: Optional[OrderLine],
    is_layered: bool,
    spec: Optional[PackingSpec] = None
) -> SignedChange:
    """
    Demand added by a line, unsigned by order direction.

    A new line (no original) contributes its full amount; an edited line
    contributes the difference against its original state. Pallet/layer
    deltas are only reported for pallet-based lines of layered units.

    With a spec, quantity-based lines of layered units are compared in
    whole layers: 250 → 260 sq ft at 100 ft/layer fills 3 layers either
    way and moves nothing.
    """
    line = normalize_order_line(line)
    base = normalize_order_line(original) if original is not None else None

    if is_layered and not line.is_pallet and spec is not None:
        new_quantity = _engine.calculate_rounded_quantity(line.quantity, spec.feet_per_layer)
        old_quantity = _engine.calculate_rounded_quantity(base.quantity, spec.feet_per_layer) if base else 0
        return SignedChange(change_quantity=new_quantity - old_quantity)

    change_quantity = line.quantity - (base.quantity if base else 0)
    if not (is_layered and line.is_pallet):
        return SignedChange(change_quantity=change_quantity)

    return SignedChange(
        change_quantity=change_quantity,
        change_pallets=int(line.pallets - (base.pallets if base else 0)),
        change_layers=int(line.layers - (base.layers if base else 0))
    )


def stock_status(
    quantity: float,
    warning_threshold: Optional[float],
    critical_threshold: Optional[float]
) -> StockStatus:
    if quantity < (critical_threshold or 0):
        return StockStatus.CRITICAL
    if quantity < (warning_threshold or 0):
        return StockStatus.WARNING
    return StockStatus.OK


def displayable_changes(changes: Iterable[InventoryChange]) -> List[InventoryChange]:
    """Rows the preview table shows: no transient lines, no zero changes."""
    return [c for c in changes if not c.is_transient and not c.has_no_change]


def _is_zero(change: SignedChange) -> bool:
    return (
        change.change_quantity == 0
        and not change.change_pallets
        and not change.change_layers
    )


# ==================== IMPACT CALCULATOR ====================

VariantSource = Union[Mapping[str, VariantSnapshot], Iterable[VariantSnapshot]]


class InventoryImpactCalculator:
    """
    Order-level wrapper around UnitConversionEngine.

    Works on snapshots the caller already fetched; it never reads or
    writes stock itself.
    """

    def __init__(self, engine: Optional[UnitConversionEngine] = None, settings: Optional[Settings] = None):
        self.engine = engine or UnitConversionEngine()
        self.settings = settings or get_settings()

    def packing_for(self, variant: VariantSnapshot) -> PackingSpec:
        return resolve_packing_spec(variant.feet_per_layer, variant.layers_per_pallet, self.settings)

    def preview(
        self,
        kind: OrderKind,
        variants: VariantSource,
        lines: Iterable[OrderLine],
        original_lines: Iterable[OrderLine] = (),
        deleted_lines: Iterable[OrderLine] = ()
    ) -> List[InventoryChange]:
        """
        Compute the impact rows for an order being created or edited.

        Args:
            kind: Customer order or purchase order
            variants: Current stock snapshots, by variant id or as a list
            lines: Lines currently on the order
            original_lines: Lines as they were committed (edit mode)
            deleted_lines: Lines removed during this session

        Returns:
            Rows for active lines first, then deleted lines

        Raises:
            VariantNotFoundError: If a line's variant has no snapshot
            InvalidPackingSpecError: If resolved packing constants are unusable
        """
        index = self._index(variants)
        originals = {line.id: line for line in original_lines}
        direction = -1 if kind == OrderKind.CUSTOMER_ORDER else 1

        changes: List[InventoryChange] = []

        for line in lines:
            if not line.variant_id:
                continue
            variant = self._variant(index, line.variant_id)
            delta = line_delta(line, originals.get(line.id), variant.is_layered, self.packing_for(variant))
            if _is_zero(delta):
                logger.debug(f"No change detected for variant {line.variant_id}, skipping impact preview")
                continue
            signed = delta if direction > 0 else -delta
            changes.append(self._project(variant, signed, line, is_deleted=False))

        for line in deleted_lines:
            if not line.variant_id:
                continue
            if line.is_transient:
                logger.debug(f"Skipping transient item in inventory calculation: {line.id}")
                changes.append(self._transient_row(line))
                continue
            variant = self._variant(index, line.variant_id)
            committed = originals.get(line.id, line)
            delta = line_delta(committed, None, variant.is_layered, self.packing_for(variant))
            signed = -delta if direction > 0 else delta
            changes.append(self._project(variant, signed, committed, is_deleted=True))

        return changes

    def committed_stock(self, change: InventoryChange, clamp_negative: Optional[bool] = None) -> StockLevel:
        """
        Stock level to persist for a preview row.

        With clamping on (argument, or settings.clamp_negative_on_commit),
        an oversold row is written as zero stock instead of a negative one.
        """
        if clamp_negative is None:
            clamp_negative = self.settings.clamp_negative_on_commit

        stock = StockLevel(
            quantity=change.new_quantity,
            pallets=change.new_pallets,
            layers=change.new_layers
        )
        if not clamp_negative or stock.quantity >= 0:
            return stock

        logger.info(f"Clamping negative inventory for variant {change.variant_id}: {stock.quantity} → 0")
        if change.is_layered:
            return StockLevel(quantity=0, pallets=0, layers=0)
        return StockLevel(quantity=0, pallets=stock.pallets, layers=stock.layers)

    def resolve_line_entry(
        self,
        entered_by: EntryField,
        spec: PackingSpec,
        quantity: Optional[float] = None,
        pallets: Optional[float] = None,
        layers: Optional[float] = None,
        round_quantity: bool = False
    ) -> LineEntry:
        """
        Derive the fields the user did not type from the ones they did.

        entered_by names the authoritative side for this call; the other
        side is always recomputed, so there is no feedback loop to guard.
        """
        if entered_by == EntryField.QUANTITY:
            qty = quantity or 0
            if round_quantity:
                qty = self.engine.calculate_rounded_quantity(qty, spec.feet_per_layer)
            breakdown = self.engine.quantity_to_pallets_and_layers(qty, spec.feet_per_layer, spec.layers_per_pallet)
            return LineEntry(quantity=qty, pallets=breakdown.pallets, layers=breakdown.layers)

        total = self.engine.total_layers(
            math.floor(pallets or 0),
            math.floor(layers or 0),
            spec.layers_per_pallet
        )
        whole_pallets, rest = self.engine.split_total_layers(total, spec.layers_per_pallet)
        qty = self.engine.pallets_and_layers_to_quantity(
            whole_pallets, rest, spec.feet_per_layer, spec.layers_per_pallet
        )
        return LineEntry(quantity=qty, pallets=whole_pallets, layers=rest)

    # ---- internals ----

    def _index(self, variants: VariantSource) -> Dict[str, VariantSnapshot]:
        if isinstance(variants, Mapping):
            return dict(variants)
        return {v.variant_id: v for v in variants}

    def _variant(self, index: Dict[str, VariantSnapshot], variant_id: str) -> VariantSnapshot:
        variant = index.get(variant_id)
        if variant is None:
            raise VariantNotFoundError(variant_id)
        return variant

    def _project(
        self,
        variant: VariantSnapshot,
        change: SignedChange,
        line: OrderLine,
        is_deleted: bool
    ) -> InventoryChange:
        spec = self.packing_for(variant)
        is_layered = variant.is_layered
        use_pallets_layers = is_layered and line.is_pallet and change.has_pallets_layers
        current = variant.stock_level()

        new = self.engine.apply_inventory_change(current, change, spec, is_layered, use_pallets_layers)

        return InventoryChange(
            variant_id=variant.variant_id,
            variant_name=(line.variant_name if is_deleted and line.variant_name else variant.variant_name),
            product_name=(line.product_name if is_deleted and line.product_name else variant.product_name),
            unit=variant.unit,
            current_quantity=current.quantity,
            current_pallets=current.pallets if is_layered else None,
            current_layers=current.layers if is_layered else None,
            change_quantity=change.change_quantity,
            change_pallets=change.change_pallets,
            change_layers=change.change_layers,
            new_quantity=new.quantity,
            new_pallets=new.pallets,
            new_layers=new.layers,
            warning_threshold=variant.warning_threshold,
            critical_threshold=variant.critical_threshold,
            feet_per_layer=spec.feet_per_layer,
            layers_per_pallet=spec.layers_per_pallet,
            is_deleted=is_deleted
        )

    def _transient_row(self, line: OrderLine) -> InventoryChange:
        return InventoryChange(
            variant_id=line.variant_id,
            variant_name=line.variant_name or "",
            product_name=line.product_name or "",
            is_deleted=True,
            is_transient=True
        )
