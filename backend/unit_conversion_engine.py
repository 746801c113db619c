# backend/unit_conversion_engine.py

"""
Unit Conversion Engine - Pallet / Layer Arithmetic

This engine is responsible for:
- Flat quantity → (pallets, layers) decomposition for layered units
- (pallets, layers) → flat quantity
- Rounding a quantity up to whole-layer packing
- Projecting the stock level left after a signed change
- Validation and error signaling for packing constants

This engine MUST NOT:
- Fetch or persist stock
- Substitute default packing constants (callers do that)
- Clamp negative stock to zero (callers decide)
- Decide whether a unit is layered from anything but its label

GLOBAL INVARIANTS (ENFORCED):
1) feet_per_layer > 0 and layers_per_pallet > 0, otherwise HARD ERROR
2) A partial layer always consumes a whole layer (round UP to layers)
3) pallets * layers_per_pallet + layers == total layers
4) layers stays in [0, layers_per_pallet), negative totals borrow a pallet
5) Negative stock is data, not an error
"""

from typing import Optional, Dict, Any, Tuple, Union
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from pydantic import BaseModel, ConfigDict, model_validator
import logging

logger = logging.getLogger(__name__)

Number = Union[int, float]

# ==================== UNITS ====================

SQUARE_FEET = "Square Feet"
LINEAR_FEET = "Linear Feet"
EACH = "Each"

# Units packed in layers stacked on pallets. Everything else is a plain count.
LAYERED_UNITS = frozenset({SQUARE_FEET, LINEAR_FEET})


def is_layered_unit(unit: Optional[str]) -> bool:
    """Exact label match; "square feet" or "Each" are not layered."""
    return unit in LAYERED_UNITS


# ==================== ERROR CLASSES ====================

class ConversionError(Exception):
    """Base conversion error"""
    def __init__(self, error_code: str, message: str, field: Optional[str] = None, severity: str = "HARD_ERROR"):
        self.error_code = error_code
        self.message = message
        self.field = field
        self.severity = severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "field": self.field,
            "severity": self.severity
        }


class InvalidPackingSpecError(ConversionError):
    """Packing constants must be positive, layers_per_pallet a whole number"""
    def __init__(self, feet_per_layer: Optional[Number], layers_per_pallet: Optional[Number]):
        if not _is_number(feet_per_layer) or feet_per_layer <= 0:
            field = "feet_per_layer"
        else:
            field = "layers_per_pallet"
        super().__init__(
            "INVALID_PACKING_SPEC",
            f"Packing constants must be positive and layers_per_pallet a whole number. "
            f"Received feet_per_layer={feet_per_layer}, layers_per_pallet={layers_per_pallet}",
            field=field,
            severity="HARD_ERROR"
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def check_packing(feet_per_layer: Optional[Number], layers_per_pallet: Optional[Number]) -> None:
    """
    Fail fast on unusable packing constants.

    Raises:
        InvalidPackingSpecError: If either constant is missing or not positive,
            or layers_per_pallet is fractional
    """
    if (
        not _is_number(feet_per_layer)
        or not _is_number(layers_per_pallet)
        or feet_per_layer <= 0
        or layers_per_pallet <= 0
        or not float(layers_per_pallet).is_integer()
    ):
        raise InvalidPackingSpecError(feet_per_layer, layers_per_pallet)


# ==================== DATA MODELS ====================

class PackingSpec(BaseModel):
    """Per-product packing constants, immutable for a calculation"""
    model_config = ConfigDict(frozen=True)

    feet_per_layer: float
    layers_per_pallet: int

    @model_validator(mode="before")
    @classmethod
    def check_constants(cls, data: Any) -> Any:
        # InvalidPackingSpecError propagates unwrapped
        if isinstance(data, dict):
            check_packing(data.get("feet_per_layer"), data.get("layers_per_pallet"))
        return data


class PalletBreakdown(BaseModel):
    """A quantity decomposed into full pallets plus remaining layers"""
    pallets: int
    layers: int


class StockLevel(BaseModel):
    """On-hand snapshot for one product variant"""
    quantity: float = 0
    pallets: int = 0
    layers: int = 0


class SignedChange(BaseModel):
    """
    Pending stock adjustment. Positive adds to stock, negative removes.

    change_pallets / change_layers are None when the line is not
    pallet-based; only change_quantity applies then.
    """
    change_quantity: float = 0
    change_pallets: Optional[int] = None
    change_layers: Optional[int] = None

    @property
    def has_pallets_layers(self) -> bool:
        return self.change_pallets is not None and self.change_layers is not None

    def __add__(self, other: "SignedChange") -> "SignedChange":
        return SignedChange(
            change_quantity=self.change_quantity + other.change_quantity,
            change_pallets=_add_optional(self.change_pallets, other.change_pallets),
            change_layers=_add_optional(self.change_layers, other.change_layers)
        )

    def __neg__(self) -> "SignedChange":
        return SignedChange(
            change_quantity=-self.change_quantity,
            change_pallets=None if self.change_pallets is None else -self.change_pallets,
            change_layers=None if self.change_layers is None else -self.change_layers
        )


def _add_optional(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None and b is None:
        return None
    return (a or 0) + (b or 0)


def _decimal(value: Number) -> Decimal:
    # str() keeps 0.7 as 0.7 instead of its binary expansion
    return Decimal(str(value))


def _whole(value: Number) -> Number:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# ==================== UNIT CONVERSION ENGINE ====================

class UnitConversionEngine:
    """
    Stateless pallet/layer conversion engine.

    Every method is a pure function of its arguments: no I/O, no shared
    state, safe to call from any number of request handlers at once.
    """

    def __init__(self):
        self.version = "1.0.0"

    def validate_packing(self, feet_per_layer: Optional[Number], layers_per_pallet: Optional[Number]) -> None:
        """
        Raises:
            InvalidPackingSpecError: If either constant is missing or not positive,
                or layers_per_pallet is fractional
        """
        check_packing(feet_per_layer, layers_per_pallet)

    def total_layers(self, pallets: Number, layers: Number, layers_per_pallet: Number) -> Number:
        """Flatten a pallet/layer pair into a single layer count."""
        return _whole(pallets * layers_per_pallet + layers)

    def split_total_layers(self, total_layers: Number, layers_per_pallet: Number) -> Tuple[Number, Number]:
        """
        Decompose a layer count into (pallets, layers) using floor/remainder.

        Floor division borrows a pallet for negative totals, so -13 layers at
        10 per pallet is (-2, 7) and layers never goes negative.
        """
        pallets, layers = divmod(total_layers, layers_per_pallet)
        return _whole(pallets), _whole(layers)

    def quantity_to_layers(self, quantity: Number, feet_per_layer: Number) -> int:
        """
        Whole layers needed to hold quantity (rounded UP).

        A partial layer still consumes a full layer of packing material.
        """
        self.validate_packing(feet_per_layer, 1)
        exact_layers = _decimal(quantity) / _decimal(feet_per_layer)
        return int(exact_layers.to_integral_value(rounding=ROUND_CEILING))

    def quantity_to_pallets_and_layers(
        self,
        quantity: Number,
        feet_per_layer: Number,
        layers_per_pallet: Number
    ) -> PalletBreakdown:
        """
        Convert a flat quantity to a pallet/layer breakdown.

        Args:
            quantity: Quantity in the product's unit (e.g. Square Feet)
            feet_per_layer: Quantity covered by one layer
            layers_per_pallet: Layers stacked on one pallet

        Returns:
            PalletBreakdown with pallets * layers_per_pallet + layers
            equal to ceil(quantity / feet_per_layer)

        Raises:
            InvalidPackingSpecError: If a packing constant is not positive
        """
        self.validate_packing(feet_per_layer, layers_per_pallet)
        total = self.quantity_to_layers(quantity, feet_per_layer)
        pallets, layers = self.split_total_layers(total, layers_per_pallet)
        return PalletBreakdown(pallets=pallets, layers=layers)

    def pallets_and_layers_to_quantity(
        self,
        pallets: Number,
        layers: Number,
        feet_per_layer: Number,
        layers_per_pallet: Number
    ) -> Number:
        """
        Convert a pallet/layer pair back to a flat quantity.

        Exact inverse of the total-layers step; a quantity that was rounded
        up on the way in comes back as the rounded-up value.

        Raises:
            InvalidPackingSpecError: If a packing constant is not positive
        """
        self.validate_packing(feet_per_layer, layers_per_pallet)
        total = self.total_layers(pallets, layers, layers_per_pallet)
        return _whole(total * feet_per_layer)

    def calculate_rounded_quantity(self, quantity: Number, feet_per_layer: Number) -> Number:
        """
        Smallest whole-layer multiple of feet_per_layer that is >= quantity.

        Idempotent: rounding an already rounded quantity changes nothing.

        Raises:
            InvalidPackingSpecError: If feet_per_layer is not positive
        """
        total = self.quantity_to_layers(quantity, feet_per_layer)
        return _whole(total * feet_per_layer)

    def change_to_layers(self, change_quantity: Number, feet_per_layer: Number) -> int:
        """
        Whole layers moved by a flat quantity delta.

        Callers are expected to send whole-layer deltas already; a fractional
        remainder is rounded away from zero so a partial layer is never lost.
        """
        self.validate_packing(feet_per_layer, 1)
        exact_layers = _decimal(change_quantity) / _decimal(feet_per_layer)
        rounding = ROUND_CEILING if exact_layers >= 0 else ROUND_FLOOR
        return int(exact_layers.to_integral_value(rounding=rounding))

    def apply_inventory_change(
        self,
        current: StockLevel,
        change: SignedChange,
        spec: PackingSpec,
        is_layered: bool,
        use_pallets_layers: bool
    ) -> StockLevel:
        """
        Project the stock level left after applying a signed change.

        Follows the packing rules:
        1) Plain units: quantity + change_quantity, pallets/layers untouched
        2) Layered + pallet-based: add total layers from the pallet/layer deltas
        3) Layered + quantity-based: add change_quantity / feet_per_layer layers
        4) Decompose the new total with floor/remainder (borrowing for negatives)
        5) Quantity is re-derived from the new total layers

        A pallet-based request whose pallet/layer deltas are missing falls
        back to the quantity-based path.

        The result may be negative; oversold stock is returned as-is.

        Args:
            current: Stock snapshot before the change
            change: Signed adjustment
            spec: Packing constants of the product
            is_layered: Whether the product unit is layered
            use_pallets_layers: Whether the pallet/layer deltas are authoritative

        Returns:
            New StockLevel

        Raises:
            InvalidPackingSpecError: If a packing constant is not positive
        """
        if not is_layered:
            return StockLevel(
                quantity=current.quantity + change.change_quantity,
                pallets=current.pallets,
                layers=current.layers
            )

        self.validate_packing(spec.feet_per_layer, spec.layers_per_pallet)
        layers_per_pallet = spec.layers_per_pallet

        current_total = self.total_layers(current.pallets, current.layers, layers_per_pallet)
        if use_pallets_layers and change.has_pallets_layers:
            change_total = self.total_layers(change.change_pallets, change.change_layers, layers_per_pallet)
        else:
            change_total = self.change_to_layers(change.change_quantity, spec.feet_per_layer)

        new_total = current_total + change_total
        new_pallets, new_layers = self.split_total_layers(new_total, layers_per_pallet)
        new_quantity = _whole(new_total * spec.feet_per_layer)

        logger.debug(
            f"Stock change: {current_total} + {change_total} = {new_total} layers "
            f"({new_pallets} pallets, {new_layers} layers, {new_quantity} qty)"
        )
        if new_total < 0:
            logger.warning(
                f"Stock change leaves negative inventory: {new_total} layers "
                f"({new_pallets} pallets, {new_layers} layers)"
            )

        return StockLevel(quantity=new_quantity, pallets=new_pallets, layers=new_layers)
