# backend/tests/test_unit_conversion_engine.py

"""
Unit tests for Unit Conversion Engine

Tests cover:
- Quantity → pallets/layers (always rounding UP to whole layers)
- Pallets/layers → quantity and round-trip stability
- Rounded quantity (whole-layer normalization)
- Stock change for plain units, pallet-based and quantity-based layered units
- Negative stock decomposition (layers never negative)
- Additivity of sequential changes
- Packing constant validation
"""

import math
import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from unit_conversion_engine import (
    UnitConversionEngine,
    PackingSpec,
    PalletBreakdown,
    StockLevel,
    SignedChange,
    ConversionError,
    InvalidPackingSpecError,
    is_layered_unit,
    LAYERED_UNITS
)


@pytest.fixture
def engine():
    """Create stateless engine instance"""
    return UnitConversionEngine()


@pytest.fixture
def spec():
    """Default packing: 100 ft per layer, 10 layers per pallet"""
    return PackingSpec(feet_per_layer=100, layers_per_pallet=10)


class TestLayeredUnits:
    """Test layered unit detection"""

    def test_layered_labels(self):
        assert is_layered_unit("Square Feet")
        assert is_layered_unit("Linear Feet")
        assert LAYERED_UNITS == {"Square Feet", "Linear Feet"}

    def test_other_units_are_plain(self):
        assert not is_layered_unit("Each")
        assert not is_layered_unit(None)
        assert not is_layered_unit("")
        # Exact label match only
        assert not is_layered_unit("square feet")


class TestQuantityToPalletsAndLayers:
    """Test quantity → pallets/layers"""

    def test_partial_layer_rounds_up(self, engine):
        """250 sq ft at 100/layer needs 3 layers"""
        result = engine.quantity_to_pallets_and_layers(250, 100, 10)
        assert result == PalletBreakdown(pallets=0, layers=3)

    def test_exact_pallet(self, engine):
        result = engine.quantity_to_pallets_and_layers(1000, 100, 10)
        assert result == PalletBreakdown(pallets=1, layers=0)

    def test_zero_quantity(self, engine):
        result = engine.quantity_to_pallets_and_layers(0, 100, 10)
        assert result.pallets == 0
        assert result.layers == 0

    def test_multiple_pallets_with_remainder(self, engine):
        """2301 sq ft → 24 layers → 2 pallets and 4 layers"""
        result = engine.quantity_to_pallets_and_layers(2301, 100, 10)
        assert (result.pallets, result.layers) == (2, 4)

    def test_no_phantom_layer_from_float_division(self, engine):
        """70 / 0.7 is 100.00000000000001 in binary floats; still 100 layers"""
        result = engine.quantity_to_pallets_and_layers(70, 0.7, 10)
        assert (result.pallets, result.layers) == (10, 0)

    def test_breakdown_properties(self, engine):
        """pallets >= 0, 0 <= layers < l, pallets*l + layers == ceil(q/f)"""
        for f in (1, 7, 100, 250):
            for l in (1, 3, 10):
                for q in range(0, 3001, 37):
                    result = engine.quantity_to_pallets_and_layers(q, f, l)
                    assert result.pallets >= 0
                    assert 0 <= result.layers < l
                    assert result.pallets * l + result.layers == -(-q // f)


class TestPalletsAndLayersToQuantity:
    """Test pallets/layers → quantity"""

    def test_pallets_and_layers(self, engine):
        """2 pallets and 3 layers = 23 layers = 2300 sq ft"""
        assert engine.pallets_and_layers_to_quantity(2, 3, 100, 10) == 2300

    def test_zero(self, engine):
        assert engine.pallets_and_layers_to_quantity(0, 0, 100, 10) == 0

    def test_round_trip_exact_multiples(self, engine):
        """Whole-layer quantities survive quantity → breakdown → quantity"""
        for f in (25, 100):
            for l in (4, 10):
                for p in range(0, 5):
                    for y in range(l):
                        qty = engine.pallets_and_layers_to_quantity(p, y, f, l)
                        assert engine.quantity_to_pallets_and_layers(qty, f, l) == PalletBreakdown(pallets=p, layers=y)

    def test_round_trip_rounds_up_partial_layer(self, engine):
        breakdown = engine.quantity_to_pallets_and_layers(251, 100, 10)
        assert engine.pallets_and_layers_to_quantity(breakdown.pallets, breakdown.layers, 100, 10) == 300


class TestRoundedQuantity:
    """Test whole-layer normalization"""

    def test_rounds_up(self, engine):
        assert engine.calculate_rounded_quantity(251, 100) == 300

    def test_exact_multiple_unchanged(self, engine):
        assert engine.calculate_rounded_quantity(300, 100) == 300
        assert engine.calculate_rounded_quantity(0, 100) == 0

    def test_fractional_feet_per_layer(self, engine):
        assert engine.calculate_rounded_quantity(70, 0.7) == pytest.approx(70)

    def test_idempotent(self, engine):
        for f in (3, 40, 100):
            for q in range(0, 1000, 13):
                once = engine.calculate_rounded_quantity(q, f)
                assert once >= q
                assert once % f == 0
                assert engine.calculate_rounded_quantity(once, f) == once


class TestApplyInventoryChangePlainUnits:
    """Test stock change for non-layered units"""

    def test_plain_count(self, engine, spec):
        current = StockLevel(quantity=10, pallets=0, layers=0)
        result = engine.apply_inventory_change(current, SignedChange(change_quantity=-4), spec, False, False)
        assert result.quantity == 6

    def test_plain_unit_goes_negative(self, engine, spec):
        current = StockLevel(quantity=5, pallets=2, layers=1)
        result = engine.apply_inventory_change(current, SignedChange(change_quantity=-8), spec, False, False)
        assert result.quantity == -3
        # Pallets/layers pass through for plain units
        assert (result.pallets, result.layers) == (2, 1)

    def test_plain_unit_no_rounding(self, engine, spec):
        current = StockLevel(quantity=1.5)
        result = engine.apply_inventory_change(current, SignedChange(change_quantity=0.25), spec, False, True)
        assert result.quantity == pytest.approx(1.75)


class TestApplyInventoryChangePalletsLayers:
    """Test stock change driven by pallet/layer deltas"""

    def test_remove_layers(self, engine, spec):
        """25 layers - 13 layers = 12 layers = 1 pallet and 2 layers"""
        current = StockLevel(quantity=2500, pallets=2, layers=5)
        change = SignedChange(change_quantity=-1300, change_pallets=-1, change_layers=-3)
        result = engine.apply_inventory_change(current, change, spec, True, True)
        assert result == StockLevel(quantity=1200, pallets=1, layers=2)

    def test_add_carries_into_pallet(self, engine, spec):
        current = StockLevel(quantity=800, pallets=0, layers=8)
        change = SignedChange(change_quantity=500, change_pallets=0, change_layers=5)
        result = engine.apply_inventory_change(current, change, spec, True, True)
        assert (result.pallets, result.layers) == (1, 3)
        assert result.quantity == 1300

    def test_oversold_borrows_pallet(self, engine, spec):
        """20 layers - 30 layers = -10 layers → -1 pallet, 0 layers, -1000 sq ft"""
        current = StockLevel(quantity=200, pallets=2, layers=0)
        change = SignedChange(change_quantity=-300, change_pallets=-3, change_layers=0)
        result = engine.apply_inventory_change(current, change, spec, True, True)
        assert result.pallets == -1
        assert result.layers == 0
        assert result.quantity == -1000

    def test_negative_remainder_borrow(self, engine, spec):
        """-13 layers → -2 pallets and 7 layers (never -1 pallet and -3 layers)"""
        current = StockLevel(quantity=0, pallets=0, layers=0)
        change = SignedChange(change_quantity=-1300, change_pallets=0, change_layers=-13)
        result = engine.apply_inventory_change(current, change, spec, True, True)
        assert (result.pallets, result.layers) == (-2, 7)
        assert result.pallets * 10 + result.layers == -13
        assert result.quantity == -1300

    def test_negative_layers_never_negative(self, engine):
        for l in (1, 4, 10):
            layered = PackingSpec(feet_per_layer=50, layers_per_pallet=l)
            for total in range(-45, 1):
                change = SignedChange(change_quantity=total * 50, change_pallets=0, change_layers=total)
                result = engine.apply_inventory_change(StockLevel(), change, layered, True, True)
                assert 0 <= result.layers < l
                assert result.pallets * l + result.layers == total

    def test_quantity_follows_layers_not_input(self, engine, spec):
        """Quantity is re-derived from total layers; change_quantity is ignored"""
        current = StockLevel(quantity=1000, pallets=1, layers=0)
        change = SignedChange(change_quantity=-999, change_pallets=0, change_layers=-2)
        result = engine.apply_inventory_change(current, change, spec, True, True)
        assert result.quantity == 800

    def test_missing_deltas_fall_back_to_quantity(self, engine, spec):
        current = StockLevel()
        change = SignedChange(change_quantity=300, change_pallets=None, change_layers=None)
        result = engine.apply_inventory_change(current, change, spec, True, True)
        assert result == StockLevel(quantity=300, pallets=0, layers=3)

    def test_additive(self, engine):
        """c1 then c2 == c1 + c2"""
        layered = PackingSpec(feet_per_layer=100, layers_per_pallet=10)
        current = StockLevel(quantity=2500, pallets=2, layers=5)
        deltas = [(-1, -3), (0, 7), (2, -9), (-4, 0), (0, 0), (1, 12)]
        for p1, y1 in deltas:
            for p2, y2 in deltas:
                c1 = SignedChange(change_quantity=(p1 * 10 + y1) * 100, change_pallets=p1, change_layers=y1)
                c2 = SignedChange(change_quantity=(p2 * 10 + y2) * 100, change_pallets=p2, change_layers=y2)
                step = engine.apply_inventory_change(current, c1, layered, True, True)
                sequential = engine.apply_inventory_change(step, c2, layered, True, True)
                combined = engine.apply_inventory_change(current, c1 + c2, layered, True, True)
                assert sequential == combined


class TestApplyInventoryChangeQuantityBased:
    """Test layered stock change driven by a flat quantity delta"""

    def test_whole_layer_delta(self, engine, spec):
        current = StockLevel(quantity=2500, pallets=2, layers=5)
        result = engine.apply_inventory_change(current, SignedChange(change_quantity=-600), spec, True, False)
        assert result == StockLevel(quantity=1900, pallets=1, layers=9)

    def test_partial_addition_rounds_up(self, engine, spec):
        """+250 adds 3 layers"""
        current = StockLevel(quantity=0, pallets=0, layers=0)
        result = engine.apply_inventory_change(current, SignedChange(change_quantity=250), spec, True, False)
        assert result == StockLevel(quantity=300, pallets=0, layers=3)

    def test_partial_removal_rounds_away_from_zero(self, engine, spec):
        """-250 removes 3 layers: 2 - 3 = -1 layer = -1 pallet and 9 layers"""
        current = StockLevel(quantity=200, pallets=0, layers=2)
        result = engine.apply_inventory_change(current, SignedChange(change_quantity=-250), spec, True, False)
        assert (result.pallets, result.layers) == (-1, 9)
        assert result.quantity == -100

    def test_pallet_deltas_ignored_when_not_authoritative(self, engine, spec):
        current = StockLevel(quantity=1000, pallets=1, layers=0)
        change = SignedChange(change_quantity=-200, change_pallets=-5, change_layers=-5)
        result = engine.apply_inventory_change(current, change, spec, True, False)
        assert result == StockLevel(quantity=800, pallets=0, layers=8)


class TestSignedChange:
    """Test change arithmetic"""

    def test_add(self):
        total = SignedChange(change_quantity=100, change_pallets=1, change_layers=2) + SignedChange(
            change_quantity=-50, change_pallets=None, change_layers=None
        )
        assert total.change_quantity == 50
        assert (total.change_pallets, total.change_layers) == (1, 2)

    def test_add_both_missing(self):
        total = SignedChange(change_quantity=1) + SignedChange(change_quantity=2)
        assert total.change_pallets is None
        assert total.change_layers is None
        assert not total.has_pallets_layers

    def test_negate(self):
        change = -SignedChange(change_quantity=300, change_pallets=0, change_layers=3)
        assert change == SignedChange(change_quantity=-300, change_pallets=0, change_layers=-3)
        assert (-SignedChange(change_quantity=5)).change_pallets is None


class TestPackingValidation:
    """Test invalid packing constants → HARD ERROR"""

    def test_zero_feet_per_layer(self, engine):
        with pytest.raises(InvalidPackingSpecError) as exc_info:
            engine.quantity_to_pallets_and_layers(100, 0, 10)

        assert exc_info.value.error_code == "INVALID_PACKING_SPEC"
        assert exc_info.value.field == "feet_per_layer"

    def test_negative_layers_per_pallet(self, engine):
        with pytest.raises(InvalidPackingSpecError) as exc_info:
            engine.pallets_and_layers_to_quantity(1, 1, 100, -10)

        assert exc_info.value.field == "layers_per_pallet"

    def test_missing_constant(self, engine):
        with pytest.raises(InvalidPackingSpecError):
            engine.calculate_rounded_quantity(100, None)

    def test_error_payload(self, engine):
        with pytest.raises(ConversionError) as exc_info:
            engine.quantity_to_pallets_and_layers(100, 100, 0)

        payload = exc_info.value.to_dict()
        assert payload["error_code"] == "INVALID_PACKING_SPEC"
        assert payload["severity"] == "HARD_ERROR"
        assert "layers_per_pallet=0" in payload["message"]

    def test_packing_spec_model_rejects_zero(self):
        with pytest.raises(InvalidPackingSpecError) as exc_info:
            PackingSpec(feet_per_layer=0, layers_per_pallet=10)

        assert exc_info.value.field == "feet_per_layer"

    def test_packing_spec_model_rejects_fractional_layers(self):
        with pytest.raises(InvalidPackingSpecError) as exc_info:
            PackingSpec(feet_per_layer=100, layers_per_pallet=2.5)

        assert exc_info.value.field == "layers_per_pallet"

    def test_fractional_layers_per_pallet(self, engine):
        with pytest.raises(InvalidPackingSpecError) as exc_info:
            engine.quantity_to_pallets_and_layers(300, 100, 2.5)

        assert exc_info.value.error_code == "INVALID_PACKING_SPEC"
        assert exc_info.value.field == "layers_per_pallet"

    def test_whole_float_layers_per_pallet_accepted(self, engine):
        result = engine.quantity_to_pallets_and_layers(300, 100, 2.0)
        assert (result.pallets, result.layers) == (1, 1)

    def test_apply_change_rejects_unvalidated_spec(self, engine):
        # Bypass Pydantic validation to test engine logic
        bad = PackingSpec.model_construct(feet_per_layer=100, layers_per_pallet=0)
        with pytest.raises(InvalidPackingSpecError):
            engine.apply_inventory_change(
                StockLevel(),
                SignedChange(change_quantity=100, change_pallets=0, change_layers=1),
                bad,
                True,
                True
            )

    def test_negative_quantity_is_not_an_error(self, engine):
        result = engine.quantity_to_pallets_and_layers(-250, 100, 10)
        # ceil(-2.5) = -2 layers, floor/remainder keeps layers non-negative
        assert (result.pallets, result.layers) == (-1, 8)
        assert math.isclose(engine.calculate_rounded_quantity(-250, 100), -200)
