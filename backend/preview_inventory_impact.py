#!/usr/bin/env python3
"""
Script to preview how an order changes on-hand inventory before it is committed.
Reads stock snapshots and order lines from a JSON file; nothing is written anywhere.

Input file:
    {
      "kind": "CUSTOMER_ORDER" | "PURCHASE_ORDER",
      "variants": [{"variant_id": ..., "unit": ..., "quantity": ..., "pallets": ..., ...}],
      "lines": [{"id": ..., "variant_id": ..., "quantity": ..., "is_pallet": ...}],
      "original_lines": [...],
      "deleted_lines": [...]
    }

Usage: python preview_inventory_impact.py ORDER_JSON [--all] [--clamp]
"""

import argparse
import json
import sys
from pathlib import Path

from settings import get_settings, configure_logging
from inventory_impact import (
    InventoryImpactCalculator,
    InventoryChange,
    OrderKind,
    OrderLine,
    VariantSnapshot,
    displayable_changes
)


def format_number(num):
    """Format numbers with commas, no decimals (whole units)"""
    return f"{num:,.0f}"


def format_pallets(pallets, layers):
    return f"{pallets} Pallets and {layers} Layers"


def load_order(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return {
        "kind": OrderKind(data.get("kind", OrderKind.CUSTOMER_ORDER.value)),
        "variants": [VariantSnapshot(**v) for v in data.get("variants", [])],
        "lines": [OrderLine(**l) for l in data.get("lines", [])],
        "original_lines": [OrderLine(**l) for l in data.get("original_lines", [])],
        "deleted_lines": [OrderLine(**l) for l in data.get("deleted_lines", [])],
    }


def print_change(change: InventoryChange, calculator: InventoryImpactCalculator, clamp: bool):
    label = f"{change.product_name} / {change.variant_name}".strip(" /") or change.variant_id
    print(f"\n{label} ({change.variant_id}):")

    if change.is_transient:
        print("  Transient item (added and removed this session) - no inventory change")
        return
    if change.has_no_change:
        print("  No change")
        return

    unit = change.unit or ""
    sign = "+" if change.adds_stock else "-"
    print(f"  Current: {format_number(change.current_quantity)} {unit}")
    if change.is_layered:
        print(f"           {format_pallets(change.current_pallets, change.current_layers)}")
    print(f"  Change:  {sign}{format_number(abs(change.change_quantity))} {unit}")
    if change.is_layered and change.change_pallets is not None:
        print(f"           {sign}{format_pallets(abs(change.change_pallets), abs(change.change_layers or 0))}")
    print(f"  New:     {format_number(change.new_quantity)} {unit}")
    if change.is_layered:
        print(f"           {format_pallets(change.new_pallets, change.new_layers)}")
        print(f"           ({format_number(change.feet_per_layer)} ft/layer, {change.layers_per_pallet} layers/pallet)")
    if change.is_deleted:
        print("  Line deleted from order")
    print(f"  Status:  {change.status.value}")

    committed = calculator.committed_stock(change, clamp_negative=clamp)
    if committed.quantity != change.new_quantity:
        print(f"  ⚠️  Committed as {format_number(committed.quantity)} {unit} (negative stock clamped)")


def preview_order(path: Path, show_all: bool = False, clamp: bool = False) -> int:
    """Print the impact preview for one order file; returns the number of rows shown"""
    settings = get_settings()
    calculator = InventoryImpactCalculator(settings=settings)
    order = load_order(path)

    print("=" * 80)
    print(f"INVENTORY IMPACT PREVIEW: {order['kind'].value}")
    print("=" * 80)

    changes = calculator.preview(
        order["kind"],
        order["variants"],
        order["lines"],
        original_lines=order["original_lines"],
        deleted_lines=order["deleted_lines"]
    )
    rows = changes if show_all else displayable_changes(changes)

    if not rows:
        print("\nNo inventory changes to display. Add items to the order to see their impact on inventory.")
    for change in rows:
        print_change(change, calculator, clamp or settings.clamp_negative_on_commit)

    print("\n" + "=" * 80)
    print(f"PREVIEW COMPLETE ({len(rows)} row(s))")
    print("=" * 80)
    return len(rows)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Preview the inventory impact of an order')
    parser.add_argument('order_file', type=Path, help='JSON file with variants and order lines')
    parser.add_argument('--all', action='store_true', help='Also show transient and no-change rows')
    parser.add_argument('--clamp', action='store_true', help='Show committed stock clamped at zero')

    args = parser.parse_args(argv)
    configure_logging(get_settings())

    try:
        preview_order(args.order_file, show_all=args.all, clamp=args.clamp)
    except Exception as e:
        print(f"❌ ERROR: {str(e)}")
        import traceback
        traceback.print_exc()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
