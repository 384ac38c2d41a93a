"""
Repair distance tiers for every vehicle type.

Sorts each vehicle type's tiers, closes gaps between them and makes the last
tier open-ended (toMiles = 0). Vehicle types with no usable tiers get the
default four-tier schedule. Afterwards a sample quote is printed per vehicle
type so the result can be checked by eye.

Usage:
    python scripts/fix_distance_tiers.py [--dry-run]
"""
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal, session_scope
from pricing_engine import DEFAULT_DISTANCE_TIERS, calculate_distance_price
from pricing_service import load_pricing_config
import db_service

# Trip length used for the sample quote after repair
SAMPLE_TRIP_MILES = 71.4


def fix_distance_tiers(dry_run: bool = False, session_factory=SessionLocal) -> list[dict]:
    """
    Normalize the tiers of every vehicle type.

    Returns:
        One summary per vehicle type: name, repairs, tiers and sample quote
    """
    results = []

    with session_scope(session_factory) as db:
        vehicle_types = db_service.get_all_vehicle_types(db)
        print(f"Found {len(vehicle_types)} vehicle types\n")

        for vehicle_type in vehicle_types:
            tiers, repairs = db_service.normalize_vehicle_type_tiers(
                db, vehicle_type, dry_run=dry_run, default_tiers=DEFAULT_DISTANCE_TIERS,
            )

            print(f"{vehicle_type.name} (id={vehicle_type.id})")
            if repairs:
                for repair in repairs:
                    print(f"  ✓ {repair}")
            else:
                print("  - tiers already in normal form")

            for tier in tiers:
                print(f"    {tier.label:>10} miles @ ${tier.price_per_mile:.2f}/mile")

            config, _ = load_pricing_config(vehicle_type)
            config = config.model_copy(update={"distance_tiers": tiers})
            sample = calculate_distance_price(SAMPLE_TRIP_MILES, config)
            sample_total = round(sample.base_price + sample.distance_price, 2)
            print(
                f"  Sample {SAMPLE_TRIP_MILES} mile trip: base ${sample.base_price:.2f} + "
                f"distance ${sample.distance_price:.2f} = ${sample_total:.2f}\n"
            )

            results.append({
                "vehicle_type": vehicle_type.name,
                "repairs": repairs,
                "tiers": tiers,
                "sample_total": sample_total,
            })

    changed = sum(1 for r in results if r["repairs"])
    if dry_run:
        print(f"[DRY RUN] {changed} vehicle types would be repaired. No changes made")
    else:
        print(f"✓ Repaired {changed} of {len(results)} vehicle types")

    return results


if __name__ == "__main__":
    dry_run = "--dry-run" in sys.argv
    if dry_run:
        print("Running in DRY RUN mode\n")

    fix_distance_tiers(dry_run=dry_run)
