from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from ..dataclasses import CargoProfile, TransportMode
from .pricing_rules import volumetric_ratios
from .utils import FOURPLACES, ZERO


def volumetric_weight(volume_m3: Decimal, ratio_kg_per_m3: Decimal) -> Decimal:
    return (volume_m3 * ratio_kg_per_m3).quantize(FOURPLACES)


def chargeable_weight(
    cargo: CargoProfile,
    mode: TransportMode,
    ratios: Optional[Dict[TransportMode, Decimal]] = None,
) -> Decimal:
    """
    Billable weight: the greater of gross weight and volume x mode ratio.
    Full-container loads bill each unit as a block, so volume is ignored.
    """
    gross = cargo.total_weight_kg
    if mode == TransportMode.SEA_FCL:
        return gross
    ratio = (ratios or volumetric_ratios())[mode]
    return max(gross, volumetric_weight(cargo.total_volume_m3, ratio))


def validate_cargo(cargo: CargoProfile, mode: TransportMode) -> List[str]:
    """Non-fatal warnings about an incomplete cargo profile."""
    warnings: List[str] = []
    if mode == TransportMode.SEA_FCL:
        if not cargo.equipment:
            warnings.append("Full container load without equipment; container charges use the 40' HC price")
        return warnings

    if not cargo.packages:
        warnings.append(f"No packages entered for {mode.value} shipment")
        return warnings
    if cargo.total_weight_kg <= ZERO:
        warnings.append(f"Zero gross weight on {mode.value} shipment")
    if cargo.total_volume_m3 <= ZERO and mode in (TransportMode.AIR, TransportMode.SEA_LCL):
        warnings.append(f"Zero volume on {mode.value} shipment; volumetric weight not applied")
    return warnings
