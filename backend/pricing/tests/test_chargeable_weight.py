"""Chargeable weight: gross vs volumetric weight per transport mode."""
from decimal import Decimal

import pytest

from ..dataclasses import CargoProfile, Equipment, Package, TransportMode
from ..services.chargeable_weight import chargeable_weight, validate_cargo, volumetric_weight


def cube(length, width, height, weight, quantity=1):
    return Package(
        quantity=quantity,
        length_cm=Decimal(length),
        width_cm=Decimal(width),
        height_cm=Decimal(height),
        weight_kg=Decimal(weight),
    )


class TestChargeableWeight:

    def test_two_pallets_by_air_bill_gross_weight(self):
        cargo = CargoProfile(packages=(cube(120, 80, 100, 500, quantity=2),))

        assert cargo.total_volume_m3 == Decimal("1.92")
        assert volumetric_weight(cargo.total_volume_m3, Decimal("166.67")) == Decimal("320.0064")
        assert chargeable_weight(cargo, TransportMode.AIR) == Decimal("1000")

    @pytest.mark.parametrize("mode, expected", [
        (TransportMode.AIR, Decimal("166.67")),
        (TransportMode.SEA_LCL, Decimal("1000")),
        (TransportMode.ROAD, Decimal("333.33")),
    ])
    def test_one_cubic_metre_with_no_weight(self, mode, expected):
        cargo = CargoProfile(packages=(cube(100, 100, 100, 0),))
        assert abs(chargeable_weight(cargo, mode) - expected) <= Decimal("0.01")

    def test_full_container_load_ignores_volume(self):
        cargo = CargoProfile(packages=(cube(100, 100, 100, 250, quantity=4),))
        assert chargeable_weight(cargo, TransportMode.SEA_FCL) == Decimal("1000")

    def test_light_bulky_cargo_bills_volume(self):
        cargo = CargoProfile(packages=(cube(200, 100, 100, 50),))
        assert chargeable_weight(cargo, TransportMode.AIR) == Decimal("333.3400")

    def test_never_below_gross_and_monotonic_in_weight(self):
        previous = Decimal("0")
        for weight in (0, 10, 100, 400, 1000):
            cargo = CargoProfile(packages=(cube(120, 80, 100, weight),))
            result = chargeable_weight(cargo, TransportMode.AIR)
            assert result >= cargo.total_weight_kg
            assert result >= previous
            previous = result

    def test_monotonic_in_volume(self):
        previous = Decimal("0")
        for height in (10, 50, 100, 200):
            cargo = CargoProfile(packages=(cube(120, 80, height, 100),))
            result = chargeable_weight(cargo, TransportMode.ROAD)
            assert result >= previous
            previous = result

    def test_same_input_same_result(self):
        cargo = CargoProfile(packages=(cube(120, 80, 100, 500, quantity=2),))
        assert chargeable_weight(cargo, TransportMode.AIR) == chargeable_weight(cargo, TransportMode.AIR)

    def test_custom_ratios(self):
        cargo = CargoProfile(packages=(cube(100, 100, 100, 0),))
        ratios = {TransportMode.AIR: Decimal("200")}
        assert chargeable_weight(cargo, TransportMode.AIR, ratios) == Decimal("200")


class TestValidateCargo:

    def test_air_without_packages(self):
        assert validate_cargo(CargoProfile(), TransportMode.AIR) == ["No packages entered for AIR shipment"]

    def test_zero_weight_and_volume(self):
        cargo = CargoProfile(packages=(Package(quantity=1),))
        warnings = validate_cargo(cargo, TransportMode.AIR)
        assert "Zero gross weight on AIR shipment" in warnings
        assert any("Zero volume" in w for w in warnings)

    def test_road_does_not_warn_about_volume(self):
        cargo = CargoProfile(packages=(cube(0, 0, 0, 100),))
        assert validate_cargo(cargo, TransportMode.ROAD) == []

    def test_fcl_needs_equipment(self):
        assert len(validate_cargo(CargoProfile(), TransportMode.SEA_FCL)) == 1
        cargo = CargoProfile(equipment=(Equipment("40HC", 1),))
        assert validate_cargo(cargo, TransportMode.SEA_FCL) == []
