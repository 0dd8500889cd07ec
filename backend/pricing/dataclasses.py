from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .services.utils import ZERO


class TransportMode(str, Enum):
    AIR = "AIR"
    SEA_FCL = "SEA_FCL"
    SEA_LCL = "SEA_LCL"
    ROAD = "ROAD"


class Incoterm(str, Enum):
    EXW = "EXW"
    FCA = "FCA"
    CPT = "CPT"
    CIP = "CIP"
    DAP = "DAP"
    DPU = "DPU"
    DDP = "DDP"
    FAS = "FAS"
    FOB = "FOB"
    CFR = "CFR"
    CIF = "CIF"


class Section(str, Enum):
    ORIGIN = "ORIGIN"
    FREIGHT = "FREIGHT"
    DESTINATION = "DESTINATION"


class MarkupType(str, Enum):
    PERCENT = "PERCENT"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class VatRule(str, Enum):
    STD_20 = "STD_20"
    ROAD_14 = "ROAD_14"
    EXPORT_0_ART92 = "EXPORT_0_ART92"
    EXEMPT = "EXEMPT"

    @property
    def rate(self) -> Decimal:
        return VAT_RATES[self]


VAT_RATES: Dict[VatRule, Decimal] = {
    VatRule.STD_20: Decimal("0.20"),
    VatRule.ROAD_14: Decimal("0.14"),
    VatRule.EXPORT_0_ART92: Decimal("0"),
    VatRule.EXEMPT: Decimal("0"),
}


class LineSource(str, Enum):
    MANUAL = "MANUAL"
    TARIFF = "TARIFF"
    SMART_DEFAULT = "SMART_DEFAULT"


class Settlement(str, Enum):
    CONFIRMED = "CONFIRMED"
    ESTIMATED = "ESTIMATED"


class CostBasis(str, Enum):
    CONTAINER = "CONTAINER"
    WEIGHT = "WEIGHT"
    TAXABLE_WEIGHT = "TAXABLE_WEIGHT"
    VOLUME = "VOLUME"
    FLAT = "FLAT"


class TariffStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


class QuoteStatus(str, Enum):
    DRAFT = "DRAFT"
    VALIDATION = "VALIDATION"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


LOCKED_STATUSES = frozenset({QuoteStatus.ACCEPTED, QuoteStatus.REJECTED})


# ----------------------------- Cargo -----------------------------

@dataclass(frozen=True)
class Package:
    quantity: int = 1
    package_type: str = "PALLETS"
    length_cm: Decimal = ZERO
    width_cm: Decimal = ZERO
    height_cm: Decimal = ZERO
    weight_kg: Decimal = ZERO  # per unit
    stackable: bool = True

    def volume_m3(self) -> Decimal:
        if not (self.length_cm and self.width_cm and self.height_cm):
            return ZERO
        unit = (self.length_cm * self.width_cm * self.height_cm) / Decimal(1_000_000)
        return unit * self.quantity

    def gross_weight_kg(self) -> Decimal:
        return self.weight_kg * self.quantity


@dataclass(frozen=True)
class Equipment:
    equipment_type: str
    count: int = 1


@dataclass(frozen=True)
class CargoProfile:
    packages: Tuple[Package, ...] = ()
    equipment: Tuple[Equipment, ...] = ()
    hs_code: str = ""
    is_hazmat: bool = False
    is_reefer: bool = False

    @property
    def total_weight_kg(self) -> Decimal:
        return sum((p.gross_weight_kg() for p in self.packages), ZERO)

    @property
    def total_volume_m3(self) -> Decimal:
        return sum((p.volume_m3() for p in self.packages), ZERO)

    @property
    def total_packages(self) -> int:
        return sum(p.quantity for p in self.packages)

    @property
    def total_containers(self) -> int:
        return sum(e.count for e in self.equipment)

    @property
    def density_ratio(self) -> Decimal:
        """Kilograms per cubic metre; zero when the volume is unknown."""
        volume = self.total_volume_m3
        if volume <= 0:
            return ZERO
        return self.total_weight_kg / volume


# ----------------------------- Money -----------------------------

@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: str


# ---------------------------- Tariffs ----------------------------

@dataclass(frozen=True)
class RateCharge:
    name: str
    basis: CostBasis = CostBasis.FLAT
    currency: str = "USD"
    vat_rule: VatRule = VatRule.STD_20
    unit_price: Decimal = ZERO
    price_20dv: Optional[Decimal] = None
    price_40dv: Optional[Decimal] = None
    price_40hc: Optional[Decimal] = None
    price_40rf: Optional[Decimal] = None
    min_price: Optional[Decimal] = None
    id: Optional[str] = None

    @property
    def headline_price(self) -> Decimal:
        """Price used to compare rate sheets against each other."""
        if self.basis == CostBasis.CONTAINER:
            for price in (self.price_40hc, self.price_40dv, self.price_20dv, self.price_40rf):
                if price:
                    return price
        return self.unit_price


@dataclass(frozen=True)
class TariffRate:
    id: str
    carrier: str
    pol: str
    pod: str
    mode: TransportMode
    incoterm: Incoterm
    status: TariffStatus
    valid_from: date
    valid_to: date
    transit_days: Optional[int] = None
    reliability: Optional[Decimal] = None
    origin_charges: Tuple[RateCharge, ...] = ()
    freight_charges: Tuple[RateCharge, ...] = ()
    destination_charges: Tuple[RateCharge, ...] = ()

    def charges_by_section(self) -> Tuple[Tuple[Section, RateCharge], ...]:
        rows = []
        rows.extend((Section.ORIGIN, c) for c in self.origin_charges)
        rows.extend((Section.FREIGHT, c) for c in self.freight_charges)
        rows.extend((Section.DESTINATION, c) for c in self.destination_charges)
        return tuple(rows)

    @property
    def lane(self) -> str:
        return f"{self.pol}-{self.pod}"


# ---------------------------- Quotation ----------------------------

@dataclass(frozen=True)
class QuoteLineItem:
    id: str
    section: Section
    description: str = ""
    buy_price: Decimal = ZERO
    buy_currency: str = "USD"
    markup_type: MarkupType = MarkupType.PERCENT
    markup_value: Decimal = ZERO
    vat_rule: VatRule = VatRule.STD_20
    vendor_name: str = ""
    source: LineSource = LineSource.MANUAL
    tariff_charge_ref: Optional[str] = None
    validity_date: Optional[date] = None
    settlement: Settlement = Settlement.CONFIRMED

    def is_expired(self, today: date) -> bool:
        return self.validity_date is not None and self.validity_date < today


@dataclass(frozen=True)
class SectionTotals:
    net: Decimal = ZERO
    vat: Decimal = ZERO
    gross: Decimal = ZERO
    cost: Decimal = ZERO
    margin: Decimal = ZERO
    lines: int = 0


@dataclass(frozen=True)
class OptionTotals:
    currency: str
    net: Decimal = ZERO
    vat: Decimal = ZERO
    gross: Decimal = ZERO
    cost: Decimal = ZERO
    margin: Decimal = ZERO
    margin_pct: Decimal = ZERO
    sell_base: Decimal = ZERO
    cost_base: Decimal = ZERO
    by_section: Mapping[Section, SectionTotals] = field(default_factory=dict)
    by_settlement: Mapping[Settlement, SectionTotals] = field(default_factory=dict)


@dataclass(frozen=True)
class PricingOption:
    id: str
    name: str = "Option A"
    mode: TransportMode = TransportMode.SEA_FCL
    pol: str = ""
    pod: str = ""
    incoterm: Incoterm = Incoterm.FOB
    equipment: Tuple[Equipment, ...] = ()
    cargo: CargoProfile = field(default_factory=CargoProfile)
    items: Tuple[QuoteLineItem, ...] = ()
    carrier: str = ""
    transit_days: Optional[int] = None
    tariff_id: Optional[str] = None
    totals: Optional[OptionTotals] = None

    def line(self, line_id: str) -> QuoteLineItem:
        for item in self.items:
            if item.id == line_id:
                return item
        raise KeyError(line_id)


@dataclass(frozen=True)
class ApprovalTrigger:
    """One reason a quotation needs a manager before it can be sent."""
    code: str
    message: str
    severity: str = "HIGH"


@dataclass(frozen=True)
class ApprovalRecord:
    status: QuoteStatus = QuoteStatus.DRAFT
    requires_approval: bool = False
    requested_by: Optional[str] = None
    approved_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    reason: Optional[str] = None
    triggers: Tuple[ApprovalTrigger, ...] = ()


@dataclass(frozen=True)
class Quotation:
    reference: str
    currency: str
    exchange_rates: Mapping[str, Decimal]
    options: Tuple[PricingOption, ...]
    active_option_id: str
    version: int = 1
    client: Mapping[str, Any] = field(default_factory=dict)
    validity_date: Optional[date] = None
    payment_terms: str = ""
    approval: ApprovalRecord = field(default_factory=ApprovalRecord)
    parent_version: Optional[int] = None

    @property
    def status(self) -> QuoteStatus:
        return self.approval.status

    @property
    def locked(self) -> bool:
        return self.approval.status in LOCKED_STATUSES

    @property
    def active_option(self) -> PricingOption:
        return self.option(self.active_option_id)

    def option(self, option_id: str) -> PricingOption:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        raise KeyError(option_id)


# ------------------------- Command results -------------------------

class IntentKind(str, Enum):
    PERSIST = "PERSIST"
    LOG_ACTIVITY = "LOG_ACTIVITY"


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CommandResult:
    quotation: Quotation
    intents: Tuple[Intent, ...] = ()
    warnings: Tuple[str, ...] = ()
