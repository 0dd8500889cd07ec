"""
Quotation Repository

Converts between ORM rows and engine snapshots and carries out the side
effects that quotation commands ask for. Content rows (options, lines) are
rewritten only while the quotation is a draft; later states only touch the
approval columns.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from django.db import transaction
from django.db.models import Max

from pricing.dataclasses import (
    ApprovalRecord,
    ApprovalTrigger,
    CargoProfile,
    CommandResult,
    Equipment,
    Incoterm,
    IntentKind,
    LineSource,
    MarkupType,
    OptionTotals,
    Package,
    PricingOption as OptionSnapshot,
    QuoteLineItem,
    QuoteStatus,
    Quotation as QuotationSnapshot,
    Section,
    Settlement,
    TransportMode,
    VatRule,
)
from pricing.services.utils import d

from .models import ActivityLog, PricingOption, QuoteLine, Quotation

logger = logging.getLogger(__name__)

STORED_PLACES = Decimal("1E-10")


class QuotationNotFound(Exception):
    pass


# ------------------------- JSON helpers -------------------------

def cargo_to_json(cargo: CargoProfile) -> Dict[str, Any]:
    return {
        "packages": [
            {
                "quantity": p.quantity,
                "package_type": p.package_type,
                "length_cm": str(p.length_cm),
                "width_cm": str(p.width_cm),
                "height_cm": str(p.height_cm),
                "weight_kg": str(p.weight_kg),
                "stackable": p.stackable,
            }
            for p in cargo.packages
        ],
        "hs_code": cargo.hs_code,
        "is_hazmat": cargo.is_hazmat,
        "is_reefer": cargo.is_reefer,
    }


def cargo_from_json(blob: Optional[Dict[str, Any]], equipment) -> CargoProfile:
    blob = blob or {}
    packages = tuple(
        Package(
            quantity=int(p.get("quantity", 1)),
            package_type=p.get("package_type", "PALLETS"),
            length_cm=d(p.get("length_cm")),
            width_cm=d(p.get("width_cm")),
            height_cm=d(p.get("height_cm")),
            weight_kg=d(p.get("weight_kg")),
            stackable=bool(p.get("stackable", True)),
        )
        for p in blob.get("packages", [])
    )
    return CargoProfile(
        packages=packages,
        equipment=equipment,
        hs_code=blob.get("hs_code", ""),
        is_hazmat=bool(blob.get("is_hazmat", False)),
        is_reefer=bool(blob.get("is_reefer", False)),
    )


def totals_to_json(totals: Optional[OptionTotals]) -> Dict[str, Any]:
    if totals is None:
        return {}

    def block(t):
        return {"net": str(t.net), "vat": str(t.vat), "gross": str(t.gross),
                "cost": str(t.cost), "margin": str(t.margin), "lines": t.lines}

    return {
        "currency": totals.currency,
        "net": str(totals.net),
        "vat": str(totals.vat),
        "gross": str(totals.gross),
        "cost": str(totals.cost),
        "margin": str(totals.margin),
        "margin_pct": str(totals.margin_pct),
        "by_section": {k.value: block(v) for k, v in totals.by_section.items()},
        "by_settlement": {k.value: block(v) for k, v in totals.by_settlement.items()},
    }


# ------------------------- row -> snapshot -------------------------

def line_to_snapshot(row: QuoteLine) -> QuoteLineItem:
    return QuoteLineItem(
        id=row.key,
        section=Section(row.section),
        description=row.description,
        buy_price=d(row.buy_price),
        buy_currency=row.buy_currency,
        markup_type=MarkupType(row.markup_type),
        markup_value=d(row.markup_value),
        vat_rule=VatRule(row.vat_rule),
        vendor_name=row.vendor_name,
        source=LineSource(row.source),
        tariff_charge_ref=row.tariff_charge_ref,
        validity_date=row.validity_date,
        settlement=Settlement(row.settlement),
    )


def option_to_snapshot(row: PricingOption) -> OptionSnapshot:
    equipment = tuple(Equipment(e["equipment_type"], int(e.get("count", 1))) for e in row.equipment or [])
    return OptionSnapshot(
        id=row.key,
        name=row.name,
        mode=TransportMode(row.mode),
        pol=row.pol,
        pod=row.pod,
        incoterm=Incoterm(row.incoterm),
        equipment=equipment,
        cargo=cargo_from_json(row.cargo, equipment),
        items=tuple(line_to_snapshot(line) for line in row.lines.all()),
        carrier=row.carrier,
        transit_days=row.transit_days,
        tariff_id=row.tariff_reference,
    )


def to_snapshot(row: Quotation) -> QuotationSnapshot:
    return QuotationSnapshot(
        reference=row.reference,
        version=row.version,
        currency=row.currency,
        exchange_rates={k: d(v) for k, v in (row.exchange_rates or {}).items()},
        options=tuple(option_to_snapshot(o) for o in row.options.prefetch_related('lines')),
        active_option_id=row.active_option_key,
        client=row.client or {},
        validity_date=row.validity_date,
        payment_terms=row.payment_terms,
        approval=ApprovalRecord(
            status=QuoteStatus(row.status),
            requires_approval=row.requires_approval,
            requested_by=row.requested_by,
            approved_by=row.approved_by,
            rejection_reason=row.rejection_reason,
            cancellation_reason=row.cancellation_reason,
            reason=row.approval_reason,
            triggers=tuple(
                ApprovalTrigger(t["code"], t.get("message", ""), t.get("severity", "HIGH"))
                for t in row.approval_triggers or []
            ),
        ),
        parent_version=row.parent_version,
    )


# ------------------------- queries -------------------------

def get_row(reference: str, version: int) -> Quotation:
    try:
        return Quotation.objects.get(reference=reference, version=version)
    except Quotation.DoesNotExist:
        raise QuotationNotFound(f"Quotation {reference} v{version} not found")


def load(reference: str, version: int) -> QuotationSnapshot:
    return to_snapshot(get_row(reference, version))


def next_version(reference: str) -> int:
    latest = Quotation.objects.filter(reference=reference).aggregate(v=Max('version'))['v']
    return (latest or 0) + 1


# ------------------------- snapshot -> rows -------------------------

def _header_fields(snapshot: QuotationSnapshot) -> Dict[str, Any]:
    approval = snapshot.approval
    return {
        "parent_version": snapshot.parent_version,
        "client": dict(snapshot.client),
        "currency": snapshot.currency,
        "exchange_rates": {k: str(v) for k, v in snapshot.exchange_rates.items()},
        "validity_date": snapshot.validity_date,
        "payment_terms": snapshot.payment_terms,
        "active_option_key": snapshot.active_option_id,
        "status": approval.status.value,
        "requires_approval": approval.requires_approval,
        "requested_by": approval.requested_by,
        "approved_by": approval.approved_by,
        "rejection_reason": approval.rejection_reason,
        "cancellation_reason": approval.cancellation_reason,
        "approval_reason": approval.reason,
        "approval_triggers": [
            {"code": t.code, "message": t.message, "severity": t.severity} for t in approval.triggers
        ],
    }


def _write_content(row: Quotation, snapshot: QuotationSnapshot) -> None:
    row.options.all().delete()
    for pos, opt in enumerate(snapshot.options):
        option_row = PricingOption.objects.create(
            quotation=row,
            key=opt.id,
            position=pos,
            name=opt.name,
            mode=opt.mode.value,
            pol=opt.pol,
            pod=opt.pod,
            incoterm=opt.incoterm.value,
            equipment=[{"equipment_type": e.equipment_type, "count": e.count} for e in opt.equipment],
            cargo=cargo_to_json(opt.cargo),
            carrier=opt.carrier,
            transit_days=opt.transit_days,
            tariff_reference=opt.tariff_id,
            totals=totals_to_json(opt.totals),
        )
        QuoteLine.objects.bulk_create([
            QuoteLine(
                option=option_row,
                key=item.id,
                position=i,
                section=item.section.value,
                description=item.description,
                buy_price=d(item.buy_price).quantize(STORED_PLACES),
                buy_currency=item.buy_currency,
                markup_type=item.markup_type.value,
                markup_value=d(item.markup_value).quantize(STORED_PLACES),
                vat_rule=item.vat_rule.value,
                vendor_name=item.vendor_name,
                source=item.source.value,
                tariff_charge_ref=item.tariff_charge_ref,
                validity_date=item.validity_date,
                settlement=item.settlement.value,
            )
            for i, item in enumerate(opt.items)
        ])


def save_snapshot(snapshot: QuotationSnapshot, created_by=None) -> Quotation:
    """Upsert the quotation version; content rows are rewritten only on drafts."""
    fields = _header_fields(snapshot)
    row, created = Quotation.objects.get_or_create(
        reference=snapshot.reference,
        version=snapshot.version,
        defaults=dict(fields, created_by=created_by),
    )
    if not created:
        for name, value in fields.items():
            setattr(row, name, value)
        row.save()
    if snapshot.status == QuoteStatus.DRAFT:
        _write_content(row, snapshot)
    return row


def execute(result: CommandResult, actor=None) -> Quotation:
    """Carry out a command's intents in one transaction; last write wins."""
    actor = actor if getattr(actor, "is_authenticated", False) else None
    row = None
    with transaction.atomic():
        for intent in result.intents:
            if intent.kind == IntentKind.PERSIST:
                row = save_snapshot(result.quotation, created_by=actor)
            elif intent.kind == IntentKind.LOG_ACTIVITY:
                if row is None:
                    row = get_row(result.quotation.reference, result.quotation.version)
                payload = {k: v for k, v in intent.payload.items() if k not in ("reference", "version", "event")}
                ActivityLog.objects.create(
                    quotation=row,
                    event=intent.payload.get("event", "UPDATED"),
                    payload=payload,
                    actor=actor,
                )
    logger.debug("Executed %d intents for %s v%s", len(result.intents),
                 result.quotation.reference, result.quotation.version)
    return row
