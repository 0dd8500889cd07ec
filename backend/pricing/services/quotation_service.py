"""
Quotation Commands

Every edit a user can make to a quotation is a function taking the current
snapshot and returning a CommandResult: the new snapshot, the side effects
the caller should carry out (persist, log activity) and any non-fatal
warnings. Nothing here touches the database.

After each edit the affected option totals are recomputed and, on drafts,
the "requires approval" flag is re-evaluated from the active option.
"""
from __future__ import annotations

import logging
import string
import uuid
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..dataclasses import (
    ApprovalRecord,
    CargoProfile,
    CommandResult,
    Equipment,
    Incoterm,
    Intent,
    IntentKind,
    LineSource,
    MarkupType,
    PricingOption,
    QuoteLineItem,
    QuoteStatus,
    Quotation,
    Section,
    Settlement,
    TariffRate,
    TransportMode,
    VatRule,
)
from .approval import (
    Action,
    ApprovalPolicy,
    InvalidCommand,
    apply_transition,
    ensure_editable,
)
from .chargeable_weight import validate_cargo
from .charge_resolver import resolve_cost
from .fx_service import FxConverter, load_baseline_rates
from .markup import compute_totals, edit_cost, edit_sell, risk_triggers
from .pricing_rules import base_currency, decimal_setting, get_pricing_rules, incoterm_sections
from .tariff_matcher import MatchQuery, MatchResult, Strategy, find_best_match
from .utils import d, q2

logger = logging.getLogger(__name__)

EDITABLE_LINE_FIELDS = {
    "section", "description", "buy_currency", "markup_type", "markup_value",
    "vat_rule", "vendor_name", "validity_date", "settlement",
}


def new_id() -> str:
    return uuid.uuid4().hex[:12]


# --------------------------- internals ---------------------------

def _fx(quotation: Quotation, rules: dict) -> FxConverter:
    return FxConverter(quotation.exchange_rates, base_currency(rules))


def _reprice(quotation: Quotation, rules: dict, option_ids: Optional[Iterable[str]] = None) -> Tuple[Quotation, List[str]]:
    fx = _fx(quotation, rules)
    wanted = set(option_ids) if option_ids is not None else None
    options = tuple(
        replace(opt, totals=compute_totals(opt, fx, quotation.currency))
        if wanted is None or opt.id in wanted or opt.totals is None else opt
        for opt in quotation.options
    )
    updated = replace(quotation, options=options)
    if updated.status == QuoteStatus.DRAFT:
        updated = _flag_risk(updated, rules)
    return updated, list(fx.warnings)


def _flag_risk(quotation: Quotation, rules: dict) -> Quotation:
    triggers = risk_triggers(quotation.active_option.totals, quotation.payment_terms, rules)
    approval = replace(
        quotation.approval,
        requires_approval=bool(triggers),
        reason=" | ".join(t.message for t in triggers) or None,
        triggers=triggers,
    )
    if approval == quotation.approval:
        return quotation
    return replace(quotation, approval=approval)


def _result(
    quotation: Quotation,
    event: str,
    detail: Optional[Mapping[str, Any]] = None,
    warnings: Sequence[str] = (),
) -> CommandResult:
    key = {"reference": quotation.reference, "version": quotation.version}
    activity = dict(key, event=event, **(detail or {}))
    return CommandResult(
        quotation=quotation,
        intents=(Intent(IntentKind.PERSIST, key), Intent(IntentKind.LOG_ACTIVITY, activity)),
        warnings=tuple(dict.fromkeys(warnings)),
    )


def _option(quotation: Quotation, option_id: str) -> PricingOption:
    try:
        return quotation.option(option_id)
    except KeyError:
        raise InvalidCommand(f"Option {option_id} not found on quotation {quotation.reference}")


def _line(option: PricingOption, line_id: str) -> QuoteLineItem:
    try:
        return option.line(line_id)
    except KeyError:
        raise InvalidCommand(f"Line {line_id} not found on option {option.name}")


def _swap_option(quotation: Quotation, option: PricingOption) -> Quotation:
    return replace(quotation, options=tuple(option if o.id == option.id else o for o in quotation.options))


def _swap_line(option: PricingOption, item: QuoteLineItem) -> PricingOption:
    return replace(option, items=tuple(item if i.id == item.id else i for i in option.items))


def _commit(
    quotation: Quotation,
    option: PricingOption,
    rules: dict,
    event: str,
    detail: Optional[Mapping[str, Any]] = None,
    warnings: Sequence[str] = (),
) -> CommandResult:
    updated, fx_warnings = _reprice(_swap_option(quotation, option), rules, [option.id])
    return _result(updated, event, dict(detail or {}, option_id=option.id), list(warnings) + fx_warnings)


def _option_name(index: int) -> str:
    letters = string.ascii_uppercase
    return f"Option {letters[index]}" if index < len(letters) else f"Option {index + 1}"


def _route_warnings(option: PricingOption) -> List[str]:
    warnings = []
    if not option.pol or not option.pod:
        warnings.append(f"{option.name}: origin and destination are required to rate the shipment")
    return warnings


def _default_markup(rules: dict) -> Decimal:
    return decimal_setting("default_markup_pct", rules)


# --------------------------- quotation ---------------------------

def new_quotation(
    reference: str,
    currency: Optional[str] = None,
    exchange_rates: Optional[Mapping[str, Decimal]] = None,
    client: Optional[Mapping[str, Any]] = None,
    mode: TransportMode = TransportMode.SEA_FCL,
    incoterm: Incoterm = Incoterm.FOB,
    pol: str = "",
    pod: str = "",
    payment_terms: str = "",
    today: Optional[date] = None,
    rules: Optional[dict] = None,
) -> CommandResult:
    rules = rules or get_pricing_rules()
    today = today or date.today()
    base = base_currency(rules)
    rates = {k.upper(): d(v) for k, v in (exchange_rates or load_baseline_rates(rules)).items()}
    rates[base.upper()] = d(1)
    option = PricingOption(id=new_id(), name=_option_name(0), mode=mode, pol=pol, pod=pod, incoterm=incoterm)
    quotation = Quotation(
        reference=reference,
        currency=(currency or base).upper(),
        exchange_rates=rates,
        options=(option,),
        active_option_id=option.id,
        client=dict(client or {}),
        validity_date=today + timedelta(days=int(rules.get("quote_validity_days", 15))),
        payment_terms=payment_terms,
        approval=ApprovalRecord(),
    )
    quotation, warnings = _reprice(quotation, rules)
    logger.info("Created quotation %s in %s", reference, quotation.currency)
    return _result(quotation, "CREATED", {"currency": quotation.currency}, _route_warnings(option) + warnings)


def set_exchange_rate(quotation: Quotation, currency: str, rate, rules: Optional[dict] = None) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    code = (currency or "").upper()
    if not code:
        raise InvalidCommand("Currency code is required")
    if code == base_currency(rules).upper():
        raise InvalidCommand(f"{code} is the base currency; its rate is always 1")
    value = d(rate)
    if value <= 0:
        raise InvalidCommand(f"Exchange rate for {code} must be positive")
    rates = dict(quotation.exchange_rates)
    rates[code] = value
    updated, warnings = _reprice(replace(quotation, exchange_rates=rates), rules)
    return _result(updated, "RATE_CHANGED", {"currency": code, "rate": str(value)}, warnings)


def set_quote_currency(quotation: Quotation, currency: str, rules: Optional[dict] = None) -> CommandResult:
    """Switch the currency the quotation is presented in and reprice every option.

    Base-currency amounts are unaffected; only the displayed totals move.
    """
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    code = (currency or "").strip().upper()
    if not code:
        raise InvalidCommand("Currency code is required")
    warnings = []
    if code != base_currency(rules).upper() and code not in quotation.exchange_rates:
        warnings.append(f"No exchange rate for {code}; using 1")
    previous = quotation.currency
    updated, fx_warnings = _reprice(replace(quotation, currency=code), rules)
    logger.info("Quotation %s currency %s -> %s", quotation.reference, previous, code)
    return _result(updated, "CURRENCY_CHANGED", {"from": previous, "currency": code}, warnings + fx_warnings)


# ---------------------------- options ----------------------------

def add_option(
    quotation: Quotation,
    name: Optional[str] = None,
    mode: Optional[TransportMode] = None,
    pol: Optional[str] = None,
    pod: Optional[str] = None,
    incoterm: Optional[Incoterm] = None,
    option_id: Optional[str] = None,
    rules: Optional[dict] = None,
) -> CommandResult:
    """Add an empty option; route and cargo default to the active option's."""
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    active = quotation.active_option
    option = PricingOption(
        id=option_id or new_id(),
        name=name or _option_name(len(quotation.options)),
        mode=mode or active.mode,
        pol=active.pol if pol is None else pol,
        pod=active.pod if pod is None else pod,
        incoterm=incoterm or active.incoterm,
        equipment=active.equipment,
        cargo=active.cargo,
    )
    updated = replace(quotation, options=quotation.options + (option,))
    updated, warnings = _reprice(updated, rules, [option.id])
    return _result(updated, "OPTION_ADDED", {"option_id": option.id, "name": option.name}, warnings)


def duplicate_option(
    quotation: Quotation,
    option_id: str,
    name: Optional[str] = None,
    rules: Optional[dict] = None,
) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    source = _option(quotation, option_id)
    copy = replace(
        source,
        id=new_id(),
        name=name or _option_name(len(quotation.options)),
        items=tuple(replace(item, id=new_id()) for item in source.items),
    )
    updated = replace(quotation, options=quotation.options + (copy,))
    updated, warnings = _reprice(updated, rules, [copy.id])
    return _result(updated, "OPTION_DUPLICATED", {"option_id": copy.id, "source_option_id": source.id}, warnings)


def remove_option(quotation: Quotation, option_id: str, rules: Optional[dict] = None) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    _option(quotation, option_id)
    if len(quotation.options) == 1:
        raise InvalidCommand("A quotation needs at least one option")
    remaining = tuple(o for o in quotation.options if o.id != option_id)
    active_id = quotation.active_option_id if quotation.active_option_id != option_id else remaining[0].id
    updated, warnings = _reprice(replace(quotation, options=remaining, active_option_id=active_id), rules, [])
    return _result(updated, "OPTION_REMOVED", {"option_id": option_id, "active_option_id": active_id}, warnings)


def set_active_option(quotation: Quotation, option_id: str, rules: Optional[dict] = None) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    option = _option(quotation, option_id)
    updated, warnings = _reprice(replace(quotation, active_option_id=option.id), rules, [])
    return _result(updated, "OPTION_ACTIVATED", {"option_id": option.id, "name": option.name}, warnings)


def update_route(
    quotation: Quotation,
    option_id: str,
    pol: Optional[str] = None,
    pod: Optional[str] = None,
    mode: Optional[TransportMode] = None,
    incoterm: Optional[Incoterm] = None,
    rules: Optional[dict] = None,
) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    option = _option(quotation, option_id)
    changes: Dict[str, Any] = {}
    if pol is not None:
        changes["pol"] = pol.strip().upper()
    if pod is not None:
        changes["pod"] = pod.strip().upper()
    if mode is not None:
        changes["mode"] = TransportMode(mode)
    if incoterm is not None:
        changes["incoterm"] = Incoterm(incoterm)
    option = replace(option, **changes)
    detail = {k: getattr(v, "value", v) for k, v in changes.items()}
    return _commit(quotation, option, rules, "ROUTE_UPDATED", detail, _route_warnings(option))


def update_cargo(quotation: Quotation, option_id: str, cargo: CargoProfile, rules: Optional[dict] = None) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    option = _option(quotation, option_id)
    equipment = cargo.equipment or option.equipment
    option = replace(option, cargo=replace(cargo, equipment=equipment), equipment=equipment)
    detail = {
        "packages": cargo.total_packages,
        "weight_kg": str(cargo.total_weight_kg),
        "volume_m3": str(cargo.total_volume_m3),
    }
    return _commit(quotation, option, rules, "CARGO_UPDATED", detail, validate_cargo(option.cargo, option.mode))


def update_equipment(
    quotation: Quotation,
    option_id: str,
    equipment: Sequence[Equipment],
    rules: Optional[dict] = None,
) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    option = _option(quotation, option_id)
    rows = tuple(e for e in equipment if e.count > 0)
    option = replace(option, equipment=rows, cargo=replace(option.cargo, equipment=rows))
    detail = {"equipment": [f"{e.count}x{e.equipment_type}" for e in rows]}
    return _commit(quotation, option, rules, "EQUIPMENT_UPDATED", detail, validate_cargo(option.cargo, option.mode))


# ----------------------------- lines -----------------------------

def add_line(
    quotation: Quotation,
    option_id: str,
    section: Section,
    description: str = "",
    buy_price=0,
    buy_currency: Optional[str] = None,
    markup_type: MarkupType = MarkupType.PERCENT,
    markup_value=None,
    vat_rule: VatRule = VatRule.STD_20,
    vendor_name: str = "",
    validity_date: Optional[date] = None,
    settlement: Settlement = Settlement.CONFIRMED,
    line_id: Optional[str] = None,
    rules: Optional[dict] = None,
) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    option = _option(quotation, option_id)
    item = QuoteLineItem(
        id=line_id or new_id(),
        section=Section(section),
        description=description,
        buy_price=d(buy_price),
        buy_currency=(buy_currency or quotation.currency).upper(),
        markup_type=MarkupType(markup_type),
        markup_value=_default_markup(rules) if markup_value is None else d(markup_value),
        vat_rule=VatRule(vat_rule),
        vendor_name=vendor_name,
        source=LineSource.MANUAL,
        validity_date=validity_date,
        settlement=Settlement(settlement),
    )
    option = replace(option, items=option.items + (item,))
    return _commit(quotation, option, rules, "LINE_ADDED", {"line_id": item.id, "description": description})


def update_line(
    quotation: Quotation,
    option_id: str,
    line_id: str,
    rules: Optional[dict] = None,
    **fields: Any,
) -> CommandResult:
    """Change descriptive or markup fields of a line. Prices go through the cost/sell edits."""
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    unknown = set(fields) - EDITABLE_LINE_FIELDS
    if unknown:
        raise InvalidCommand(f"Cannot update line fields: {', '.join(sorted(unknown))}")
    option = _option(quotation, option_id)
    item = _line(option, line_id)

    coerce = {
        "section": Section,
        "markup_type": MarkupType,
        "vat_rule": VatRule,
        "settlement": Settlement,
        "markup_value": d,
        "buy_currency": lambda v: (v or "").upper(),
    }
    changes = {k: coerce[k](v) if k in coerce else v for k, v in fields.items()}
    item = replace(item, **changes)
    detail = {"line_id": line_id, "fields": sorted(changes)}
    return _commit(quotation, _swap_line(option, item), rules, "LINE_UPDATED", detail)


def edit_line_cost(quotation: Quotation, option_id: str, line_id: str, buy_price, rules: Optional[dict] = None) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    option = _option(quotation, option_id)
    item = _line(option, line_id)
    edited, warnings = edit_cost(item, d(buy_price), _fx(quotation, rules), quotation.currency)
    detail = {
        "line_id": line_id,
        "buy_price": str(q2(edited.buy_price)),
        "markup_value": str(q2(edited.markup_value)),
    }
    return _commit(quotation, _swap_line(option, edited), rules, "LINE_COST_EDITED", detail, warnings)


def edit_line_sell(quotation: Quotation, option_id: str, line_id: str, sell_ttc, rules: Optional[dict] = None) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    option = _option(quotation, option_id)
    item = _line(option, line_id)
    edited, warnings = edit_sell(item, d(sell_ttc), _fx(quotation, rules), quotation.currency)
    detail = {"line_id": line_id, "sell_ttc": str(d(sell_ttc)), "buy_price": str(q2(edited.buy_price))}
    return _commit(quotation, _swap_line(option, edited), rules, "LINE_SELL_EDITED", detail, warnings)


def remove_line(quotation: Quotation, option_id: str, line_id: str, rules: Optional[dict] = None) -> CommandResult:
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    option = _option(quotation, option_id)
    item = _line(option, line_id)
    option = replace(option, items=tuple(i for i in option.items if i.id != line_id))
    return _commit(quotation, option, rules, "LINE_REMOVED", {"line_id": line_id, "description": item.description})


# ---------------------------- tariffs ----------------------------

def charge_ref(tariff: TariffRate, charge) -> str:
    return f"{tariff.id}:{charge.id or charge.name}"


def tariff_lines(option: PricingOption, tariff: TariffRate, rules: dict) -> List[QuoteLineItem]:
    """Quote lines for every tariff charge in a section the incoterm puts on us."""
    billed = set(incoterm_sections(option.incoterm, rules))
    markup = _default_markup(rules)
    lines = []
    for section, charge in tariff.charges_by_section():
        if section not in billed:
            logger.debug("Skipping %s charge %s under %s", section.value, charge.name, option.incoterm.value)
            continue
        cost = resolve_cost(charge, option.cargo, option.equipment, option.mode)
        lines.append(QuoteLineItem(
            id=new_id(),
            section=section,
            description=charge.name,
            buy_price=q2(cost),
            buy_currency=charge.currency.upper(),
            markup_type=MarkupType.PERCENT,
            markup_value=markup,
            vat_rule=charge.vat_rule,
            vendor_name=tariff.carrier,
            source=LineSource.TARIFF,
            tariff_charge_ref=charge_ref(tariff, charge),
            validity_date=tariff.valid_to,
            settlement=Settlement.CONFIRMED,
        ))
    return lines


def _merge_lines(existing: Tuple[QuoteLineItem, ...], incoming: List[QuoteLineItem], policy: str) -> Tuple[Tuple[QuoteLineItem, ...], int]:
    if policy == "OVERWRITE":
        filled = {i.section for i in incoming}
        kept = tuple(
            i for i in existing
            if i.source == LineSource.MANUAL
            or (i.source == LineSource.SMART_DEFAULT and i.section not in filled)
        )
        return kept + tuple(incoming), len(incoming)

    refs = {i.tariff_charge_ref for i in existing if i.tariff_charge_ref}
    names = {(i.section, i.description.strip().lower()) for i in existing}
    added = [
        i for i in incoming
        if i.tariff_charge_ref not in refs and (i.section, i.description.strip().lower()) not in names
    ]
    return existing + tuple(added), len(added)


def apply_tariff(
    quotation: Quotation,
    option_id: str,
    tariff: TariffRate,
    today: Optional[date] = None,
    policy: Optional[str] = None,
    rules: Optional[dict] = None,
) -> CommandResult:
    """
    Price an option from a carrier rate sheet.

    FILL_GAPS only adds charges the option does not carry yet; OVERWRITE
    replaces tariff and smart-default lines and keeps manual ones.
    """
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    policy = (policy or rules.get("reapply_policy", "FILL_GAPS")).upper()
    if policy not in ("FILL_GAPS", "OVERWRITE"):
        raise InvalidCommand(f"Unknown re-apply policy: {policy}")
    today = today or date.today()
    option = _option(quotation, option_id)

    warnings: List[str] = []
    if tariff.valid_to < today:
        warnings.append(f"Tariff {tariff.id} expired on {tariff.valid_to.isoformat()}; the quotation cannot be sent")
    warnings.extend(validate_cargo(option.cargo, option.mode))

    items, added = _merge_lines(option.items, tariff_lines(option, tariff, rules), policy)
    option = replace(
        option,
        items=items,
        carrier=tariff.carrier,
        transit_days=tariff.transit_days,
        tariff_id=tariff.id,
    )
    logger.info("Applied tariff %s to %s/%s (%s, %d lines)", tariff.id, quotation.reference, option.name, policy, added)
    detail = {"tariff_id": tariff.id, "carrier": tariff.carrier, "policy": policy, "lines_added": added}
    return _commit(quotation, option, rules, "TARIFF_APPLIED", detail, warnings)


def smart_default_lines(option: PricingOption, rules: dict) -> List[QuoteLineItem]:
    """Placeholder lines for billed sections that have nothing in them yet."""
    markup = _default_markup(rules)
    present = {i.section for i in option.items}
    lines = []
    for section in incoterm_sections(option.incoterm, rules):
        if section in present:
            continue
        for entry in rules["smart_defaults"].get(section.value, []):
            lines.append(QuoteLineItem(
                id=new_id(),
                section=section,
                description=entry["description"],
                buy_price=d(entry.get("buy_price", 0)),
                buy_currency=entry.get("buy_currency", "USD").upper(),
                markup_type=MarkupType.PERCENT,
                markup_value=markup,
                vat_rule=VatRule(entry.get("vat_rule", "STD_20")),
                source=LineSource.SMART_DEFAULT,
                settlement=Settlement.ESTIMATED,
            ))
    return lines


def initialize_smart_lines(
    quotation: Quotation,
    option_id: str,
    catalogue: Optional[Iterable[TariffRate]],
    today: Optional[date] = None,
    strategy: Optional[Strategy] = None,
    rules: Optional[dict] = None,
) -> CommandResult:
    """
    Auto-rate an option: apply the best matching tariff, or seed estimated
    default lines when the catalogue has nothing usable.
    """
    rules = rules or get_pricing_rules()
    ensure_editable(quotation)
    today = today or date.today()
    option = _option(quotation, option_id)
    match: MatchResult = find_best_match(
        catalogue,
        MatchQuery(pol=option.pol, pod=option.pod, mode=option.mode, incoterm=option.incoterm, date=today),
        strategy,
    )
    if match.matched:
        applied = apply_tariff(quotation, option_id, match.rate, today=today, rules=rules)
        return _result(
            applied.quotation,
            "AUTO_RATED",
            {"option_id": option_id, "match": match.reason.value, "tariff_id": match.rate.id},
            list(applied.warnings),
        )

    defaults = smart_default_lines(option, rules)
    option = replace(option, items=option.items + tuple(defaults))
    detail = {"match": match.reason.value, "lines_added": len(defaults)}
    return _commit(quotation, option, rules, "AUTO_RATED", detail, [match.message])


# -------------------------- lifecycle ---------------------------

def transition(
    quotation: Quotation,
    action: Action,
    actor: Any = None,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    policy: Optional[ApprovalPolicy] = None,
) -> CommandResult:
    updated, activity = apply_transition(quotation, action, actor, reason, today, policy)
    return _result(updated, activity.pop("event"), activity)


def create_revision(
    quotation: Quotation,
    next_version: Optional[int] = None,
    actor: Any = None,
    rules: Optional[dict] = None,
) -> CommandResult:
    """
    Copy a quotation into a new draft version. The source version is left
    untouched; this is the only way to change an accepted or rejected quote.
    """
    rules = rules or get_pricing_rules()
    version = next_version or quotation.version + 1
    if version <= quotation.version:
        raise InvalidCommand(f"Revision must be newer than v{quotation.version}")
    revision = replace(
        quotation,
        version=version,
        parent_version=quotation.version,
        approval=ApprovalRecord(),
    )
    revision, warnings = _reprice(revision, rules)
    logger.info("Created revision %s v%s from v%s", quotation.reference, version, quotation.version)
    detail = {"parent_version": quotation.version, "from_status": quotation.status.value}
    if actor is not None:
        detail["actor"] = getattr(actor, "username", None) or str(actor)
    return _result(revision, "REVISION_CREATED", detail, warnings)
