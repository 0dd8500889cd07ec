"""Snapshot builders shared by the engine tests."""
from datetime import date
from decimal import Decimal

from ..dataclasses import (
    ApprovalRecord,
    CostBasis,
    Incoterm,
    MarkupType,
    PricingOption,
    QuoteLineItem,
    QuoteStatus,
    Quotation,
    RateCharge,
    Section,
    TariffRate,
    TariffStatus,
    TransportMode,
    VatRule,
)

TODAY = date(2025, 3, 1)
RATES = {"MAD": Decimal("1"), "USD": Decimal("10.0"), "EUR": Decimal("10.8")}


def line(line_id="l1", buy="100", currency="USD", markup="20", markup_type=MarkupType.PERCENT,
         section=Section.FREIGHT, vat_rule=VatRule.EXPORT_0_ART92, **kwargs):
    return QuoteLineItem(
        id=line_id,
        section=section,
        description=kwargs.pop("description", f"{section.value.title()} charge"),
        buy_price=Decimal(buy),
        buy_currency=currency,
        markup_type=markup_type,
        markup_value=Decimal(markup),
        vat_rule=vat_rule,
        **kwargs,
    )


def option(option_id="opt-a", items=(), **kwargs):
    kwargs.setdefault("pol", "MACAS")
    kwargs.setdefault("pod", "CNSHA")
    return PricingOption(id=option_id, items=tuple(items), **kwargs)


def quotation(options=None, status=QuoteStatus.DRAFT, requires_approval=False, currency="MAD", **kwargs):
    options = tuple(options or (option(),))
    approval = kwargs.pop("approval", None) or ApprovalRecord(status=status, requires_approval=requires_approval)
    return Quotation(
        reference=kwargs.pop("reference", "Q-1001"),
        currency=currency,
        exchange_rates=dict(RATES),
        options=options,
        active_option_id=kwargs.pop("active_option_id", options[0].id),
        approval=approval,
        **kwargs,
    )


def tariff(rate_id="T1", pol="MACAS", pod="CNSHA", mode=TransportMode.SEA_FCL, incoterm=Incoterm.FOB,
           status=TariffStatus.ACTIVE, valid_to=date(2025, 6, 30), freight_price="1500", **kwargs):
    freight = kwargs.pop("freight_charges", (
        RateCharge(name="Ocean Freight", basis=CostBasis.CONTAINER, currency="USD",
                   vat_rule=VatRule.EXPORT_0_ART92, price_20dv=Decimal("900"),
                   price_40hc=Decimal(freight_price), id=f"{rate_id}-of"),
    ))
    return TariffRate(
        id=rate_id,
        carrier=kwargs.pop("carrier", "Maersk"),
        pol=pol,
        pod=pod,
        mode=mode,
        incoterm=incoterm,
        status=status,
        valid_from=kwargs.pop("valid_from", date(2025, 1, 1)),
        valid_to=valid_to,
        freight_charges=freight,
        **kwargs,
    )
