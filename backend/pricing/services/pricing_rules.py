"""
Pricing Rules Configuration

This module loads, validates and caches the JSON configuration that drives
the rating engine defaults: base currency, baseline exchange rates,
volumetric ratios per transport mode, markup and margin thresholds, the
tariff re-apply policy and the smart-default lines seeded per incoterm.
"""

import json
import logging
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional

from ..dataclasses import Incoterm, Section, TransportMode, VatRule

logger = logging.getLogger(__name__)

REAPPLY_POLICIES = {"FILL_GAPS", "OVERWRITE"}


class PricingRulesError(Exception):
    """Base exception for pricing rules related errors"""
    pass


class ConfigurationError(PricingRulesError):
    """Raised when there are issues with the configuration file"""
    pass


class ValidationError(PricingRulesError):
    """Raised when pricing rules validation fails"""
    pass


def default_rules_path() -> Path:
    env_path = os.environ.get("PRICING_RULES_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).parent.parent / "config" / "pricing_rules.json"


def load_pricing_rules(config_path: Optional[str] = None) -> dict:
    """
    Load pricing rules from a JSON configuration file

    Args:
        config_path: Path to the rules JSON file. If None, uses PRICING_RULES_PATH
            or the file shipped in pricing/config.

    Returns:
        dict: Parsed pricing rules

    Raises:
        ConfigurationError: If the file cannot be loaded or parsed
    """
    path = Path(config_path) if config_path is not None else default_rules_path()
    if not path.exists():
        raise ConfigurationError(f"Pricing rules configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            rules = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in pricing rules file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error loading pricing rules configuration: {e}")

    logger.info("Loaded pricing rules from %s", path)
    return rules


def validate_pricing_rules(rules: dict) -> List[str]:
    """
    Validate that pricing rules are complete and consistent

    Returns:
        List[str]: validation errors (empty if valid)
    """
    errors: List[str] = []

    required_keys = [
        "version", "base_currency", "baseline_rates", "volumetric_ratios",
        "default_markup_pct", "min_margin_pct", "high_value_threshold",
        "extended_credit_markers", "reapply_policy",
        "incoterm_sections", "smart_defaults",
    ]
    for key in required_keys:
        if key not in rules:
            errors.append(f"Missing required top-level key: {key}")
    if errors:
        return errors

    base = rules["base_currency"]
    rates = rules["baseline_rates"]
    if not isinstance(rates, dict):
        errors.append("baseline_rates must be an object")
    else:
        for ccy, value in rates.items():
            if not _is_positive_decimal(value):
                errors.append(f"Baseline rate for {ccy} must be a positive number")
        if base not in rates:
            errors.append(f"Base currency {base} missing from baseline_rates")
        elif _is_positive_decimal(rates[base]) and Decimal(str(rates[base])) != 1:
            errors.append(f"Base currency {base} must map to 1")

    ratios = rules["volumetric_ratios"]
    for mode in TransportMode:
        if mode.value not in ratios:
            errors.append(f"Missing volumetric ratio for mode {mode.value}")
        elif not _is_positive_decimal(ratios[mode.value]):
            errors.append(f"Volumetric ratio for {mode.value} must be positive")

    for key in ("default_markup_pct", "min_margin_pct"):
        try:
            Decimal(str(rules[key]))
        except InvalidOperation:
            errors.append(f"{key} must be numeric")

    if not _is_positive_decimal(rules["high_value_threshold"]):
        errors.append("high_value_threshold must be a positive number")
    markers = rules["extended_credit_markers"]
    if not isinstance(markers, list) or not all(isinstance(m, str) and m.strip() for m in markers):
        errors.append("extended_credit_markers must be a list of non-empty strings")

    if rules["reapply_policy"] not in REAPPLY_POLICIES:
        errors.append(f"Unknown reapply_policy: {rules['reapply_policy']}")

    errors.extend(_validate_incoterm_sections(rules["incoterm_sections"]))
    errors.extend(_validate_smart_defaults(rules["smart_defaults"]))

    if errors:
        logger.warning("Pricing rules validation found %d errors", len(errors))
    return errors


def _is_positive_decimal(value) -> bool:
    try:
        return Decimal(str(value)) > 0
    except InvalidOperation:
        return False


def _validate_incoterm_sections(mapping: dict) -> List[str]:
    errors = []
    sections = {s.value for s in Section}
    for term in Incoterm:
        if term.value not in mapping:
            errors.append(f"Missing incoterm sections for {term.value}")
            continue
        for section in mapping[term.value]:
            if section not in sections:
                errors.append(f"Unknown section {section} for incoterm {term.value}")
    return errors


def _validate_smart_defaults(mapping: dict) -> List[str]:
    errors = []
    vat_rules = {v.value for v in VatRule}
    for section, lines in mapping.items():
        if section not in {s.value for s in Section}:
            errors.append(f"Unknown smart default section: {section}")
            continue
        if not isinstance(lines, list):
            errors.append(f"Smart defaults for {section} must be a list")
            continue
        for line in lines:
            if not line.get("description"):
                errors.append(f"Smart default in {section} has no description")
            if line.get("vat_rule", "STD_20") not in vat_rules:
                errors.append(f"Unknown VAT rule {line.get('vat_rule')} in {section}")
    return errors


def get_pricing_rules() -> dict:
    """Get a cached, validated instance of the pricing rules"""
    if not hasattr(get_pricing_rules, "_cached_rules"):
        rules = load_pricing_rules()
        validation_errors = validate_pricing_rules(rules)
        if validation_errors:
            logger.error("Pricing rules validation failed: %s", validation_errors)
            raise ValidationError(f"Pricing rules validation failed: {validation_errors}")
        get_pricing_rules._cached_rules = rules
    return get_pricing_rules._cached_rules


def clear_pricing_rules_cache():
    """Clear the cached pricing rules (useful for testing or config updates)"""
    if hasattr(get_pricing_rules, "_cached_rules"):
        delattr(get_pricing_rules, "_cached_rules")


# Typed accessors

def base_currency(rules: Optional[dict] = None) -> str:
    rules = rules or get_pricing_rules()
    return rules["base_currency"]


def volumetric_ratios(rules: Optional[dict] = None) -> Dict[TransportMode, Decimal]:
    rules = rules or get_pricing_rules()
    return {TransportMode(k): Decimal(str(v)) for k, v in rules["volumetric_ratios"].items()}


def incoterm_sections(incoterm: Incoterm, rules: Optional[dict] = None) -> List[Section]:
    rules = rules or get_pricing_rules()
    return [Section(s) for s in rules["incoterm_sections"].get(incoterm.value, [])]


def decimal_setting(key: str, rules: Optional[dict] = None) -> Decimal:
    rules = rules or get_pricing_rules()
    return Decimal(str(rules[key]))
