"""Vendor action rules for confirmed matches."""

from .evaluator import evaluate_vendor_action, rule_priority
from .service import VendorActionService

__all__ = ["evaluate_vendor_action", "rule_priority", "VendorActionService"]
