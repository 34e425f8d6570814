"""
Matching Rules Module
"""

from .tiered_rules import TieredMatchingRules, LayerOutcome

__all__ = ["TieredMatchingRules", "LayerOutcome"]
