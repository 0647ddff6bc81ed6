# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Extraction eligibility strategies."""

from .base import ExtractionOptions, ExtractionStrategy
from .chain import NO_STRATEGY_MATCHED, StrategyChain, analyze_eligibility, default_strategies
from .defaults import CliFlagStrategy, SectionLinkStrategy
from .markers import ForceMarkerStrategy, StopMarkerStrategy

__all__ = [
    "ExtractionOptions",
    "ExtractionStrategy",
    "StrategyChain",
    "analyze_eligibility",
    "default_strategies",
    "NO_STRATEGY_MATCHED",
    "StopMarkerStrategy",
    "ForceMarkerStrategy",
    "SectionLinkStrategy",
    "CliFlagStrategy",
]
