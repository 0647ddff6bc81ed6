# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Strategies driven by explicit extraction markers placed after a link."""

from typing import Optional

from citation_context.models import EligibilityDecision, Link, MarkerText
from citation_context.strategies.base import ExtractionOptions, ExtractionStrategy


def _marker_text(link: Link) -> Optional[str]:
    if link.extraction_marker is None:
        return None
    return link.extraction_marker.inner_text


class StopMarkerStrategy(ExtractionStrategy):
    """%%stop-extract-link%% prevents extraction regardless of other rules."""

    def decide(self, link: Link, options: ExtractionOptions) -> Optional[EligibilityDecision]:
        if _marker_text(link) == MarkerText.STOP:
            return EligibilityDecision(
                eligible=False,
                reason="stop-extract-link marker prevents extraction (explicit opt-out)",
            )
        return None


class ForceMarkerStrategy(ExtractionStrategy):
    """%%force-extract%% makes a link eligible, e.g. a full-document link without --full-files."""

    def decide(self, link: Link, options: ExtractionOptions) -> Optional[EligibilityDecision]:
        if _marker_text(link) == MarkerText.FORCE:
            return EligibilityDecision(
                eligible=True,
                reason="force-extract marker overrides defaults (explicit opt-in)",
            )
        return None
