# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Default-policy strategies: anchor links by default, full documents on request."""

from typing import Optional

from citation_context.models import AnchorType, EligibilityDecision, Link
from citation_context.strategies.base import ExtractionOptions, ExtractionStrategy


class SectionLinkStrategy(ExtractionStrategy):
    """Header and block links point at a narrow, intentional slice: eligible by default."""

    def decide(self, link: Link, options: ExtractionOptions) -> Optional[EligibilityDecision]:
        if link.anchor_type in (AnchorType.HEADER, AnchorType.BLOCK):
            return EligibilityDecision(eligible=True, reason="Anchor links eligible by default")
        return None


class CliFlagStrategy(ExtractionStrategy):
    """Terminal strategy for full-document links: the full_files flag decides."""

    def decide(self, link: Link, options: ExtractionOptions) -> Optional[EligibilityDecision]:
        if options.full_files:
            return EligibilityDecision(
                eligible=True,
                reason="--full-files flag enables full-document extraction",
            )
        return EligibilityDecision(
            eligible=False,
            reason="Full-document link ineligible without --full-files flag",
        )
