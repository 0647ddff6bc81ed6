# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Base interface for extraction eligibility strategies.

Each strategy encapsulates one eligibility rule. A strategy either returns a
definitive EligibilityDecision or None to defer to the next strategy in the
chain.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from citation_context.models import EligibilityDecision, Link


@dataclass(frozen=True)
class ExtractionOptions:
    """Caller-supplied flags recognized by the strategy chain and extractor."""

    full_files: bool = False  # allow full-document extraction
    scope_folder: Optional[str] = None  # enables short filename resolution


class ExtractionStrategy(ABC):
    """Abstract base class for eligibility strategies.

    Design Pattern:
    - Strategies are independent and stateless
    - The chain evaluates them in a fixed order, first decision wins
    - A strategy returning None does not apply to the link

    Strategies MUST NOT raise for links they do not recognize.
    """

    @abstractmethod
    def decide(self, link: Link, options: ExtractionOptions) -> Optional[EligibilityDecision]:
        """Decide whether the link's target content should be extracted.

        Args:
            link: A link that already passed validation.
            options: Caller flags.

        Returns:
            EligibilityDecision, or None to defer to the next strategy.
        """
        pass

    def name(self) -> str:
        """Strategy name for logging and debugging."""
        return type(self).__name__
