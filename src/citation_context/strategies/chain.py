# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Ordered evaluation of eligibility strategies.

The chain is fixed at construction: callers may substitute the whole ordered
sequence, but never reorder entries per call. The first strategy returning a
decision wins; if none applies the link is ineligible.
"""

import logging
from typing import Iterable, Sequence, Tuple

from citation_context.models import EligibilityDecision, Link

from .base import ExtractionOptions, ExtractionStrategy
from .defaults import CliFlagStrategy, SectionLinkStrategy
from .markers import ForceMarkerStrategy, StopMarkerStrategy

logger = logging.getLogger(__name__)

NO_STRATEGY_MATCHED = EligibilityDecision(eligible=False, reason="No strategy matched")


def default_strategies() -> Tuple[ExtractionStrategy, ...]:
    """Built-in strategies in precedence order."""
    return (
        StopMarkerStrategy(),
        ForceMarkerStrategy(),
        SectionLinkStrategy(),
        CliFlagStrategy(),
    )


def analyze_eligibility(
    link: Link,
    options: ExtractionOptions,
    strategies: Iterable[ExtractionStrategy],
) -> EligibilityDecision:
    """Return the first definitive decision from strategies, in order."""
    for strategy in strategies:
        decision = strategy.decide(link, options)
        if decision is not None:
            logger.debug(
                f"{strategy.name()} decided eligible={decision.eligible} "
                f"for {link.full_match}: {decision.reason}"
            )
            return decision
    return NO_STRATEGY_MATCHED


class StrategyChain:
    """Immutable, ordered strategy list.

    Usage:
        chain = StrategyChain()  # built-in order
        decision = chain.analyze(link, ExtractionOptions(full_files=True))
    """

    def __init__(self, strategies: Sequence[ExtractionStrategy] = ()) -> None:
        """Initialize the chain.

        Args:
            strategies: Replacement strategy sequence. Empty means the built-ins.

        Raises:
            TypeError: If an entry is not an ExtractionStrategy instance.
        """
        chosen = tuple(strategies) if strategies else default_strategies()
        for strategy in chosen:
            if not isinstance(strategy, ExtractionStrategy):
                raise TypeError(
                    f"Strategy must be an ExtractionStrategy instance, got {type(strategy)}"
                )
        self._strategies: Tuple[ExtractionStrategy, ...] = chosen

    @property
    def strategies(self) -> Tuple[ExtractionStrategy, ...]:
        return self._strategies

    def names(self) -> Tuple[str, ...]:
        return tuple(strategy.name() for strategy in self._strategies)

    def analyze(self, link: Link, options: ExtractionOptions) -> EligibilityDecision:
        return analyze_eligibility(link, options, self._strategies)

    def __len__(self) -> int:
        return len(self._strategies)
