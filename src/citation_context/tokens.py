# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Token counting for extracted content using tiktoken."""

import logging
from typing import Optional

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"


class TokenCounter:
    """Counts tokens with a lazily loaded tiktoken encoding.

    Loading an encoding may need network access the first time, so it is
    deferred until the first count. When the encoding cannot be loaded the
    counter falls back to a word-based approximation.
    """

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        self._encoding_name = encoding_name
        self._encoder: Optional[tiktoken.Encoding] = None
        self._unavailable = False

    def _get_encoder(self) -> Optional[tiktoken.Encoding]:
        if self._encoder is None and not self._unavailable:
            try:
                self._encoder = tiktoken.get_encoding(self._encoding_name)
            except Exception as e:
                logger.warning(f"Failed to initialize tiktoken encoder: {e}")
                self._unavailable = True
        return self._encoder

    def count(self, text: str) -> int:
        """Number of tokens in text (approximate if tiktoken is unavailable)."""
        if not text:
            return 0
        encoder = self._get_encoder()
        if encoder is not None:
            return len(encoder.encode(text))
        # ~1.3 tokens per word
        return int(len(text.split()) * 1.3)

    __call__ = count
