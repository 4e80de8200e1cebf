"""Heuristic token counting and cost calculation.

Counts are a rough ~4 characters per token approximation plus a flat charge for
each attachment. They are not tokenizer-accurate and every cost derived from
them is an estimate.
"""

import math
from typing import Optional, Sequence

CHARS_PER_TOKEN = 4
TOKENS_PER_ATTACHMENT = 1000


def estimate_tokens(text: Optional[str], attachments: Optional[Sequence] = None) -> int:
    """Estimates the token count of ``text`` plus its attachments.

    Parameters
    ----------
    text : str, optional
        The message text. ``None`` counts as empty.
    attachments : Sequence, optional
        Attachments sent with the text, each charged a flat amount.

    Returns
    -------
    int
        ``ceil(len(text) / 4) + 1000 * len(attachments)``
    """
    tokens = math.ceil(len(text or "") / CHARS_PER_TOKEN)
    if attachments:
        tokens += len(attachments) * TOKENS_PER_ATTACHMENT
    return tokens


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    input_price_per_million: float,
    output_price_per_million: float,
) -> float:
    input_cost = (input_tokens / 1_000_000) * input_price_per_million
    output_cost = (output_tokens / 1_000_000) * output_price_per_million
    return input_cost + output_cost


def estimate_messages_tokens(messages: Sequence) -> int:
    """Sum of :func:`estimate_tokens` over chat messages and their attachments."""
    return sum(estimate_tokens(m.content, m.attachments) for m in messages)
