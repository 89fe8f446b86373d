"""
Chunk planning

Splits a total amount into chunks that look like organic pool deposits.
When recent deposit amounts are known, chunks are matched against them so
the run does not leave an N-equal-chunks fingerprint.
"""

import random
from typing import Iterable, Optional, Sequence

from .errors import InsufficientAmount, ValidationError
from .types import MAX_CHUNKS, MIN_CHUNKS, Chunk

# Random split weights are drawn from [WEIGHT_BASE, WEIGHT_BASE + WEIGHT_SPAN)
WEIGHT_BASE = 10.0
WEIGHT_SPAN = 20.0


def normalize_history(amounts: Iterable[int]) -> list[int]:
    """Unique, positive, ascending deposit amounts"""
    return sorted({int(a) for a in amounts if int(a) > 0})


def random_splits(chunk_count: int, rng: Optional[random.Random] = None) -> list[float]:
    """
    Generate random fractions for ``chunk_count`` chunks

    Returns:
        Fractions that sum to 1
    """
    rng = rng or random.Random()
    weights = [WEIGHT_BASE + rng.random() * WEIGHT_SPAN for _ in range(chunk_count)]
    total = sum(weights)
    return [w / total for w in weights]


def proportional_split(
    total_amount: int,
    chunk_count: int,
    rng: Optional[random.Random] = None,
) -> list[int]:
    """
    Split proportionally to random weights

    One lamport per chunk is reserved up front so every chunk stays positive.
    The last chunk absorbs the rounding remainder.
    """
    splits = random_splits(chunk_count, rng)
    spread = total_amount - chunk_count
    amounts = [1 + int(spread * s) for s in splits[:-1]]
    amounts.append(total_amount - sum(amounts))
    return amounts


def equal_split(total_amount: int, parts: int) -> list[int]:
    """Equal shares with the remainder on the last share"""
    if parts <= 0:
        raise ValueError("parts must be positive")
    share, remainder = divmod(total_amount, parts)
    return [share] * (parts - 1) + [share + remainder]


def _closest_unused(
    history: Sequence[int],
    used: set[int],
    target: float,
    ceiling: int,
) -> Optional[int]:
    best_index = None
    best_diff = None
    for i, amount in enumerate(history):
        if i in used or amount > ceiling:
            continue
        diff = abs(amount - target)
        if best_diff is None or diff < best_diff:
            best_index, best_diff = i, diff
    return best_index


def match_history(
    total_amount: int,
    chunk_count: int,
    history: Sequence[int],
) -> list[int]:
    """
    Match chunks to previous deposit amounts

    Each slot but the last takes the unused historical amount closest to an
    even share of what remains. Slots with no fitting amount get the floor
    of the even share. The last slot takes the remainder.
    """
    amounts: list[int] = []
    used: set[int] = set()
    remaining = total_amount

    for i in range(chunk_count - 1):
        slots_left = chunk_count - i
        target = remaining / slots_left
        # Leave at least one lamport for each later slot
        ceiling = remaining - (slots_left - 1)

        index = _closest_unused(history, used, target, ceiling)
        if index is not None:
            amount = history[index]
            used.add(index)
        else:
            amount = remaining // slots_left

        amounts.append(amount)
        remaining -= amount

    amounts.append(remaining)
    return amounts


def plan_chunks(
    total_amount: int,
    chunk_count: int,
    historical_amounts: Sequence[int] = (),
    rng: Optional[random.Random] = None,
    min_chunks: int = MIN_CHUNKS,
    max_chunks: int = MAX_CHUNKS,
) -> list[Chunk]:
    """
    Plan the chunks for a private send

    Args:
        total_amount: Amount to split (lamports)
        chunk_count: Number of chunks (privacy level)
        historical_amounts: Recent pool deposit amounts, may be empty
        rng: Random source for the proportional fallback

    Returns:
        Exactly ``chunk_count`` chunks summing to ``total_amount``

    Raises:
        ValidationError: If chunk_count is out of bounds
        InsufficientAmount: If total_amount cannot give every chunk a lamport
    """
    if not min_chunks <= chunk_count <= max_chunks:
        raise ValidationError(
            f"Privacy level must be between {min_chunks} and {max_chunks}"
        )
    if total_amount < chunk_count:
        raise InsufficientAmount(total_amount, chunk_count)

    history = normalize_history(historical_amounts)
    if history:
        amounts = match_history(total_amount, chunk_count, history)
    else:
        amounts = proportional_split(total_amount, chunk_count, rng)

    return [Chunk(sequence=i, amount=amount) for i, amount in enumerate(amounts)]
