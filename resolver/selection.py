# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import List, Optional, Sequence, Tuple

from loguru import logger

from .constants import DEFAULT_MAX_BNB_NODES
from .types import FundingError, WalletCoin
from .utils import outpoint_key

STRATEGY_EXACT = "exact"
STRATEGY_LARGEST_SINGLE = "largest_single"
STRATEGY_LARGEST_FIRST = "largest_first"


def _selection_key(
    coins: Sequence[WalletCoin]
) -> Tuple[int, List[Tuple[str, int]]]:
    return len(coins), sorted(outpoint_key(c.outpoint) for c in coins)


def find_exact_subset(
    ranked: Sequence[WalletCoin],
    target: int,
    max_nodes: int = DEFAULT_MAX_BNB_NODES,
) -> Optional[List[WalletCoin]]:
    """Depth-first branch and bound search for a subset of ranked coins
    that sums exactly to target.

    Among exact subsets the one with fewer coins wins, then the one with
    lexicographically smaller sorted outpoint list. When more than
    max_nodes nodes are visited the search gives up and returns None,
    even if some exact subset was already seen.
    """

    assert target > 0
    assert max_nodes > 0

    amounts = [coin.amount for coin in ranked]

    suffix_sums = [0] * (len(amounts) + 1)
    for i in range(len(amounts) - 1, -1, -1):
        suffix_sums[i] = suffix_sums[i + 1] + amounts[i]

    best: Optional[List[WalletCoin]] = None
    nodes = 0

    # (next index, running sum, indexes of chosen coins)
    stack: List[Tuple[int, int, Tuple[int, ...]]] = [(0, 0, ())]

    while stack:
        index, running, chosen = stack.pop()

        nodes += 1
        if nodes > max_nodes:
            logger.warning(
                f"exact search gave up after {max_nodes} nodes "
                f"(target {target}, {len(ranked)} coins)"
            )
            return None

        if running == target:
            selection = [ranked[i] for i in chosen]
            if best is None or _selection_key(selection) < _selection_key(best):
                best = selection
            continue

        if index == len(amounts):
            continue

        if running + suffix_sums[index] < target:
            continue

        # at least one more coin is needed, cannot beat the best anymore
        if best is not None and len(chosen) >= len(best):
            continue

        # popped in reverse order: including the coin is explored first
        stack.append((index + 1, running, chosen))
        if running + amounts[index] <= target:
            stack.append(
                (index + 1, running + amounts[index], chosen + (index,))
            )

    return best


def largest_single_sufficient(
    ranked: Sequence[WalletCoin], target: int
) -> Optional[List[WalletCoin]]:
    if ranked and ranked[0].amount >= target:
        return [ranked[0]]
    return None


def largest_first_accumulation(
    ranked: Sequence[WalletCoin], target: int
) -> Optional[List[WalletCoin]]:
    running = 0
    for n, coin in enumerate(ranked):
        running += coin.amount
        if running >= target:
            return list(ranked[:n + 1])
    return None


def select_coins_for_deficit(
    ranked: Sequence[WalletCoin],
    target: int,
    max_nodes: int = DEFAULT_MAX_BNB_NODES,
) -> Tuple[str, List[WalletCoin]]:
    """Select coins from the ranked candidate list to cover target.
    Returns the name of the strategy that succeeded and the coins"""

    if not ranked:
        raise FundingError("no coins available to cover the deficit")

    selected = find_exact_subset(ranked, target, max_nodes)
    if selected is not None:
        return STRATEGY_EXACT, selected

    selected = largest_single_sufficient(ranked, target)
    if selected is not None:
        return STRATEGY_LARGEST_SINGLE, selected

    selected = largest_first_accumulation(ranked, target)
    if selected is not None:
        return STRATEGY_LARGEST_FIRST, selected

    raise FundingError(
        f"available coins total {sum(c.amount for c in ranked)}, "
        f"not enough to cover {target}"
    )
