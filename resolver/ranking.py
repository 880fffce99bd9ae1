# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import Iterable, List, Optional, Tuple

from bitcointx.core import b2lx

from .constants import MAX_AMOUNT
from .equation import EquationState
from .types import InvalidRequestError, WalletCoin, WalletSourceFilter

CandidateScore = Tuple[int, int, int, str, int]


def coin_rank_key(coin: WalletCoin) -> Tuple[int, str, int]:
    return -coin.amount, b2lx(coin.outpoint.hash), coin.outpoint.n


def canonical_order(coins: Iterable[WalletCoin]) -> List[WalletCoin]:
    """Amount descending, then txid and vout ascending"""
    return sorted(coins, key=coin_rank_key)


def matching_coins(
    state: EquationState,
    coins: Iterable[WalletCoin],
    coin_filter: WalletSourceFilter,
) -> List[WalletCoin]:
    return [coin for coin in coins
            if coin_filter.matches(coin) and not state.is_used(coin.outpoint)]


def score_candidate(state: EquationState, coin: WalletCoin) -> CandidateScore:
    """Score of the coin as a declared input, lower is better:
    total deficit that remains if the coin is added, the deficit that
    remains on the coin's asset, and how far the amount is from the need"""

    supplied = state.supply.get(coin.asset, 0)
    if supplied + coin.amount > MAX_AMOUNT:
        raise InvalidRequestError(
            f"supply overflow for asset {coin.asset.to_hex()} "
            f"when scoring coin {b2lx(coin.outpoint.hash)}:{coin.outpoint.n}"
        )

    need_before = state.deficit(coin.asset)
    remaining_on_asset = max(0, need_before - coin.amount)
    total_after = state.total_deficit() - need_before + remaining_on_asset
    if total_after > MAX_AMOUNT:
        raise InvalidRequestError(
            "deficit overflow while scoring wallet candidates"
        )

    return (
        total_after,
        remaining_on_asset,
        abs(coin.amount - need_before),
        b2lx(coin.outpoint.hash),
        coin.outpoint.n,
    )


def select_best_candidate(
    state: EquationState,
    coins: Iterable[WalletCoin],
    coin_filter: WalletSourceFilter,
) -> Optional[WalletCoin]:
    candidates = matching_coins(state, coins, coin_filter)
    if not candidates:
        return None

    return min(candidates, key=lambda coin: score_candidate(state, coin))
