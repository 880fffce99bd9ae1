# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import Set, Tuple

from .types import InvalidRequestError, Resolution
from .utils import format_outpoint, outpoint_key


def check_resolution(resolution: Resolution) -> None:
    """Check that no outpoint is spent twice and that supply
    of every demanded asset covers its demand"""

    seen: Set[Tuple[str, int]] = set()
    for inp in resolution.inputs:
        key = outpoint_key(inp.outpoint)
        if key in seen:
            raise InvalidRequestError(
                f"outpoint {format_outpoint(inp.outpoint)} "
                f"is spent more than once"
            )
        seen.add(key)

    for asset, demanded in sorted(resolution.demand.items(),
                                  key=lambda item: item[0].data):
        supply = resolution.supply.get(asset, 0)
        if supply < demanded:
            raise InvalidRequestError(
                f"supply of asset {asset.to_hex()} ({supply}) "
                f"does not cover demand ({demanded})"
            )
