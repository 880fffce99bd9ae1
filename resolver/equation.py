# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import Dict, List, Optional, Sequence, Set, Tuple, Type

from attr import attrib, attrs
from elementstx.core import CAsset, CElementsOutPoint
from loguru import logger

from .constants import FEE_OUTPUT_ID, MAX_AMOUNT
from .types import (
    ExplicitAsset,
    IssuanceDerivedAsset,
    InvalidRequestError,
    RequestedOutput,
)
from .utils import format_outpoint, outpoint_key


@attrs(auto_attribs=True, frozen=True)
class DeferredDemand:
    """Demand on an asset that is derived from the issuance
    of the declared input it is filed against"""

    variant_cls: Type[IssuanceDerivedAsset]
    amount: int
    output_id: str


def _add_amount(
    amount_map: Dict[CAsset, int], asset: CAsset, amount: int, what: str
) -> None:
    total = amount_map.get(asset, 0) + amount
    if total > MAX_AMOUNT:
        raise InvalidRequestError(
            f"{what} overflow for asset {asset.to_hex()}"
        )
    amount_map[asset] = total


@attrs(auto_attribs=True)
class EquationState:
    """Demand and supply of every asset of the transaction being built,
    with the outpoints consumed so far"""

    demand: Dict[CAsset, int] = attrib(factory=dict)
    supply: Dict[CAsset, int] = attrib(factory=dict)
    used_outpoints: Set[Tuple[str, int]] = attrib(factory=set)
    deferred: Dict[int, List[DeferredDemand]] = attrib(factory=dict)

    def add_demand(self, asset: CAsset, amount: int) -> None:
        _add_amount(self.demand, asset, amount, "demand")
        logger.debug(
            f"demand {asset.to_hex()} += {amount} "
            f"-> {self.demand[asset]}"
        )

    def add_supply(self, asset: CAsset, amount: int) -> None:
        _add_amount(self.supply, asset, amount, "supply")
        logger.debug(
            f"supply {asset.to_hex()} += {amount} "
            f"-> {self.supply[asset]}"
        )

    def defer(self, input_index: int, entry: DeferredDemand) -> None:
        self.deferred.setdefault(input_index, []).append(entry)
        logger.debug(
            f"output '{entry.output_id}' demand of {entry.amount} deferred "
            f"until input {input_index} is resolved"
        )

    def take_deferred(self, input_index: int) -> List[DeferredDemand]:
        return self.deferred.pop(input_index, [])

    def is_used(self, outpoint: CElementsOutPoint) -> bool:
        return outpoint_key(outpoint) in self.used_outpoints

    def reserve_outpoint(self, outpoint: CElementsOutPoint) -> None:
        key = outpoint_key(outpoint)
        if key in self.used_outpoints:
            raise InvalidRequestError(
                f"outpoint {format_outpoint(outpoint)} is used more than once"
            )
        self.used_outpoints.add(key)

    def deficit(self, asset: CAsset) -> int:
        return max(0, self.demand.get(asset, 0) - self.supply.get(asset, 0))

    def current_deficits(self) -> Dict[CAsset, int]:
        deficits = {}
        for asset in self.demand:
            value = self.deficit(asset)
            if value > 0:
                deficits[asset] = value
        return deficits

    def total_deficit(self) -> int:
        return sum(self.current_deficits().values())

    def pick_largest_deficit(self) -> Optional[Tuple[CAsset, int]]:
        """Return the asset with the largest deficit, the one with
        the smaller asset id when deficits are equal"""

        deficits = self.current_deficits()
        if not deficits:
            return None

        asset = min(deficits, key=lambda a: (-deficits[a], a.data))
        return asset, deficits[asset]


def build_demand(
    outputs: Sequence[RequestedOutput],
    fee_amount: int,
    policy_asset: CAsset,
    input_count: int,
) -> EquationState:
    """Fill the demand side of the equation from the requested outputs.

    Outputs with explicit asset are added to demand right away,
    outputs with issuance-derived asset are deferred until the referenced
    declared input is resolved. The output named "fee" is only checked,
    the fee demand is always fee_amount on the policy asset.
    """

    state = EquationState()
    fee_output_seen = False

    for output in outputs:
        if output.id == FEE_OUTPUT_ID:
            if fee_output_seen:
                raise InvalidRequestError(
                    f"more than one '{FEE_OUTPUT_ID}' output"
                )
            fee_output_seen = True

            if (
                not isinstance(output.asset, ExplicitAsset)
                or output.asset.asset != policy_asset
            ):
                raise InvalidRequestError(
                    f"'{FEE_OUTPUT_ID}' output must be in policy asset "
                    f"{policy_asset.to_hex()}"
                )
            continue

        if isinstance(output.asset, ExplicitAsset):
            state.add_demand(output.asset.asset, output.amount)
            continue

        assert isinstance(output.asset, IssuanceDerivedAsset)

        input_index = output.asset.input_index
        if not 0 <= input_index < input_count:
            raise InvalidRequestError(
                f"output '{output.id}' references input {input_index}, "
                f"but there are only {input_count} inputs"
            )

        state.defer(
            input_index,
            DeferredDemand(variant_cls=type(output.asset),
                           amount=output.amount,
                           output_id=output.id)
        )

    state.add_demand(policy_asset, fee_amount)

    return state
