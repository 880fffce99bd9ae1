# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import Optional, Type

from bitcointx.core import Uint256
from elementstx.core import (
    CAsset,
    CElementsOutPoint,
    calculate_asset,
    calculate_reissuance_token,
    generate_asset_entropy,
)

from .types import (
    IssuanceDerivedAsset,
    InputIssuance,
    InvalidRequestError,
    NewIssuanceToken,
)


def issuance_entropy(
    outpoint: CElementsOutPoint, issuance: InputIssuance
) -> Uint256:
    """Entropy of the issuance attached to the input spending outpoint.
    For a new issuance the descriptor holds the contract hash,
    for a reissuance it holds the asset entropy itself"""

    if issuance.is_new:
        return generate_asset_entropy(outpoint, Uint256(issuance.entropy))

    return Uint256(issuance.entropy)


def issuance_asset(
    outpoint: CElementsOutPoint, issuance: InputIssuance
) -> CAsset:
    return calculate_asset(issuance_entropy(outpoint, issuance))


def issuance_token(
    outpoint: CElementsOutPoint, issuance: InputIssuance,
    is_confidential: bool
) -> CAsset:
    return calculate_reissuance_token(
        issuance_entropy(outpoint, issuance), is_confidential
    )


def demand_asset_from_deferred(
    variant_cls: Type[IssuanceDerivedAsset],
    issuance: Optional[InputIssuance],
    outpoint: CElementsOutPoint,
    is_confidential: bool,
    input_index: int,
    input_id: str,
) -> CAsset:
    """Concrete asset of a deferred output demand, known only
    after the referenced input is resolved"""

    if issuance is None:
        raise InvalidRequestError(
            f"output asset references input {input_index} "
            f"but input '{input_id}' has no issuance metadata"
        )

    if issuance.kind != variant_cls.required_kind:
        raise InvalidRequestError(
            f"output asset {variant_cls.label} references input "
            f"{input_index} ('{input_id}') with {issuance.kind} issuance, "
            f"expected {variant_cls.required_kind} issuance"
        )

    if issubclass(variant_cls, NewIssuanceToken):
        return issuance_token(outpoint, issuance, is_confidential)

    return issuance_asset(outpoint, issuance)
