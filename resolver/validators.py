# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

import abc

from elementstx.core import CAsset

from .constants import MAX_AMOUNT, MAX_BNB_NODES, MIN_BNB_NODES


class ValidationResult(abc.ABC):
    ...


class ValidationFailure(ValidationResult):
    def __init__(self, error: str) -> None:
        self.error = error


class ValidationSuccess(ValidationResult):
    ...


VALID = ValidationSuccess()


def validate_max_bnb_nodes(
    max_nodes: int,
) -> ValidationResult:
    if max_nodes < MIN_BNB_NODES:
        return ValidationFailure(
            f"max-bnb-nodes value must be at least {MIN_BNB_NODES}"
        )
    if max_nodes > MAX_BNB_NODES:
        return ValidationFailure(
            f"max-bnb-nodes value must not exceed {MAX_BNB_NODES}"
        )
    return VALID


def validate_fee_amount(
    fee_amount: int,
) -> ValidationResult:
    if fee_amount < 0:
        return ValidationFailure("fee value must not be negative")
    if fee_amount > MAX_AMOUNT:
        return ValidationFailure(f"fee value must not exceed {MAX_AMOUNT}")
    return VALID


def validate_policy_asset(
    asset: CAsset,
) -> ValidationResult:
    if asset.is_null():
        return ValidationFailure("policy asset must not be null")
    return VALID
