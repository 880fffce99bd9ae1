# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import Tuple

from bitcointx.core import COutPoint, b2lx, Uint256
from bitcointx.core.key import CKey
from elementstx.core import (
    BlindingInputDescriptor,
    UnblindingSuccess,
)

import resolver.types


def outpoint_key(outpoint: COutPoint) -> Tuple[str, int]:
    """Ordering key for outpoints: txid as displayed, then output index"""
    return b2lx(outpoint.hash), outpoint.n


def format_outpoint(outpoint: COutPoint) -> str:
    return f"{b2lx(outpoint.hash)}:{outpoint.n}"


def explicit_secrets(
    record: 'resolver.types.LedgerRecord'
) -> BlindingInputDescriptor:
    """Return the descriptor of an unblinded output,
    with zero blinding factors"""
    assert record.is_explicit
    return BlindingInputDescriptor(
        asset=record.txout.nAsset.to_asset(),
        amount=record.txout.nValue.to_amount(),
        blinding_factor=Uint256(),
        asset_blinding_factor=Uint256(),
    )


def unblind_record(
    record: 'resolver.types.LedgerRecord',
    blinding_key: CKey,
    descr: str,
) -> BlindingInputDescriptor:
    """Unblind the confidential output with the key,
    raise InvalidRequestError on failure"""

    unblind_result = record.txout.unblind_confidential_pair(
        blinding_key, record.rangeproof
    )

    if unblind_result.error:
        raise resolver.types.InvalidRequestError(
            f"cannot unblind {descr}: {unblind_result.error}"
        )

    assert isinstance(unblind_result, UnblindingSuccess)

    return unblind_result.get_descriptor()
