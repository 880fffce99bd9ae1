# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import List, Tuple

from bitcointx.core import Uint256
from elementstx.core import (
    BlindingInputDescriptor,
    CAssetIssuance,
    CConfidentialValue,
    CElementsMutableTransaction,
    CElementsTxIn,
)

from .types import InputIssuance, Resolution, ResolvedInput

# reissuance requires non-null asset blinding nonce
_ONE_NONCE = Uint256((1).to_bytes(32, 'little'))


def _issuance_value(amount: int) -> CConfidentialValue:
    if amount == 0:
        return CConfidentialValue()
    return CConfidentialValue(amount)


def build_asset_issuance(
    inp: ResolvedInput, issuance: InputIssuance
) -> CAssetIssuance:
    if issuance.is_new:
        return CAssetIssuance(
            assetEntropy=Uint256(issuance.entropy),
            nAmount=_issuance_value(issuance.asset_amount),
            nInflationKeys=_issuance_value(issuance.token_amount),
        )

    # the nonce of a reissuance is the blinding factor
    # of the reissuance token being spent
    nonce = inp.secrets.asset_blinding_factor
    if nonce.is_null():
        nonce = _ONE_NONCE

    return CAssetIssuance(
        assetBlindingNonce=nonce,
        assetEntropy=Uint256(issuance.entropy),
        nAmount=_issuance_value(issuance.asset_amount),
    )


def build_unsigned_transaction(
    resolution: Resolution,
) -> Tuple[CElementsMutableTransaction, List[BlindingInputDescriptor]]:
    """Make the transaction that spends the resolved inputs in order,
    and the input descriptors for the later blinding of its outputs.
    Outputs are left for the caller to add"""

    vin = []
    descriptors = []

    for inp in resolution.inputs:
        if inp.issuance is None:
            vin.append(CElementsTxIn(inp.outpoint, nSequence=inp.sequence))
        else:
            vin.append(
                CElementsTxIn(
                    inp.outpoint,
                    nSequence=inp.sequence,
                    assetIssuance=build_asset_issuance(inp, inp.issuance),
                )
            )
        descriptors.append(inp.secrets)

    return CElementsMutableTransaction(vin=vin, vout=[]), descriptors
