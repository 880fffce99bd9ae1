# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import Any, Dict

import pytest
from bitcointx.core import Uint256
from bitcointx.core.key import CKey
from elementstx.core import BlindingInputDescriptor, UnblindingSuccess

from resolver import check_resolution
from resolver.constants import INPUT_ORIGIN_AUXILIARY, INPUT_ORIGIN_DECLARED
from resolver.issuance import issuance_asset, issuance_token
from resolver.resolution import InputResolver
from resolver.types import (
    DataLookupError,
    FundingError,
    InvalidRequestError,
    LedgerRecord,
    ResolutionRequest,
)
from resolver.utils import format_outpoint

from . import (
    ASSET_X,
    ASSET_Y,
    POLICY_ASSET,
    FakeWallet,
    make_coin,
    make_outpoint,
)

CONTRACT_HASH_HEX = '42' * 32


def explicit_out(output_id: str, amount: int, asset: Any) -> Dict[str, Any]:
    return {"id": output_id, "amount": amount,
            "asset": {"asset_id": asset.to_hex()}}


def provided_inp(input_id: str, n: int, blinder: Any = "explicit",
                 **kwargs: Any) -> Dict[str, Any]:
    return dict(id=input_id,
                utxo_source={"provided": format_outpoint(make_outpoint(n))},
                blinder=blinder, **kwargs)


def confidential_record(mocker):  # type: ignore
    record = LedgerRecord(txout=mocker.MagicMock(), rangeproof=b'proof')
    record.txout.nAsset.is_explicit.return_value = False
    record.txout.nAsset.is_commitment.return_value = True
    record.txout.nValue.is_explicit.return_value = False
    return record


def test_resolve_auxiliary_only(
    input_resolver: InputResolver, wallet: FakeWallet
) -> None:
    request = ResolutionRequest(
        fee_amount=100, outputs=[explicit_out("pay", 8, ASSET_X)]
    )
    resolution = input_resolver.resolve(request)

    assert all(inp.origin == INPUT_ORIGIN_AUXILIARY
               for inp in resolution.inputs)
    # the policy asset has the largest deficit and is funded first
    assert [(inp.outpoint.hash[0], inp.amount)
            for inp in resolution.inputs] == [(10, 1000), (1, 5), (3, 3)]
    assert resolution.demand == {ASSET_X: 8, POLICY_ASSET: 100}
    assert resolution.supply == {ASSET_X: 8, POLICY_ASSET: 1000}
    assert resolution.surplus_by_asset == {POLICY_ASSET: 900}
    assert len(wallet.fetched) == 3


def test_resolve_declared_then_auxiliary(
    input_resolver: InputResolver
) -> None:
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[provided_inp("mine", 2)],
        outputs=[explicit_out("pay", 8, ASSET_X)],
    )
    resolution = input_resolver.resolve(request)

    declared, aux = resolution.inputs
    assert declared.origin == INPUT_ORIGIN_DECLARED
    assert declared.input_id == "mine"
    assert declared.amount == 4
    assert not declared.is_confidential
    assert aux.origin == INPUT_ORIGIN_AUXILIARY
    assert aux.amount == 5
    assert resolution.surplus_by_asset == {ASSET_X: 1}


def test_resolve_declared_coin_not_reused(
    input_resolver: InputResolver
) -> None:
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[provided_inp("mine", 1)],
        outputs=[explicit_out("pay", 9, ASSET_X)],
    )
    resolution = input_resolver.resolve(request)
    assert [inp.outpoint.hash[0] for inp in resolution.inputs] == [1, 2]
    assert resolution.supply[ASSET_X] == 9


def test_resolve_duplicate_declared_outpoint(
    input_resolver: InputResolver
) -> None:
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[provided_inp("a", 1), provided_inp("b", 1)],
    )
    with pytest.raises(InvalidRequestError, match="used more than once"):
        input_resolver.resolve(request)


def test_resolve_deferred_reference_without_issuance(
    input_resolver: InputResolver
) -> None:
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[provided_inp("a", 1), provided_inp("b", 2),
                provided_inp("c", 3)],
        outputs=[{"id": "issued", "amount": 10,
                  "asset": {"new_issuance_asset": 2}}],
    )
    with pytest.raises(
        InvalidRequestError,
        match="references input 2 but input 'c' has no issuance metadata"
    ):
        input_resolver.resolve(request)


def test_resolve_two_fee_outputs(
    input_resolver: InputResolver, wallet: FakeWallet, mocker
) -> None:  # type: ignore
    list_coins = mocker.spy(wallet, "list_coins")
    request = ResolutionRequest(
        fee_amount=10,
        inputs=[provided_inp("a", 1)],
        outputs=[explicit_out("fee", 10, POLICY_ASSET),
                 explicit_out("fee", 10, POLICY_ASSET)],
    )
    with pytest.raises(InvalidRequestError):
        input_resolver.resolve(request)

    assert list_coins.call_count == 0
    assert wallet.fetched == []


def test_resolve_new_issuance(input_resolver: InputResolver) -> None:
    issuance = {"kind": "new", "asset_amount": 500, "token_amount": 2,
                "entropy": CONTRACT_HASH_HEX}
    request = ResolutionRequest(
        fee_amount=100,
        inputs=[provided_inp("issuer", 10, issuance=issuance)],
        outputs=[
            {"id": "issued", "amount": 500,
             "asset": {"new_issuance_asset": 0}},
            {"id": "token", "amount": 2,
             "asset": {"new_issuance_token": 0}},
            explicit_out("fee", 100, POLICY_ASSET),
        ],
    )
    resolution = input_resolver.resolve(request)

    (inp,) = resolution.inputs
    assert inp.issuance is not None
    issued = issuance_asset(inp.outpoint, inp.issuance)
    token = issuance_token(inp.outpoint, inp.issuance, False)

    assert resolution.demand == {POLICY_ASSET: 100, issued: 500, token: 2}
    assert resolution.supply == {POLICY_ASSET: 1000, issued: 500, token: 2}
    assert resolution.surplus_by_asset == {POLICY_ASSET: 900}


def test_resolve_reissuance() -> None:
    token_coin = make_coin(ASSET_Y, 1, 20)
    wallet = FakeWallet([token_coin, make_coin(POLICY_ASSET, 50, 21)])
    input_resolver = InputResolver(wallet, POLICY_ASSET)

    issuance = {"kind": "reissue", "asset_amount": 70,
                "entropy": CONTRACT_HASH_HEX}
    request = ResolutionRequest(
        fee_amount=20,
        inputs=[provided_inp("token", 20, issuance=issuance)],
        outputs=[
            {"id": "more", "amount": 70, "asset": {"re_issuance_asset": 0}},
            explicit_out("token-back", 1, ASSET_Y),
        ],
    )
    resolution = input_resolver.resolve(request)

    reissued = issuance_asset(token_coin.outpoint,
                              resolution.inputs[0].issuance)
    assert resolution.demand[reissued] == 70
    assert resolution.supply[reissued] == 70
    assert resolution.supply[ASSET_Y] == 1
    assert [inp.origin for inp in resolution.inputs] == [
        INPUT_ORIGIN_DECLARED, INPUT_ORIGIN_AUXILIARY
    ]


def test_resolve_issuance_kind_mismatch(
    input_resolver: InputResolver
) -> None:
    issuance = {"kind": "new", "asset_amount": 5,
                "entropy": CONTRACT_HASH_HEX}
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[provided_inp("issuer", 10, issuance=issuance)],
        outputs=[{"id": "x", "amount": 5,
                  "asset": {"re_issuance_asset": 0}}],
    )
    with pytest.raises(InvalidRequestError, match="expected reissue"):
        input_resolver.resolve(request)


def test_resolve_wallet_filtered_input(
    input_resolver: InputResolver
) -> None:
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[{
            "id": "filtered",
            "utxo_source": {"wallet": {"filter": {
                "asset": ASSET_X.to_hex(), "amount": {"min": 4}
            }}},
        }],
        outputs=[explicit_out("pay", 4, ASSET_X)],
    )
    resolution = input_resolver.resolve(request)

    (inp,) = resolution.inputs
    assert inp.origin == INPUT_ORIGIN_DECLARED
    assert inp.coin is not None
    assert inp.amount == 4
    assert inp.outpoint == make_outpoint(2)


def test_resolve_wallet_filter_no_match(
    input_resolver: InputResolver
) -> None:
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[{
            "id": "filtered",
            "utxo_source": {"wallet": {"filter": {"amount": {"exact": 7}}}},
        }],
    )
    with pytest.raises(FundingError, match="'filtered'"):
        input_resolver.resolve(request)


def test_resolve_no_coins_of_asset(input_resolver: InputResolver) -> None:
    request = ResolutionRequest(
        fee_amount=0, outputs=[explicit_out("pay", 5, ASSET_Y)]
    )
    with pytest.raises(FundingError, match="no wallet coins of asset"):
        input_resolver.resolve(request)


def test_resolve_insufficient_funds(input_resolver: InputResolver) -> None:
    request = ResolutionRequest(
        fee_amount=0, outputs=[explicit_out("pay", 13, ASSET_X)]
    )
    with pytest.raises(FundingError, match="cannot fund asset"):
        input_resolver.resolve(request)


def test_resolve_unknown_outpoint(input_resolver: InputResolver) -> None:
    request = ResolutionRequest(
        fee_amount=0, inputs=[provided_inp("lost", 99)]
    )
    with pytest.raises(DataLookupError):
        input_resolver.resolve(request)


def test_resolve_explicit_blinder_on_confidential(mocker) -> None:  # type: ignore
    wallet = FakeWallet(records={make_outpoint(30): confidential_record(mocker)})
    request = ResolutionRequest(
        fee_amount=0, inputs=[provided_inp("conf", 30, blinder="explicit")]
    )
    with pytest.raises(InvalidRequestError, match="is confidential"):
        InputResolver(wallet, POLICY_ASSET).resolve(request)


def test_resolve_provided_blinder_failure(mocker) -> None:  # type: ignore
    record = confidential_record(mocker)
    record.txout.unblind_confidential_pair.return_value = mocker.MagicMock(
        error="rangeproof is invalid"
    )
    wallet = FakeWallet(records={make_outpoint(30): record})
    key = CKey.from_secret_bytes(b'\x01' * 32)
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[provided_inp("conf", 30, blinder={"provided": key})],
    )
    with pytest.raises(InvalidRequestError,
                       match="cannot unblind .*rangeproof is invalid"):
        InputResolver(wallet, POLICY_ASSET).resolve(request)


def test_resolve_wallet_blinder_on_confidential(mocker) -> None:  # type: ignore
    key = CKey.from_secret_bytes(b'\x01' * 32)
    descriptor = BlindingInputDescriptor(
        asset=ASSET_X,
        amount=7,
        blinding_factor=Uint256(b'\x03' * 32),
        asset_blinding_factor=Uint256(b'\x04' * 32),
    )
    unblinded = mocker.MagicMock(spec=UnblindingSuccess)
    unblinded.error = None
    unblinded.get_descriptor.return_value = descriptor

    record = confidential_record(mocker)
    record.txout.unblind_confidential_pair.return_value = unblinded

    wallet = FakeWallet(records={make_outpoint(30): record}, blinding_key=key)
    request = ResolutionRequest(
        fee_amount=0,
        inputs=[provided_inp("conf", 30, blinder="wallet")],
        outputs=[explicit_out("pay", 7, ASSET_X)],
    )
    resolution = InputResolver(wallet, POLICY_ASSET).resolve(request)

    record.txout.unblind_confidential_pair.assert_called_once_with(
        key, b'proof'
    )
    (inp,) = resolution.inputs
    assert inp.is_confidential
    assert inp.secrets == descriptor
    assert resolution.supply == {ASSET_X: 7}


def test_resolve_is_deterministic(wallet: FakeWallet) -> None:
    request = ResolutionRequest(
        fee_amount=150,
        outputs=[explicit_out("a", 4, ASSET_X),
                 explicit_out("b", 3, ASSET_X)],
    )
    first = InputResolver(wallet, POLICY_ASSET).resolve(request)
    second = InputResolver(wallet, POLICY_ASSET).resolve(request)
    assert first.to_json_dict() == second.to_json_dict()


def test_check_resolution(input_resolver: InputResolver) -> None:
    request = ResolutionRequest(
        fee_amount=0, outputs=[explicit_out("pay", 8, ASSET_X)]
    )
    resolution = input_resolver.resolve(request)
    check_resolution(resolution)

    resolution.demand[ASSET_X] = 9
    with pytest.raises(InvalidRequestError, match="does not cover demand"):
        check_resolution(resolution)

    resolution.demand[ASSET_X] = 8
    resolution.inputs.append(resolution.inputs[0])
    with pytest.raises(InvalidRequestError, match="more than once"):
        check_resolution(resolution)


def test_resolution_report(input_resolver: InputResolver) -> None:
    request = ResolutionRequest(
        fee_amount=10, outputs=[explicit_out("pay", 8, ASSET_X)]
    )
    resolution = input_resolver.resolve(request)

    data = resolution.to_json_dict()
    assert data["policy_asset"] == POLICY_ASSET.to_hex()
    assert data["fee_amount"] == 10
    assert [i["amount"] for i in data["inputs"]] == [1000, 5, 3]
    assert data["surplus"] == {POLICY_ASSET.to_hex(): 990}

    text = resolution.pretty_format()
    assert "Resolved inputs" in text
    assert "(policy)" in text
