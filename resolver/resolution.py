# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import List, Optional, Sequence

from elementstx.core import BlindingInputDescriptor, CAsset
from loguru import logger

from . import check_resolution
from .constants import (
    DEFAULT_MAX_BNB_NODES,
    INPUT_ORIGIN_AUXILIARY,
    INPUT_ORIGIN_DECLARED,
)
from .equation import EquationState, build_demand
from .issuance import (
    demand_asset_from_deferred,
    issuance_asset,
    issuance_token,
)
from .ranking import canonical_order, select_best_candidate
from .selection import select_coins_for_deficit
from .types import (
    DeclaredInput,
    ExplicitBlinder,
    FundingError,
    InputBlinder,
    InvalidRequestError,
    LedgerRecord,
    ProvidedBlinder,
    ProvidedSource,
    Resolution,
    ResolutionRequest,
    ResolvedInput,
    WalletBackend,
    WalletBlinder,
    WalletCoin,
    WalletSource,
)
from .utils import explicit_secrets, format_outpoint, unblind_record

AUXILIARY_INPUT_ID = "auxiliary"


class InputResolver:
    """Finds the inputs that balance the requested outputs.

    Declared inputs are resolved first, in the order given, then wallet
    coins are added while any demanded asset has a deficit. The wallet
    coin snapshot is taken once per resolve() call.
    """

    def __init__(
        self,
        wallet: WalletBackend,
        policy_asset: CAsset,
        max_bnb_nodes: int = DEFAULT_MAX_BNB_NODES,
    ) -> None:
        self.wallet = wallet
        self.policy_asset = policy_asset
        self.max_bnb_nodes = max_bnb_nodes

    def resolve(self, request: ResolutionRequest) -> Resolution:
        state = build_demand(request.outputs, request.fee_amount,
                             self.policy_asset, len(request.inputs))

        coins = self.wallet.list_coins()
        logger.debug(f"wallet snapshot has {len(coins)} coins")

        inputs: List[ResolvedInput] = []

        for index, declared in enumerate(request.inputs):
            inputs.append(
                self._resolve_declared(state, coins, index, declared)
            )

        if state.deferred:
            raise InvalidRequestError(
                "unresolved deferred output demands remain "
                "after input resolution"
            )

        inputs.extend(self._fund_deficits(state, coins))

        resolution = Resolution(
            policy_asset=self.policy_asset,
            fee_amount=request.fee_amount,
            inputs=inputs,
            demand=dict(state.demand),
            supply=dict(state.supply),
        )

        check_resolution(resolution)

        return resolution

    def _unblind(
        self,
        record: LedgerRecord,
        blinder: InputBlinder,
        coin: Optional[WalletCoin],
        descr: str,
    ) -> BlindingInputDescriptor:
        if isinstance(blinder, ExplicitBlinder):
            if not record.is_explicit:
                raise InvalidRequestError(
                    f"{descr} is declared explicit, but it is confidential"
                )
            return explicit_secrets(record)

        if record.is_explicit:
            return explicit_secrets(record)

        if isinstance(blinder, ProvidedBlinder):
            return unblind_record(record, blinder.blinding_key, descr)

        assert isinstance(blinder, WalletBlinder)

        if coin is not None:
            return coin.get_descriptor()

        blinding_key = self.wallet.blinding_key_for_script(
            record.txout.scriptPubKey
        )
        return unblind_record(record, blinding_key, descr)

    def _resolve_declared(
        self,
        state: EquationState,
        coins: Sequence[WalletCoin],
        index: int,
        declared: DeclaredInput,
    ) -> ResolvedInput:
        coin: Optional[WalletCoin] = None
        source = declared.utxo_source

        if isinstance(source, ProvidedSource):
            outpoint = source.outpoint
        else:
            assert isinstance(source, WalletSource)
            coin = select_best_candidate(state, coins, source.filter)
            if coin is None:
                raise FundingError(
                    f"no wallet coin matches the filter "
                    f"of input '{declared.id}'"
                )
            outpoint = coin.outpoint

        state.reserve_outpoint(outpoint)

        descr = f"input '{declared.id}' ({format_outpoint(outpoint)})"

        record = self.wallet.fetch_record(outpoint)
        secrets = self._unblind(record, declared.blinder, coin, descr)
        is_confidential = not record.is_explicit

        resolved = ResolvedInput(
            origin=INPUT_ORIGIN_DECLARED,
            input_id=declared.id,
            outpoint=outpoint,
            record=record,
            secrets=secrets,
            is_confidential=is_confidential,
            sequence=declared.sequence,
            coin=coin,
            issuance=declared.issuance,
        )

        state.add_supply(resolved.asset, resolved.amount)

        issuance = declared.issuance
        if issuance is not None:
            state.add_supply(issuance_asset(outpoint, issuance),
                             issuance.asset_amount)
            if issuance.token_amount:
                state.add_supply(
                    issuance_token(outpoint, issuance, is_confidential),
                    issuance.token_amount
                )

        for entry in state.take_deferred(index):
            asset = demand_asset_from_deferred(
                entry.variant_cls, issuance, outpoint, is_confidential,
                index, declared.id
            )
            logger.debug(
                f"output '{entry.output_id}' resolved to asset "
                f"{asset.to_hex()} by {descr}"
            )
            state.add_demand(asset, entry.amount)

        return resolved

    def _fund_deficits(
        self, state: EquationState, coins: Sequence[WalletCoin]
    ) -> List[ResolvedInput]:
        added: List[ResolvedInput] = []

        while True:
            picked = state.pick_largest_deficit()
            if picked is None:
                break

            asset, deficit = picked

            candidates = canonical_order(
                c for c in coins
                if c.asset == asset and not state.is_used(c.outpoint)
            )
            if not candidates:
                raise FundingError(
                    f"no wallet coins of asset {asset.to_hex()} "
                    f"to cover the deficit of {deficit}"
                )

            try:
                strategy, selected = select_coins_for_deficit(
                    candidates, deficit, self.max_bnb_nodes
                )
            except FundingError as e:
                raise FundingError(
                    f"cannot fund asset {asset.to_hex()}: {e.message}"
                ) from e

            logger.info(
                f"deficit of {deficit} on asset {asset.to_hex()} covered "
                f"with {len(selected)} coins by '{strategy}' strategy"
            )

            for coin in selected:
                state.reserve_outpoint(coin.outpoint)
                record = self.wallet.fetch_record(coin.outpoint)
                added.append(
                    ResolvedInput(
                        origin=INPUT_ORIGIN_AUXILIARY,
                        input_id=AUXILIARY_INPUT_ID,
                        outpoint=coin.outpoint,
                        record=record,
                        secrets=coin.get_descriptor(),
                        is_confidential=not record.is_explicit,
                        coin=coin,
                    )
                )
                state.add_supply(coin.asset, coin.amount)
                logger.info(
                    f"auxiliary input {format_outpoint(coin.outpoint)} "
                    f"adds {coin.amount} of {asset.to_hex()}"
                )

            if state.deficit(asset) >= deficit:
                raise FundingError(
                    f"selected coins did not reduce the deficit "
                    f"on asset {asset.to_hex()}"
                )

        return added
