# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from typing import Dict, Iterable, List, Optional, Tuple

import elementstx  # noqa: F401
from bitcointx.core.key import CKey
from bitcointx.core.script import CScript
from elementstx.core import (
    CAsset,
    CConfidentialAsset,
    CConfidentialValue,
    CElementsOutPoint,
    CElementsTxOut,
)
from elementstx.core.script import CElementsScript

from resolver.types import (
    DataLookupError,
    LedgerRecord,
    WalletBackend,
    WalletCoin,
)
from resolver.utils import format_outpoint, outpoint_key

POLICY_ASSET = CAsset(b'\x01' * 32)
ASSET_X = CAsset(b'\x0a' * 32)
ASSET_Y = CAsset(b'\x0b' * 32)

DUMMY_SCRIPT = CElementsScript(b'\x00\x14' + b'\x55' * 20)


def make_outpoint(n: int, vout: int = 0) -> CElementsOutPoint:
    return CElementsOutPoint(bytes([n]) * 32, vout)


def make_coin(
    asset: CAsset, amount: int, n: int, vout: int = 0,
    script_pubkey: CScript = DUMMY_SCRIPT,
) -> WalletCoin:
    return WalletCoin(
        outpoint=make_outpoint(n, vout),
        asset=asset,
        amount=amount,
        script_pubkey=script_pubkey,
        address=f"addr{n}",
    )


def make_coins(asset: CAsset, amounts: Iterable[int],
               first_n: int = 1) -> List[WalletCoin]:
    return [make_coin(asset, amount, first_n + i)
            for i, amount in enumerate(amounts)]


def explicit_record(asset: CAsset, amount: int,
                    script_pubkey: CScript = DUMMY_SCRIPT) -> LedgerRecord:
    return LedgerRecord(
        txout=CElementsTxOut(
            nValue=CConfidentialValue(amount),
            nAsset=CConfidentialAsset(asset),
            scriptPubKey=script_pubkey,
        )
    )


def amounts_of(coins: Iterable[WalletCoin]) -> List[int]:
    return [c.amount for c in coins]


class FakeWallet(WalletBackend):
    """In-memory wallet, every coin has an explicit ledger record"""

    def __init__(
        self,
        coins: Iterable[WalletCoin] = (),
        records: Optional[Dict[CElementsOutPoint, LedgerRecord]] = None,
        blinding_key: Optional[CKey] = None,
    ) -> None:
        self.coins = list(coins)
        self.records: Dict[Tuple[str, int], LedgerRecord] = {
            outpoint_key(c.outpoint): explicit_record(c.asset, c.amount,
                                                      c.script_pubkey)
            for c in self.coins
        }
        for outpoint, record in (records or {}).items():
            self.records[outpoint_key(outpoint)] = record
        self.blinding_key = blinding_key
        self.fetched: List[CElementsOutPoint] = []

    def list_coins(self) -> List[WalletCoin]:
        return list(self.coins)

    def fetch_record(self, outpoint: CElementsOutPoint) -> LedgerRecord:
        record = self.records.get(outpoint_key(outpoint))
        if record is None:
            raise DataLookupError(
                f"no record for {format_outpoint(outpoint)}"
            )
        self.fetched.append(outpoint)
        return record

    def blinding_key_for_script(self, script: CScript) -> CKey:
        if self.blinding_key is None:
            raise DataLookupError("no blinding key for the script")
        return self.blinding_key
