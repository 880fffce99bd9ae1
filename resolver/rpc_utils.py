# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

from decimal import Decimal
from typing import Any, Dict, List

from bitcointx.core import b2lx, lx, x, Uint256
from bitcointx.core.key import CKey
from bitcointx.core.script import CScript
from bitcointx.rpc import JSONRPCError
from bitcointx.wallet import CCoinAddress, CCoinAddressError
from elementstx.core import CAsset, CElementsOutPoint, CElementsTransaction
from loguru import logger

from .constants import SNAPSHOT_MAX_CONF, SNAPSHOT_MIN_CONF
from .types import (
    Amount,
    DataLookupError,
    ElementsRPCCaller,
    LedgerRecord,
    WalletBackend,
    WalletCoin,
)


def parse_utxo_dict(utxo: Dict[str, Any]) -> WalletCoin:
    assert isinstance(utxo['txid'], str)
    assert isinstance(utxo['asset'], str)
    assert isinstance(utxo['vout'], int)
    assert isinstance(utxo['amount'], Decimal)
    return WalletCoin(
        outpoint=CElementsOutPoint(lx(utxo["txid"]), utxo["vout"]),
        asset=CAsset(lx(utxo["asset"])),
        amount=Amount(utxo["amount"]),
        script_pubkey=CScript(x(utxo.get("scriptPubKey", ""))),
        address=utxo.get("address"),
        descriptor=utxo.get("desc"),
        amount_blinder=Uint256(lx(utxo.get("amountblinder", "00" * 32))),
        asset_blinder=Uint256(lx(utxo.get("assetblinder", "00" * 32))),
    )


class RPCWalletBackend(WalletBackend):
    """Wallet of the elements daemon, accessed via JSON-RPC"""

    def __init__(self, rpc: ElementsRPCCaller) -> None:
        self.rpc = rpc

    def list_coins(self) -> List[WalletCoin]:
        try:
            utxo_list = self.rpc.listunspent(SNAPSHOT_MIN_CONF,
                                             SNAPSHOT_MAX_CONF)
        except JSONRPCError as e:
            raise DataLookupError(
                f"cannot list wallet coins: {e.error.get('message')}"
            ) from e

        coins = []
        for utxo in utxo_list:
            if not utxo.get("spendable", True):
                continue
            if "asset" not in utxo:
                # the wallet could not unblind this output
                logger.warning(
                    f"skipping utxo {utxo['txid']}:{utxo['vout']} "
                    f"with unknown asset"
                )
                continue
            coins.append(parse_utxo_dict(utxo))

        return coins

    def fetch_record(self, outpoint: CElementsOutPoint) -> LedgerRecord:
        txid = b2lx(outpoint.hash)
        try:
            tx_hex = self.rpc.getrawtransaction(txid)
        except JSONRPCError as e:
            raise DataLookupError(
                f"cannot get transaction {txid}: {e.error.get('message')}"
            ) from e

        tx = CElementsTransaction.deserialize(x(tx_hex))
        if outpoint.n >= len(tx.vout):
            raise DataLookupError(
                f"transaction {txid} has no output {outpoint.n}"
            )

        rangeproof = b''
        if outpoint.n < len(tx.wit.vtxoutwit):
            rangeproof = tx.wit.vtxoutwit[outpoint.n].rangeproof

        return LedgerRecord(txout=tx.vout[outpoint.n], rangeproof=rangeproof)

    def blinding_key_for_script(self, script: CScript) -> CKey:
        """Return the blinding_key for this pubkey script"""
        try:
            addr = CCoinAddress.from_scriptPubKey(script)
        except CCoinAddressError as e:
            raise DataLookupError(
                f"no address for script {script.hex()}: {e}"
            ) from e

        try:
            address_info = self.rpc.getaddressinfo(str(addr))
        except JSONRPCError as e:
            raise DataLookupError(
                f"cannot get address info for {addr}: "
                f"{e.error.get('message')}"
            ) from e
        if "confidential" not in address_info:
            raise DataLookupError(
                f"wallet has no confidential address for {addr}"
            )
        try:
            blinding_key = self.rpc.dumpblindingkey(
                address_info["confidential"]
            )
        except JSONRPCError as e:
            raise DataLookupError(
                f"cannot get blinding key for {addr}: "
                f"{e.error.get('message')}"
            ) from e
        return CKey(x(blinding_key))


def get_bitcoin_asset(rpc: ElementsRPCCaller) -> CAsset:
    return CAsset(lx(rpc.dumpassetlabels()['bitcoin']))
