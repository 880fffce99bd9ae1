# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

import abc
import time
from decimal import Decimal
from io import StringIO
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlparse

import click
from attr import attrib, attrs, validators
from attr.validators import instance_of, optional
from bitcointx.core import (
    b2lx, coins_to_satoshi, lx, x, Uint256
)
from bitcointx.core.key import CKey
from bitcointx.core.script import CScript
from bitcointx.rpc import RPCCaller
from elementstx.core import (
    BlindingInputDescriptor,
    CAsset,
    CElementsOutPoint,
    CElementsTxOut,
)
from rich.console import Console
from rich.table import Table

from .constants import (
    DEFAULT_SEQUENCE,
    INPUT_ORIGIN_AUXILIARY,
    INPUT_ORIGIN_DECLARED,
    ISSUANCE_KIND_NEW,
    ISSUANCE_KIND_REISSUE,
    ISSUANCE_KINDS,
    MAX_AMOUNT,
)


class ElementsRPCCaller:
    def __init__(self, **kwargs: Any) -> None:
        self._coin_api = RPCCaller(**kwargs)
        self._last_use_time = time.time()

    def __getattr__(self, name: str) -> Callable[..., Any]:
        now = time.time()
        diff = now - self._last_use_time

        # the daemon drops idle keep-alive connections,
        # reconnect if the last call was more than 5 seconds ago
        if diff < 0 or diff > 5:
            self._coin_api.close()
            self._coin_api.connect()

        self._last_use_time = now

        return self._coin_api.__getattr__(name)


class Amount(int):
    """Amount type in satoshies"""

    def __new__(cls, value: Union[int, str, Decimal]) -> "Amount":
        def MakeAmount(value: Union[int, str]) -> Amount:
            value = super(Amount, cls).__new__(cls, value)
            if value < 0:
                raise ValueError("value must not be negative")
            if value > MAX_AMOUNT:
                raise ValueError(f"value must not exceed {MAX_AMOUNT}")
            return value

        if isinstance(value, bool):
            raise ValueError("bool is not an amount")
        if isinstance(value, (int, str)):
            return MakeAmount(value)
        elif isinstance(value, Decimal):
            return MakeAmount(coins_to_satoshi(value))
        raise ValueError(f"type {type(value)} of value not supported")


class ResolutionError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(ResolutionError):
    """The request is malformed or contradicts itself"""


class FundingError(ResolutionError):
    """The request is valid, but the wallet coins cannot fund it"""


class DataLookupError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def asset_cnv(value: Any) -> CAsset:
    """Asset converter"""

    if isinstance(value, CAsset):
        return value

    if isinstance(value, str):
        return CAsset(lx(value))

    raise TypeError('expected string value')


def optional_asset_cnv(value: Any) -> Optional[CAsset]:
    if value is None:
        return None
    return asset_cnv(value)


def optional_amount_cnv(value: Any) -> Optional[Amount]:
    if value is None:
        return None
    return Amount(value)


def outpoint_cnv(value: Any) -> CElementsOutPoint:
    """Outpoint converter, accepts {"txid": ..., "vout": ...}
    or "txid:vout" string"""

    if isinstance(value, CElementsOutPoint):
        return value

    if isinstance(value, str):
        txid, sep, vout = value.partition(':')
        if not sep:
            raise ValueError(f'expected "txid:vout", got {value!r}')
        return CElementsOutPoint(lx(txid), int(vout))

    if isinstance(value, dict):
        return CElementsOutPoint(lx(value['txid']), int(value['vout']))

    raise TypeError('expected dict or string value')


def script_cnv(value: Any) -> Optional[CScript]:
    if value is None or isinstance(value, CScript):
        return value

    if isinstance(value, str):
        return CScript(x(value))

    raise TypeError('expected hex string value')


def key_cnv(value: Any) -> CKey:
    if isinstance(value, CKey):
        return value

    if isinstance(value, str):
        return CKey(x(value))

    raise TypeError('expected hex string value')


def entropy_cnv(value: Any) -> bytes:
    if isinstance(value, Uint256):
        return value.data

    if isinstance(value, (bytes, bytearray)):
        return bytes(value)

    if isinstance(value, str):
        # displayed in the same byte order as txids
        return lx(value)

    raise TypeError('expected hex string value')


def _check_len_32(instance: Any, attribute: Any, value: bytes) -> None:
    if len(value) != 32:
        raise ValueError(f"{attribute.name} must be 32 bytes long")


@attrs(auto_attribs=True, frozen=True)
class WalletSourceFilter:
    """Restricts the wallet coins a declared input may be funded with"""

    asset: Optional[CAsset] = attrib(
        default=None, converter=optional_asset_cnv,
        validator=optional(instance_of(CAsset))
    )
    exact_amount: Optional[Amount] = attrib(
        default=None, converter=optional_amount_cnv
    )
    min_amount: Optional[Amount] = attrib(
        default=None, converter=optional_amount_cnv
    )
    lock_script: Optional[CScript] = attrib(
        default=None, converter=script_cnv,
    )

    def __attrs_post_init__(self) -> None:
        if self.exact_amount is not None and self.min_amount is not None:
            raise ValueError(
                "exact and minimum amount filters are mutually exclusive")

    def matches(self, coin: 'WalletCoin') -> bool:
        if self.asset is not None and coin.asset != self.asset:
            return False

        if self.exact_amount is not None and coin.amount != self.exact_amount:
            return False

        if self.min_amount is not None and coin.amount < self.min_amount:
            return False

        if (
            self.lock_script is not None
            and coin.script_pubkey != self.lock_script
        ):
            return False

        return True


def filter_cnv(value: Any) -> WalletSourceFilter:
    """Filter converter for the JSON shape
    {"asset": hex, "amount": {"exact"|"min": n}, "lock": script_hex}"""

    if isinstance(value, WalletSourceFilter):
        return value

    if value is None:
        return WalletSourceFilter()

    if isinstance(value, dict):
        amount = value.get('amount') or {}
        unknown = set(amount.keys()) - {'exact', 'min'}
        if unknown:
            raise ValueError(f'unknown amount filters: {sorted(unknown)}')
        return WalletSourceFilter(
            asset=value.get('asset'),
            exact_amount=amount.get('exact'),
            min_amount=amount.get('min'),
            lock_script=value.get('lock'),
        )

    raise TypeError('expected dict value')


class UTXOSource(abc.ABC):
    ...


@attrs(auto_attribs=True, frozen=True)
class ProvidedSource(UTXOSource):
    outpoint: CElementsOutPoint = attrib(
        converter=outpoint_cnv, validator=instance_of(CElementsOutPoint)
    )


@attrs(auto_attribs=True, frozen=True)
class WalletSource(UTXOSource):
    filter: WalletSourceFilter = attrib(
        factory=WalletSourceFilter, converter=filter_cnv
    )


def utxo_source_cnv(value: Any) -> UTXOSource:
    if isinstance(value, UTXOSource):
        return value

    if value is None:
        return WalletSource()

    if isinstance(value, dict) and len(value) == 1:
        if 'provided' in value:
            return ProvidedSource(value['provided'])
        if 'wallet' in value:
            return WalletSource((value['wallet'] or {}).get('filter'))

    raise ValueError(f'unrecognized utxo source: {value!r}')


class InputBlinder(abc.ABC):
    ...


@attrs(frozen=True)
class WalletBlinder(InputBlinder):
    """Unblind with the blinding key the wallet holds for the script"""


@attrs(frozen=True)
class ExplicitBlinder(InputBlinder):
    """The coin is expected to be unblinded on chain"""


@attrs(auto_attribs=True, frozen=True)
class ProvidedBlinder(InputBlinder):
    blinding_key: CKey = attrib(converter=key_cnv, validator=instance_of(CKey))


def blinder_cnv(value: Any) -> InputBlinder:
    if isinstance(value, InputBlinder):
        return value

    if value is None or value == 'wallet':
        return WalletBlinder()

    if value == 'explicit':
        return ExplicitBlinder()

    if isinstance(value, dict) and set(value.keys()) == {'provided'}:
        return ProvidedBlinder(value['provided'])

    raise ValueError(f'unrecognized input blinder: {value!r}')


@attrs(auto_attribs=True, frozen=True)
class InputIssuance:
    kind: str = attrib(validator=validators.in_(ISSUANCE_KINDS))
    asset_amount: Amount = attrib(converter=Amount)
    token_amount: Amount = attrib(converter=Amount)
    # contract hash for a new issuance, asset entropy for a reissuance
    entropy: bytes = attrib(converter=entropy_cnv, validator=_check_len_32)

    @property
    def is_new(self) -> bool:
        return self.kind == ISSUANCE_KIND_NEW


def issuance_cnv(value: Any) -> Optional[InputIssuance]:
    if value is None or isinstance(value, InputIssuance):
        return value

    if isinstance(value, dict):
        return InputIssuance(
            kind=value['kind'],
            asset_amount=value.get('asset_amount', 0),
            token_amount=value.get('token_amount', 0),
            entropy=value['entropy'],
        )

    raise TypeError('expected dict value')


def _check_sequence(instance: Any, attribute: Any, value: int) -> None:
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"{attribute.name} must fit into 32 bits")


@attrs(auto_attribs=True, frozen=True)
class DeclaredInput:
    id: str = attrib(validator=instance_of(str))
    utxo_source: UTXOSource = attrib(
        factory=WalletSource, converter=utxo_source_cnv
    )
    blinder: InputBlinder = attrib(factory=WalletBlinder, converter=blinder_cnv)
    sequence: int = attrib(default=DEFAULT_SEQUENCE, validator=_check_sequence)
    issuance: Optional[InputIssuance] = attrib(
        default=None, converter=issuance_cnv
    )


class AssetVariant(abc.ABC):
    ...


@attrs(auto_attribs=True, frozen=True)
class ExplicitAsset(AssetVariant):
    asset: CAsset = attrib(converter=asset_cnv, validator=instance_of(CAsset))


@attrs(auto_attribs=True, frozen=True)
class IssuanceDerivedAsset(AssetVariant):
    """Asset that only becomes known after the input
    at input_index is resolved"""

    input_index: int = attrib(validator=instance_of(int))

    required_kind = ''
    label = ''


class NewIssuanceAsset(IssuanceDerivedAsset):
    required_kind = ISSUANCE_KIND_NEW
    label = 'new_issuance_asset'


class NewIssuanceToken(IssuanceDerivedAsset):
    required_kind = ISSUANCE_KIND_NEW
    label = 'new_issuance_token'


class ReIssuanceAsset(IssuanceDerivedAsset):
    required_kind = ISSUANCE_KIND_REISSUE
    label = 're_issuance_asset'


def asset_variant_cnv(value: Any) -> AssetVariant:
    if isinstance(value, AssetVariant):
        return value

    if isinstance(value, CAsset):
        return ExplicitAsset(value)

    if isinstance(value, dict) and len(value) == 1:
        ((key, arg),) = value.items()
        if key == 'asset_id':
            return ExplicitAsset(arg)
        for cls in (NewIssuanceAsset, NewIssuanceToken, ReIssuanceAsset):
            if key == cls.label:
                if isinstance(arg, bool) or not isinstance(arg, int):
                    raise ValueError(
                        f'input index of {key} must be an integer, '
                        f'got {arg!r}'
                    )
                return cls(arg)

    raise ValueError(f'unrecognized output asset: {value!r}')


@attrs(auto_attribs=True, frozen=True)
class RequestedOutput:
    id: str = attrib(validator=instance_of(str))
    amount: Amount = attrib(converter=Amount)
    asset: AssetVariant = attrib(converter=asset_variant_cnv)


def _declared_input_lst_cnv(values: Any) -> List[DeclaredInput]:
    return [v if isinstance(v, DeclaredInput) else DeclaredInput(**v)
            for v in values]


def _requested_output_lst_cnv(values: Any) -> List[RequestedOutput]:
    return [v if isinstance(v, RequestedOutput) else RequestedOutput(**v)
            for v in values]


@attrs(auto_attribs=True)
class ResolutionRequest:
    fee_amount: Amount = attrib(converter=Amount)
    inputs: List[DeclaredInput] = attrib(
        factory=list, converter=_declared_input_lst_cnv
    )
    outputs: List[RequestedOutput] = attrib(
        factory=list, converter=_requested_output_lst_cnv
    )


@attrs(auto_attribs=True, frozen=True)
class WalletCoin:
    """Spendable coin from the wallet snapshot, with unblinded data"""

    outpoint: CElementsOutPoint
    asset: CAsset
    amount: Amount
    script_pubkey: CScript = attrib(factory=CScript)
    address: Optional[str] = None
    descriptor: Optional[str] = None
    amount_blinder: Uint256 = attrib(factory=Uint256)
    asset_blinder: Uint256 = attrib(factory=Uint256)

    @property
    def is_confidential(self) -> bool:
        return not (self.amount_blinder.is_null()
                    and self.asset_blinder.is_null())

    def get_descriptor(self) -> BlindingInputDescriptor:
        return BlindingInputDescriptor(
            asset=self.asset,
            amount=self.amount,
            blinding_factor=self.amount_blinder,
            asset_blinding_factor=self.asset_blinder,
        )


@attrs(auto_attribs=True, frozen=True)
class LedgerRecord:
    """On-chain output, possibly with confidential asset and value"""

    txout: CElementsTxOut
    rangeproof: bytes = b''

    @property
    def is_explicit(self) -> bool:
        return (self.txout.nAsset.is_explicit()
                and self.txout.nValue.is_explicit())


class WalletBackend(abc.ABC):
    """Source of wallet coins, ledger records and blinding keys"""

    @abc.abstractmethod
    def list_coins(self) -> List[WalletCoin]:
        """Snapshot of spendable coins, with unblinded amounts and assets"""

    @abc.abstractmethod
    def fetch_record(self, outpoint: CElementsOutPoint) -> LedgerRecord:
        """Output at outpoint, raise DataLookupError if it cannot be found"""

    @abc.abstractmethod
    def blinding_key_for_script(self, script: CScript) -> CKey:
        ...


@attrs(auto_attribs=True)
class ResolvedInput:
    origin: str = attrib(
        validator=validators.in_((INPUT_ORIGIN_DECLARED,
                                  INPUT_ORIGIN_AUXILIARY))
    )
    input_id: str
    outpoint: CElementsOutPoint
    record: LedgerRecord
    secrets: BlindingInputDescriptor
    is_confidential: bool
    sequence: int = DEFAULT_SEQUENCE
    coin: Optional[WalletCoin] = None
    issuance: Optional[InputIssuance] = None

    @property
    def asset(self) -> CAsset:
        assert isinstance(self.secrets.asset, CAsset)
        return self.secrets.asset

    @property
    def amount(self) -> int:
        assert isinstance(self.secrets.amount, int)
        return self.secrets.amount


@attrs(auto_attribs=True)
class Resolution:
    policy_asset: CAsset
    fee_amount: int
    inputs: List[ResolvedInput] = attrib(factory=list)
    demand: Dict[CAsset, int] = attrib(factory=dict)
    supply: Dict[CAsset, int] = attrib(factory=dict)

    @property
    def surplus_by_asset(self) -> Dict[CAsset, int]:
        """Amounts supplied above demand, to be returned as change"""
        surplus = {}
        for asset, supplied in self.supply.items():
            excess = supplied - self.demand.get(asset, 0)
            if excess > 0:
                surplus[asset] = excess
        return surplus

    def to_json_dict(self) -> Dict[str, Any]:
        def amounts(amount_map: Dict[CAsset, int]) -> Dict[str, int]:
            return {
                asset.to_hex(): amount_map[asset]
                for asset in sorted(amount_map, key=lambda a: a.data)
            }

        return {
            "policy_asset": self.policy_asset.to_hex(),
            "fee_amount": self.fee_amount,
            "inputs": [
                {
                    "id": inp.input_id,
                    "origin": inp.origin,
                    "txid": b2lx(inp.outpoint.hash),
                    "vout": inp.outpoint.n,
                    "asset": inp.asset.to_hex(),
                    "amount": inp.amount,
                    "confidential": inp.is_confidential,
                    "sequence": inp.sequence,
                    "address": inp.coin.address if inp.coin else None,
                    "descriptor": inp.coin.descriptor if inp.coin else None,
                    "issuance": None if inp.issuance is None else {
                        "kind": inp.issuance.kind,
                        "asset_amount": inp.issuance.asset_amount,
                        "token_amount": inp.issuance.token_amount,
                        "entropy": b2lx(inp.issuance.entropy),
                    },
                }
                for inp in self.inputs
            ],
            "demand": amounts(self.demand),
            "supply": amounts(self.supply),
            "surplus": amounts(self.surplus_by_asset),
        }

    def pretty_format(self) -> str:
        console = Console(file=StringIO(), force_terminal=False, width=160)

        inputs_table = Table(title="Resolved inputs")
        for column in ("#", "origin", "id", "outpoint", "asset", "amount",
                       "blinded"):
            inputs_table.add_column(column)

        for n, inp in enumerate(self.inputs):
            inputs_table.add_row(
                str(n), inp.origin, inp.input_id,
                f"{b2lx(inp.outpoint.hash)}:{inp.outpoint.n}", inp.asset.to_hex(),
                str(inp.amount), "yes" if inp.is_confidential else "no",
            )

        balance_table = Table(title="Balance")
        for column in ("asset", "demand", "supply", "surplus"):
            balance_table.add_column(column)

        surplus = self.surplus_by_asset
        for asset in sorted(set(self.demand) | set(self.supply),
                            key=lambda a: a.data):
            label = asset.to_hex()
            if asset == self.policy_asset:
                label += " (policy)"
            balance_table.add_row(
                label,
                str(self.demand.get(asset, 0)),
                str(self.supply.get(asset, 0)),
                str(surplus.get(asset, 0)),
            )

        console.print(inputs_table)
        console.print(balance_table)
        console.print(f"fee: {self.fee_amount}")
        result = console.file.getvalue()
        assert isinstance(result, str)
        return result


class RPCPathParamType(click.ParamType):
    """RPC daemon type"""

    name = "Config RPC"

    def convert(self, value: Any, param: Any, ctx: Any) -> ElementsRPCCaller:
        parse_r = urlparse(value)
        try:
            if parse_r.scheme:
                return ElementsRPCCaller(service_url=value)
            else:
                return ElementsRPCCaller(conf_file=value)
        except Exception as e:
            self.fail(f"Exception: {e}")


class BlockchainNetworkType(click.ParamType):

    name = "Blockchain Network"

    def convert(self, value: Any, param: Any, ctx: Any) -> str:
        allowed_networks = {"elements": "elements",
                            "liquidv1": "elements/liquidv1"}

        if value not in allowed_networks.keys():
            self.fail(
                f"allowed values for blockchain network option: "
                f"{list(allowed_networks.keys())}")

        return allowed_networks[value]


class AmountParamType(click.ParamType):

    name = "Amount"

    def convert(self, value: Any, param: Any, ctx: Any) -> Amount:
        if isinstance(value, Amount):
            return value

        if not isinstance(value, (int, str)):
            self.fail(f"{value!r} is not of type str or int")

        try:
            return Amount(value)
        except ValueError:
            self.fail(f"{value!r} is not a valid amount")


class AssetParamType(click.ParamType):

    name = "Asset"

    def convert(self, value: Any, param: Any, ctx: Any) -> CAsset:
        if isinstance(value, CAsset):
            return value

        try:
            return CAsset(lx(value))
        except Exception as e:
            self.fail(f"{value!r} is not a valid asset type: {e}")
