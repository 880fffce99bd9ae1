#!/usr/bin/env python3

# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

import json
from typing import Optional

import click
from bitcointx import select_chain_params
from bitcointx.core import b2x
from bitcointx.rpc import JSONRPCError
from elementstx.core import CAsset
from loguru import logger

from cli_common import (
    configure_logging,
    fee_option,
    load_data_with_checking_hash,
    max_bnb_nodes_option,
    network_option,
    output_option,
    policy_asset_option,
    read_request,
    request_option,
    rpc_option,
    save_to_json_with_hash,
    verbose_option,
)
from resolver.builders import build_unsigned_transaction
from resolver.ranking import canonical_order
from resolver.resolution import InputResolver
from resolver.rpc_utils import RPCWalletBackend, get_bitcoin_asset
from resolver.types import (
    Amount,
    AssetParamType,
    DataLookupError,
    ElementsRPCCaller,
    FundingError,
    InvalidRequestError,
)
from resolver.utils import format_outpoint
from resolver.validators import (
    ValidationFailure,
    validate_fee_amount,
    validate_max_bnb_nodes,
    validate_policy_asset,
)


def get_policy_asset(
    rpc: ElementsRPCCaller, policy_asset: Optional[CAsset]
) -> CAsset:
    if policy_asset is None:
        try:
            policy_asset = get_bitcoin_asset(rpc)
        except JSONRPCError as e:
            raise click.ClickException(
                f"Can't get the policy asset from rpc daemon: {e}"
            )

    result = validate_policy_asset(policy_asset)
    if isinstance(result, ValidationFailure):
        raise click.ClickException(result.error)

    return policy_asset


@click.group()
def resolver() -> None:
    ...


@resolver.command()
@rpc_option
@request_option
@fee_option
@policy_asset_option
@max_bnb_nodes_option
@output_option
@verbose_option
@network_option
def resolve(
    rpc: ElementsRPCCaller,
    request: str,
    fee_amount: Optional[Amount],
    policy_asset: Optional[CAsset],
    max_bnb_nodes: int,
    output: Optional[str],
    verbose: bool,
    network: str,
) -> None:
    """Find the inputs that fund the requested outputs"""
    select_chain_params(network)
    configure_logging(verbose)

    result = validate_max_bnb_nodes(max_bnb_nodes)
    if isinstance(result, ValidationFailure):
        raise click.ClickException(result.error)

    resolution_request = read_request(request)

    if fee_amount is not None:
        resolution_request.fee_amount = fee_amount

    result = validate_fee_amount(resolution_request.fee_amount)
    if isinstance(result, ValidationFailure):
        raise click.ClickException(result.error)

    input_resolver = InputResolver(
        RPCWalletBackend(rpc),
        get_policy_asset(rpc, policy_asset),
        max_bnb_nodes=max_bnb_nodes,
    )

    try:
        resolution = input_resolver.resolve(resolution_request)
    except InvalidRequestError as e:
        raise click.ClickException(f"Invalid request: {e.message}")
    except FundingError as e:
        raise click.ClickException(f"Insufficient funds: {e.message}")
    except DataLookupError as e:
        raise click.ClickException(f"Data lookup failed: {e.message}")

    tx, _ = build_unsigned_transaction(resolution)
    tx_hex = b2x(tx.serialize())

    click.echo(resolution.pretty_format())

    if output is None:
        click.echo(f"unsigned tx: {tx_hex}")
        return

    data = resolution.to_json_dict()
    data["tx"] = tx_hex
    save_to_json_with_hash(output, data)
    logger.info(f"the resolution was saved to {output}")


@resolver.command()
@rpc_option
@click.option(
    "-a",
    "--asset",
    type=AssetParamType(),
    help="asset to list the wallet coins of",
    required=True,
)
@verbose_option
@network_option
def coins(
    rpc: ElementsRPCCaller, asset: CAsset, verbose: bool, network: str
) -> None:
    """List the wallet coins of the asset in the order
    the resolver considers them"""
    select_chain_params(network)
    configure_logging(verbose)

    try:
        wallet_coins = RPCWalletBackend(rpc).list_coins()
    except DataLookupError as e:
        raise click.ClickException(f"Data lookup failed: {e.message}")

    asset_coins = canonical_order(c for c in wallet_coins if c.asset == asset)

    for coin in asset_coins:
        kind = "confidential" if coin.is_confidential else "explicit"
        click.echo(
            f"{format_outpoint(coin.outpoint)} "
            f"{coin.amount} {kind}"
        )

    click.echo(
        f"total: {sum(c.amount for c in asset_coins)} "
        f"in {len(asset_coins)} coins"
    )


@resolver.command()
@click.option(
    "-i",
    "--input",
    "input_file",
    type=click.Path(
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    help="path to the saved resolution result",
    required=True,
)
def show(input_file: str) -> None:
    """Check and print the saved resolution result"""
    data = load_data_with_checking_hash(input_file)
    click.echo(json.dumps(data, indent=4))


if __name__ == "__main__":
    resolver()
