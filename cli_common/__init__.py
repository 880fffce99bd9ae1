# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

import hashlib
import json
import sys
from typing import Any, Dict, cast

import click
from loguru import logger

from resolver.constants import DEFAULT_MAX_BNB_NODES
from resolver.types import (
    AmountParamType,
    AssetParamType,
    BlockchainNetworkType,
    ResolutionRequest,
    RPCPathParamType,
)


rpc_option = click.option(
    "-r",
    "--rpc",
    type=RPCPathParamType(),
    help="path to elements.conf or liquid.conf, or url for rpc service",  # noqa
    required=True,
)


network_option = click.option(
    "--network",
    "network",
    type=BlockchainNetworkType(),
    default="elements",
    help="blockchain network name [\"elements\" | \"liquidv1\"]",
)


request_option = click.option(
    "-q",
    "--request",
    type=click.Path(
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    help="path to the file that contains the resolution request",
    required=True,
)


fee_option = click.option(
    "--fee",
    "fee_amount",
    type=AmountParamType(),
    default=None,
    help="fee amount in satoshi, overrides the fee in the request",
)


policy_asset_option = click.option(
    "--policy-asset",
    type=AssetParamType(),
    default=None,
    help="asset that pays the fee, the node's bitcoin asset if not given",
)


max_bnb_nodes_option = click.option(
    "--max-bnb-nodes",
    type=int,
    default=DEFAULT_MAX_BNB_NODES,
    show_default=True,
    help="maximum number of nodes the exact coin search may visit",
)


output_option = click.option(
    "-o",
    "--output",
    type=click.Path(
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        allow_dash=False,
    ),
    default=None,
    help="path to save the resolution result to",
)


verbose_option = click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="print the details of the resolution process",
)


def configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def read_request(filename: str) -> ResolutionRequest:
    with click.open_file(filename) as f:
        try:
            v = json.load(f)
            return ResolutionRequest(
                fee_amount=v.get('fee_amount', 0),
                inputs=v.get('inputs', []),
                outputs=v.get('outputs', []),
            )
        except json.JSONDecodeError as e:
            raise click.ClickException(
                f"Error reading the file: {filename}: {e}"
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise click.ClickException(
                f"Malformed request in the file: {filename}: {e}"
            )


def hash_str(data_str: str) -> str:
    """Return hex hash data_string
    """
    return hashlib.sha256(bytes(data_str, "utf-8")).hexdigest()


def load_data_with_checking_hash(file: str) -> Dict[str, Any]:
    """Load hashed json data from file and check it
    """
    with click.open_file(file) as f:
        check_hash = f.read(64)
        expected_newline = f.read(1)
        if expected_newline != "\n":
            raise click.ClickException(
                "Newline not found on position 64 in the file")
        str_data = f.read()
        hash_data = hash_str(str_data)
        if check_hash != hash_data:
            raise click.ClickException("File was changed. Hash is not correct")
        try:
            data = json.loads(str_data)
            assert all(isinstance(k, str) for k in data.keys())
            return cast(Dict[str, Any], data)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Error reading the file: {file}: {e}")


def save_to_json_with_hash(filename: str, data: Dict[str, Any]) -> None:
    json_data = json.dumps(data, indent=4)
    hash_data = hash_str(json_data) + "\n"
    with click.open_file(filename, mode="w") as f:
        f.write(hash_data)
        f.write(json_data)
