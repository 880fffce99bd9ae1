# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

import traceback
from typing import Iterator

import pytest
from bitcointx import ChainParams

from resolver.resolution import InputResolver

from . import POLICY_ASSET, ASSET_X, FakeWallet, make_coin, make_coins


@pytest.fixture(autouse=True)
def elements_chain() -> Iterator[None]:
    with ChainParams('elements'):
        yield


@pytest.fixture
def wallet() -> FakeWallet:
    coins = make_coins(ASSET_X, [5, 4, 3], first_n=1)
    coins.append(make_coin(POLICY_ASSET, 1000, 10))
    coins.append(make_coin(POLICY_ASSET, 300, 11))
    return FakeWallet(coins)


@pytest.fixture
def input_resolver(wallet: FakeWallet) -> InputResolver:
    return InputResolver(wallet, POLICY_ASSET)


@pytest.fixture
def checkresult(capsys):  # type: ignore
    def _checkresult(result):  # type: ignore
        if result.exit_code:
            with capsys.disabled():
                print(f"Output: {result.output}")
                if result.exc_info is not None:
                    traceback.print_exception(*result.exc_info)
        assert result.exit_code == 0

    return _checkresult
