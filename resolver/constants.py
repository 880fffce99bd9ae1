# Copyright (c) 2020-2021 Rugged Bytes IT-Services GmbH
# Distributed under the MIT software license, see the accompanying
# file COPYING or http://www.opensource.org/licenses/mit-license.php.

# amounts are unsigned 64-bit on the equation level
MAX_AMOUNT = 2 ** 64 - 1

# the output with this id names the fee, its amount is not used in demand
FEE_OUTPUT_ID = "fee"

DEFAULT_SEQUENCE = 0xFFFFFFFF

ISSUANCE_KIND_NEW = "new"
ISSUANCE_KIND_REISSUE = "reissue"
ISSUANCE_KINDS = (ISSUANCE_KIND_NEW, ISSUANCE_KIND_REISSUE)

# node limit of the exact coin search
DEFAULT_MAX_BNB_NODES = 100_000
MIN_BNB_NODES = 1
MAX_BNB_NODES = 10_000_000

INPUT_ORIGIN_DECLARED = "declared"
INPUT_ORIGIN_AUXILIARY = "auxiliary"

# listunspent bounds used to build the wallet snapshot
SNAPSHOT_MIN_CONF = 0
SNAPSHOT_MAX_CONF = 9999999
