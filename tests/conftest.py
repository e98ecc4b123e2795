import pytest

from token_sale.allowlist import AllowListEntry, MerkleAllowList, build_allowlist
from token_sale.ledgers import InMemoryLedger
from token_sale.project_constants import DEFAULT_SALE_PRICE
from token_sale.sale import SaleLedger

DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
SECOND = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
THIRD = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
FOURTH = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"
TREASURY = "0x15d34AAf54267DB7D7c367839AAf71A00a2C6A65"
OUTSIDER = "0x9965507D1a55bcC2695C58ba16FB37d819B0A4dc"
SALE = "0x" + "5a1e" * 10

USDC = 10**6
FRIES = 10**18

WHITELIST = [
    (SECOND, 210000, False),
    (THIRD, 420000, False),
    (FOURTH, 5250000, True),
]


@pytest.fixture
def usdc():
    ledger = InMemoryLedger("USDC", 6, DEPLOYER)
    for buyer in (SECOND, THIRD, FOURTH, OUTSIDER):
        ledger.mint(DEPLOYER, buyer, 10**6 * USDC)
        ledger.approve(buyer, SALE, 10**18 * USDC)
    return ledger


@pytest.fixture
def fries():
    ledger = InMemoryLedger("FRIES", 18, DEPLOYER)
    ledger.mint(DEPLOYER, SALE, 10**7 * FRIES)
    return ledger


@pytest.fixture
def allowlist():
    entries = [AllowListEntry.create(a, alloc, v) for a, alloc, v in WHITELIST]
    ordered, tree = build_allowlist(entries)
    return {e.address: e for e in ordered}, tree


@pytest.fixture
def deployed(usdc, fries, allowlist):
    _, tree = allowlist
    sale, cap = SaleLedger.deploy(
        address=SALE,
        owner=DEPLOYER,
        sale_token=fries,
        payment_token=usdc,
        treasury=TREASURY,
        membership=MerkleAllowList(tree.root),
        sale_price=DEFAULT_SALE_PRICE,
    )
    return sale, cap


def proof_args(allowlist, address):
    entries, tree = allowlist
    entry = entries[address]
    return {
        "allocation": entry.allocation,
        "vesting": entry.vesting,
        "proof": list(tree.proof_for(entry.leaf)),
    }
