"""
Address validation for both legs of the bridge

Zcash recipients must be shielded: unified (bech32m) or Sapling (bech32).
Transparent t-addresses are rejected. Solana refund addresses are checked
by decoding them into a public key.
"""
from typing import List, Optional, Tuple

import base58
from solders.pubkey import Pubkey

from .errors import InvalidAddress

BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3

# Human-readable parts per network: (unified, sapling)
ZCASH_HRPS = {
    "mainnet": ("u", "zs"),
    "testnet": ("utest", "ztestsapling"),
}

# Sapling payment addresses are 43 bytes -> fixed length per HRP
SAPLING_LENGTHS = {"zs": 78, "ztestsapling": 88}


def _polymod(values: List[int]) -> int:
    generator = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i in range(5):
            chk ^= generator[i] if ((top >> i) & 1) else 0
    return chk


def _hrp_expand(hrp: str) -> List[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32_decode(address: str) -> Optional[Tuple[str, List[int], int]]:
    """
    Decode a bech32/bech32m string without a length cap

    Returns:
        (hrp, data, checksum constant) or None if the string is malformed
    """
    if any(ord(x) < 33 or ord(x) > 126 for x in address):
        return None
    if address.lower() != address and address.upper() != address:
        return None
    address = address.lower()
    pos = address.rfind("1")
    if pos < 1 or pos + 7 > len(address):
        return None
    if not all(x in BECH32_CHARSET for x in address[pos + 1:]):
        return None
    hrp = address[:pos]
    data = [BECH32_CHARSET.find(x) for x in address[pos + 1:]]
    const = _polymod(_hrp_expand(hrp) + data)
    if const not in (BECH32_CONST, BECH32M_CONST):
        return None
    return hrp, data[:-6], const


def is_valid_zcash_shielded_address(address: str, network: str = "mainnet") -> bool:
    """Check that an address is a Zcash shielded address for the given network"""
    if not address or not isinstance(address, str):
        return False
    address = address.strip()

    unified_hrp, sapling_hrp = ZCASH_HRPS.get(network, ZCASH_HRPS["mainnet"])
    decoded = bech32_decode(address)
    if decoded is None:
        return False
    hrp, _, const = decoded

    if hrp == unified_hrp:
        return const == BECH32M_CONST
    if hrp == sapling_hrp:
        return const == BECH32_CONST and len(address) == SAPLING_LENGTHS[sapling_hrp]
    return False


def is_valid_solana_address(address: str) -> bool:
    """Check that an address decodes to a 32-byte Solana public key"""
    if not address or not isinstance(address, str):
        return False
    address = address.strip()
    try:
        raw = base58.b58decode(address)
    except ValueError:
        return False
    if len(raw) != 32:
        return False
    return str(Pubkey.from_bytes(raw)) == address


def validate_recipient_address(address: str, network: str = "mainnet") -> str:
    """Return the normalized recipient address or raise InvalidAddress"""
    if not is_valid_zcash_shielded_address(address, network):
        raise InvalidAddress(
            f"Recipient must be a shielded Zcash {network} address",
            address=address,
            role="recipient",
        )
    return address.strip()


def validate_refund_address(address: str) -> str:
    """Return the normalized refund address or raise InvalidAddress"""
    if not is_valid_solana_address(address):
        raise InvalidAddress("Refund address must be a Solana address", address=address, role="refund")
    return address.strip()
