"""Pharos testnet contract addresses and minimal ABIs."""

from typing import Dict, List

TOKENS: Dict[str, str] = {
    "USDC": "0xad902cf99c2de2f1ba5ec4d642fd7e49cae9ee37",
    "WPHRS": "0x76aaada469d23216be5f7c596fa25f282ff9b364",
    "USDT": "0xed59de2d7ad9c043442e381231ee3646fc3c2939",
}

TOKEN_DECIMALS: Dict[str, int] = {
    "WPHRS": 18,
    "USDC": 6,
    "USDT": 6,
}

SWAP_ROUTER_ADDRESS = "0x1a4de519154ae51200b0ad7c90f7fac75547888a"
POSITION_MANAGER_ADDRESS = "0xf8a1d4ff0f9b9af7ce58e1fc1833688f3bfd6115"

# exactInputSingle((address,address,uint24,address,uint256,uint256,uint160))
EXACT_INPUT_SINGLE_SELECTOR = bytes.fromhex("04e45aaf")
POOL_FEE = 500
LIQUIDITY_TICK_LOWER = 44410
LIQUIDITY_TICK_UPPER = 44460

TRANSFER_GAS_LIMIT = 21000
WRAP_GAS_LIMIT = 30000
SWAP_GAS_LIMIT = 300000
APPROVE_GAS_LIMIT = 100000
MINT_GAS_LIMIT = 600000

SWAP_PAIRS: List[Dict[str, str]] = [
    {"from": "WPHRS", "to": "USDC"},
    {"from": "USDC", "to": "WPHRS"},
    {"from": "WPHRS", "to": "USDT"},
    {"from": "USDC", "to": "USDT"},
]

ROUTER_ABI = [
    {
        "inputs": [
            {"internalType": "uint256", "name": "deadline", "type": "uint256"},
            {"internalType": "bytes[]", "name": "data", "type": "bytes[]"},
        ],
        "name": "multicall",
        "outputs": [{"internalType": "bytes[]", "name": "", "type": "bytes[]"}],
        "stateMutability": "payable",
        "type": "function",
    },
]

ERC20_ABI = [
    {"inputs": [{"name": "owner", "type": "address"}], "name": "balanceOf",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "spender", "type": "address"}, {"name": "value", "type": "uint256"}],
     "name": "approve", "outputs": [{"name": "", "type": "bool"}],
     "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}],
     "name": "allowance", "outputs": [{"name": "", "type": "uint256"}],
     "stateMutability": "view", "type": "function"},
]

WRAPPED_NATIVE_ABI = ERC20_ABI + [
    {"inputs": [], "name": "deposit", "outputs": [], "stateMutability": "payable", "type": "function"},
    # WETH9 layout, topic keccak("Deposit(address,uint256)"); logs under any other
    # Deposit signature are discarded and the wrap still reports its tx hash.
    {"anonymous": False, "inputs": [
        {"indexed": True, "name": "dst", "type": "address"},
        {"indexed": False, "name": "wad", "type": "uint256"},
    ], "name": "Deposit", "type": "event"},
]

POSITION_MANAGER_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "address", "name": "token0", "type": "address"},
                    {"internalType": "address", "name": "token1", "type": "address"},
                    {"internalType": "uint24", "name": "fee", "type": "uint24"},
                    {"internalType": "int24", "name": "tickLower", "type": "int24"},
                    {"internalType": "int24", "name": "tickUpper", "type": "int24"},
                    {"internalType": "uint256", "name": "amount0Desired", "type": "uint256"},
                    {"internalType": "uint256", "name": "amount1Desired", "type": "uint256"},
                    {"internalType": "uint256", "name": "amount0Min", "type": "uint256"},
                    {"internalType": "uint256", "name": "amount1Min", "type": "uint256"},
                    {"internalType": "address", "name": "recipient", "type": "address"},
                    {"internalType": "uint256", "name": "deadline", "type": "uint256"},
                ],
                "internalType": "struct INonfungiblePositionManager.MintParams",
                "name": "params",
                "type": "tuple",
            },
        ],
        "name": "mint",
        "outputs": [
            {"internalType": "uint256", "name": "tokenId", "type": "uint256"},
            {"internalType": "uint128", "name": "liquidity", "type": "uint128"},
            {"internalType": "uint256", "name": "amount0", "type": "uint256"},
            {"internalType": "uint256", "name": "amount1", "type": "uint256"},
        ],
        "stateMutability": "payable",
        "type": "function",
    },
    {"anonymous": False, "inputs": [
        {"indexed": True, "name": "tokenId", "type": "uint256"},
        {"indexed": False, "name": "liquidity", "type": "uint128"},
        {"indexed": False, "name": "amount0", "type": "uint256"},
        {"indexed": False, "name": "amount1", "type": "uint256"},
    ], "name": "IncreaseLiquidity", "type": "event"},
]
