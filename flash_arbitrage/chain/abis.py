"""JSON ABIs for the settlement contract and the risk manager."""

ARBITRAGE_PARAMS_COMPONENTS = [
    {"name": "tokenA", "type": "address"},
    {"name": "tokenB", "type": "address"},
    {"name": "flashAmount", "type": "uint256"},
    {"name": "exchanges", "type": "address[]"},
    {"name": "swapData", "type": "bytes[]"},
    {"name": "minProfit", "type": "uint256"},
]

ARBITRAGE_ABI = [
    {
        "type": "function",
        "name": "executeArbitrage",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {
                "name": "params",
                "type": "tuple",
                "components": ARBITRAGE_PARAMS_COMPONENTS,
            },
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "getBalance",
        "stateMutability": "view",
        "inputs": [{"name": "token", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "withdrawProfits",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "pause",
        "stateMutability": "nonpayable",
        "inputs": [],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "unpause",
        "stateMutability": "nonpayable",
        "inputs": [],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "ArbitrageExecuted",
        "anonymous": False,
        "inputs": [
            {"name": "tokenA", "type": "address", "indexed": True},
            {"name": "tokenB", "type": "address", "indexed": True},
            {"name": "flashAmount", "type": "uint256", "indexed": False},
            {"name": "profit", "type": "uint256", "indexed": False},
            {"name": "executor", "type": "address", "indexed": True},
        ],
    },
]

RISK_MANAGER_ABI = [
    {
        "type": "function",
        "name": "isTradeAllowed",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "user", "type": "address"},
            {"name": "tradeSize", "type": "uint256"},
            {"name": "expectedProfit", "type": "uint256"},
            {"name": "slippage", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "getUserRiskStatus",
        "stateMutability": "view",
        "inputs": [{"name": "user", "type": "address"}],
        "outputs": [
            {"name": "currentDailyLoss", "type": "uint256"},
            {"name": "remainingDailyLimit", "type": "uint256"},
            {"name": "todayTradeCount", "type": "uint256"},
            {"name": "canTrade", "type": "bool"},
        ],
    },
]
