"""Application-wide constants.

These are fixed values that don't change between environments.
For configurable values, see config.py Settings.
"""

# ─────────────────────────────────────────────────────────────
# Telegram Bot API limits (platform constraints)
# ─────────────────────────────────────────────────────────────
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
TELEGRAM_GLOBAL_LIMIT = 30  # messages per second across all chats
TELEGRAM_CHAT_LIMIT = 1  # messages per second to one private chat
TELEGRAM_GROUP_LIMIT = 20  # messages per minute to one group/channel
TELEGRAM_RESET_INTERVAL_SECONDS = 1.0
TELEGRAM_GROUP_RESET_INTERVAL_SECONDS = 60.0
TELEGRAM_CHAT_MIN_SPACING_SECONDS = 1.0
TELEGRAM_GROUP_MIN_SPACING_SECONDS = 3.0
TELEGRAM_MIN_WAIT_SECONDS = 0.05  # floor for rate-limit sleeps
TELEGRAM_MAX_SEND_ATTEMPTS = 3
TELEGRAM_POLL_TIMEOUT_SECONDS = 30

# ─────────────────────────────────────────────────────────────
# Ingress polling backoff
# ─────────────────────────────────────────────────────────────
POLLING_BASE_INTERVAL_SECONDS = 1.0
POLLING_MAX_INTERVAL_SECONDS = 30.0
POLLING_MAX_BACKOFF_ATTEMPTS = 10
POLLING_DEFAULT_RETRY_AFTER_SECONDS = 5.0

# ─────────────────────────────────────────────────────────────
# Solana
# ─────────────────────────────────────────────────────────────
LAMPORTS_PER_SOL = 1_000_000_000
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
COMPUTE_BUDGET_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"
PUMP_FUN_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
SYSVAR_RENT_ID = "SysvarRent111111111111111111111111111111111"

# Accounts that appear in transactions but are never counterparties
NON_COUNTERPARTY_ACCOUNTS = frozenset(
    {
        TOKEN_PROGRAM_ID,
        TOKEN_2022_PROGRAM_ID,
        ASSOCIATED_TOKEN_PROGRAM_ID,
        SYSTEM_PROGRAM_ID,
        COMPUTE_BUDGET_PROGRAM_ID,
        PUMP_FUN_PROGRAM_ID,
        SYSVAR_RENT_ID,
    }
)

# Inner instruction types that mark a token-contract interaction
TOKEN_INTERACTION_TYPES = frozenset({"mintTo", "transferChecked"})

# Offset of the owner pubkey inside an SPL token account
TOKEN_ACCOUNT_OWNER_OFFSET = 32

RPC_TIMEOUT_SECONDS = 30.0
WS_MAX_RECONNECT_DELAY_SECONDS = 60.0

# ─────────────────────────────────────────────────────────────
# Token metadata
# ─────────────────────────────────────────────────────────────
DEFAULT_JUPITER_PRICE_API_URL = "https://api.jup.ag/price/v2"
DEFAULT_JUPITER_TOKEN_API_URL = "https://tokens.jup.ag/token"
DEFAULT_SOLANA_RPC_URL = "https://api.mainnet-beta.solana.com"
PUMP_TOKEN_SUFFIX = "pump"

# ─────────────────────────────────────────────────────────────
# Explorer links
# ─────────────────────────────────────────────────────────────
SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"
SOLSCAN_ACCOUNT_URL = "https://solscan.io/account/{address}"
BIRDEYE_TOKEN_URL = "https://birdeye.so/token/{token_id}?chain=solana"
DEXTOOLS_TOKEN_URL = "https://www.dextools.io/app/en/solana/pair-explorer/{token_id}"
