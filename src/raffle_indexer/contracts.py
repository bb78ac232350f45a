"""Event and view declarations for the raffle protocol contracts."""

from raffle_indexer.chain.abi import EventSpec, ViewFunction

# Pool deployer / social engagement manager
POOL_CREATED = EventSpec.parse("PoolCreated(address indexed pool, address indexed creator, uint256 poolId)")
POOL_METADATA_SET = EventSpec.parse(
    "PoolMetadataSet(address indexed pool, string description, string twitterLink, "
    "string discordLink, string telegramLink)"
)
SOCIAL_TASKS_ENABLED = EventSpec.parse("SocialTasksEnabled(address indexed pool, string taskDescription)")

# Pool
SLOTS_PURCHASED = EventSpec.parse("SlotsPurchased(address indexed participant, uint256 quantity)")
WINNERS_SELECTED = EventSpec.parse("WinnersSelected(address[] winners)")
RANDOM_REQUESTED = EventSpec.parse("RandomRequested(uint256 requestId, address indexed caller)")
PRIZE_CLAIMED = EventSpec.parse("PrizeClaimed(address indexed winner, uint256 amount)")
REFUND_CLAIMED = EventSpec.parse("RefundClaimed(address indexed participant, uint256 amount)")
POOL_ACTIVATED = EventSpec.parse("PoolActivated(uint256 timestamp)")
POOL_ENDED = EventSpec.parse("PoolEnded(uint256 timestamp)")

POOL_NAME = ViewFunction.parse("name() returns (string)")
POOL_START_TIME = ViewFunction.parse("startTime() returns (uint256)")
POOL_DURATION = ViewFunction.parse("duration() returns (uint256)")
POOL_SLOT_FEE = ViewFunction.parse("slotFee() returns (uint256)")
POOL_SLOT_LIMIT = ViewFunction.parse("slotLimit() returns (uint256)")
POOL_WINNERS_COUNT = ViewFunction.parse("winnersCount() returns (uint256)")
POOL_MAX_SLOTS_PER_ADDRESS = ViewFunction.parse("maxSlotsPerAddress() returns (uint256)")
POOL_STATE = ViewFunction.parse("state() returns (uint8)")
POOL_IS_PRIZED = ViewFunction.parse("isPrized() returns (bool)")
POOL_PRIZE_COLLECTION = ViewFunction.parse("prizeCollection() returns (address)")
POOL_PRIZE_TOKEN_ID = ViewFunction.parse("prizeTokenId() returns (uint256)")
POOL_STANDARD = ViewFunction.parse("standard() returns (uint8)")
POOL_IS_COLLAB = ViewFunction.parse("isCollabPool() returns (bool)")
POOL_USES_CUSTOM_FEE = ViewFunction.parse("usesCustomFee() returns (bool)")
POOL_REVENUE_RECIPIENT = ViewFunction.parse("revenueRecipient() returns (address)")
POOL_IS_EXTERNAL_COLLECTION = ViewFunction.parse("isExternalCollection() returns (bool)")
POOL_IS_REFUNDABLE = ViewFunction.parse("isRefundable() returns (bool)")
POOL_AMOUNT_PER_WINNER = ViewFunction.parse("amountPerWinner() returns (uint256)")
POOL_ERC20_PRIZE_TOKEN = ViewFunction.parse("erc20PrizeToken() returns (address)")
POOL_ERC20_PRIZE_AMOUNT = ViewFunction.parse("erc20PrizeAmount() returns (uint256)")
POOL_NATIVE_PRIZE_AMOUNT = ViewFunction.parse("nativePrizeAmount() returns (uint256)")
POOL_IS_ESCROWED_PRIZE = ViewFunction.parse("isEscrowedPrize() returns (bool)")
POOL_HOLDER_DATA = ViewFunction.parse("holderData() returns (address, uint8, uint256)")
POOL_GET_WINNERS = ViewFunction.parse("getWinners() returns (address[])")
POOL_REFUNDABLE_AMOUNT = ViewFunction.parse("getRefundableAmount(address) returns (uint256)")

# ERC-20
ERC20_SYMBOL = ViewFunction.parse("symbol() returns (string)")
ERC20_DECIMALS = ViewFunction.parse("decimals() returns (uint8)")

# NFT factory and collections
COLLECTION_CREATED = EventSpec.parse(
    "CollectionCreated(address indexed collection, address indexed creator, uint8 standard)"
)
REVEALED = EventSpec.parse("Revealed(string baseURI)")
TRANSFER = EventSpec.parse("Transfer(address indexed from, address indexed to, uint256 indexed tokenId)")
TRANSFER_SINGLE = EventSpec.parse(
    "TransferSingle(address indexed operator, address indexed from, address indexed to, uint256 id, uint256 value)"
)
TRANSFER_BATCH = EventSpec.parse(
    "TransferBatch(address indexed operator, address indexed from, address indexed to, "
    "uint256[] ids, uint256[] values)"
)
VESTING_SCHEDULE_SET = EventSpec.parse(
    "VestingScheduleSet(address indexed beneficiary, uint256 amount, uint256 startTime, uint256 duration)"
)

COLLECTION_NAME = ViewFunction.parse("name() returns (string)")
COLLECTION_SYMBOL = ViewFunction.parse("symbol() returns (string)")
COLLECTION_OWNER = ViewFunction.parse("owner() returns (address)")
COLLECTION_TOTAL_SUPPLY = ViewFunction.parse("totalSupply() returns (uint256)")
COLLECTION_MAX_SUPPLY = ViewFunction.parse("maxSupply() returns (uint256)")
COLLECTION_BASE_URI = ViewFunction.parse("baseURI() returns (string)")
COLLECTION_IS_REVEALED = ViewFunction.parse("isRevealed() returns (bool)")
COLLECTION_DROP_URI = ViewFunction.parse("dropURI() returns (string)")
COLLECTION_DROP_URI_HASH = ViewFunction.parse("dropURIHash() returns (bytes32)")
COLLECTION_UNREVEALED_BASE_URI = ViewFunction.parse("unrevealedBaseURI() returns (string)")
COLLECTION_UNREVEALED_URI = ViewFunction.parse("unrevealedURI() returns (string)")
COLLECTION_UNREVEALED_URI_HASH = ViewFunction.parse("unrevealedURIHash() returns (bytes32)")
COLLECTION_ROYALTY_RECIPIENT = ViewFunction.parse("royaltyRecipient() returns (address)")
COLLECTION_ROYALTY_BPS = ViewFunction.parse("royaltyBps() returns (uint256)")
TOKEN_URI = ViewFunction.parse("tokenURI(uint256) returns (string)")
ERC1155_URI = ViewFunction.parse("uri(uint256) returns (string)")

# Rewards flywheel
POINTS_SYSTEM_ACTIVATED = EventSpec.parse("PointsSystemActivated(bool active)")
POINTS_CLAIMS_ACTIVATED = EventSpec.parse("PointsClaimsActivated()")
POINTS_REWARD_TOKEN_DEPOSITED = EventSpec.parse("PointsRewardTokenDeposited(address indexed token, uint256 amount)")
POINTS_REWARD_CLAIMED = EventSpec.parse(
    "PointsRewardClaimed(address indexed user, uint256 pointsClaimed, uint256 tokenAmount)"
)
REWARDS_DEPOSITED = EventSpec.parse(
    "RewardsDeposited(address indexed pool, address indexed token, uint256 amount, address indexed depositor)"
)
REWARDS_CLAIMED = EventSpec.parse(
    "RewardsClaimed(address indexed pool, address indexed user, address indexed token, uint256 amount)"
)
REWARDS_WITHDRAWN = EventSpec.parse(
    "RewardsWithdrawn(address indexed pool, address indexed token, uint256 amount, address indexed depositor)"
)
REWARD_PER_SLOT_CALCULATED = EventSpec.parse(
    "RewardPerSlotCalculated(address indexed pool, uint256 rewardPerSlot, uint256 totalEligibleSlots)"
)
CREATOR_REWARDS_DEPOSITED = EventSpec.parse(
    "CreatorRewardsDeposited(address indexed token, uint256 amount, uint128 rewardAmount, uint256 eligiblePoolCount)"
)
CREATOR_REWARDS_CLAIMED = EventSpec.parse(
    "CreatorRewardsClaimed(address indexed pool, address indexed creator, address indexed token, "
    "uint256 amount, uint256 fillPercentage)"
)
CREATOR_REWARDS_WITHDRAWN = EventSpec.parse("CreatorRewardsWithdrawn(address indexed token, uint256 amount)")
CREATOR_REWARD_AMOUNT_UPDATED = EventSpec.parse(
    "CreatorRewardAmountUpdated(address indexed token, uint128 oldAmount, uint128 newAmount)"
)

POINTS_SYSTEM_INFO = ViewFunction.parse(
    "getPointsSystemInfo() returns (bool, bool, address, uint256, uint256)"
)
CREATOR_REWARD_TOKENS = ViewFunction.parse("getCreatorRewardTokens() returns (address[])")
CREATOR_REWARD_CONFIG = ViewFunction.parse("getCreatorRewardConfig(address) returns (uint128, uint256, address)")
