from .auth import AdminContext, PlayerContext, Token
from .common import BaseResponse
from .reward_payload import RewardPayload
from .prize import PrizePoolSummary
from .shop import TokenPurchaseResponse
