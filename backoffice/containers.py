from dependency_injector import containers, providers

from backoffice.config import get_settings
from backoffice.services.fulfillment import GameMailClient
from backoffice.services.redis_service import RedisService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(get_settings)


class InfrastructureModule(containers.DeclarativeContainer):
    """App-lifetime clients shared across requests."""

    config = providers.DependenciesContainer()

    redis_service = providers.Singleton(RedisService, settings=config.config)
    fulfillment = providers.Singleton(GameMailClient, settings=config.config)


class Container(containers.DeclarativeContainer):
    """Application container."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "backoffice.routers.auth_router",
            "backoffice.routers.prize_router",
            "backoffice.routers.gift_code_router",
            "backoffice.routers.shop_router",
            "backoffice.routers.wallet_router",
            "backoffice.routers.payment_router",
        ],
    )

    config = providers.Container(ConfigModule)
    infrastructure = providers.Container(InfrastructureModule, config=config)
