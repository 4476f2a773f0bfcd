import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient

from ..config import Settings, get_settings
from ..adapters.external.chain.web3_ledger_gateway import Web3LedgerGateway
from ..adapters.external.database.session_store_json import SessionStoreJson
from ..adapters.external.database.session_store_mongodb import SessionStoreMongoDB
from ..core.domain.policies import Spenders
from ..core.repositories.ledger_gateway import LedgerGateway
from ..core.repositories.session_store_repository import SessionStoreRepository
from ..core.services.allowance_gate_service import AllowanceGateService
from ..core.services.intent_store_service import IntentStoreService
from ..core.services.quote_pipeline_service import QuotePipelineService
from ..core.services.resource_resolver_service import ResourceResolverService
from ..core.services.session_state_service import SessionStateService
from ..core.services.shadow_ledger_service import ShadowLedgerService
from ..core.usecases.run_operation_saga_use_case import RunOperationSagaUseCase


class SagaSupervisor:
    """
    High-level supervisor for the vault-saga process.

    Responsibilities:
    - Pick the session store (JSON file or Mongo) and load the persisted session.
    - Build the web3 ledger gateway from settings (unless one is injected).
    - Wire gate, intent store, resolver, shadow ledger, quote pipeline and the saga driver.
    - On stop: drop pending quotes, abandon running sagas, close Mongo.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gateway: Optional[LedgerGateway] = None,
        store: Optional[SessionStoreRepository] = None,
    ):
        self._logger = logging.getLogger(self.__class__.__name__)
        self._settings = settings
        self._gateway = gateway
        self._store = store
        self._mongo_client: AsyncIOMotorClient | None = None

        self.session: SessionStateService | None = None
        self.resolver: ResourceResolverService | None = None
        self.shadow_ledger: ShadowLedgerService | None = None
        self.quotes: QuotePipelineService | None = None
        self.saga_driver: RunOperationSagaUseCase | None = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def _build_store(self) -> SessionStoreRepository:
        s = self.settings
        if s.STORE_BACKEND == "mongo":
            self._mongo_client = AsyncIOMotorClient(s.MONGODB_URI)
            return SessionStoreMongoDB(self._mongo_client[s.MONGODB_DB_NAME])
        if s.STORE_BACKEND == "file":
            return SessionStoreJson(s.DATA_ROOT)
        raise ValueError(f"unknown STORE_BACKEND: {s.STORE_BACKEND!r}")

    async def start(self):
        s = self.settings

        if self._store is None:
            self._store = self._build_store()
        if self._gateway is None:
            self._gateway = Web3LedgerGateway.from_settings(s)

        self.session = SessionStateService(self._store, s.SESSION_ID)
        await self.session.load()

        self.resolver = ResourceResolverService(
            self._gateway,
            self.session,
            legacy_pair=(s.LEGACY_POOL_TOKEN_A, s.LEGACY_POOL_TOKEN_B),
            legacy_id=s.LEGACY_POOL_ID,
        )
        self.shadow_ledger = ShadowLedgerService(self.session)
        self.quotes = QuotePipelineService(
            self._gateway,
            self.resolver,
            quiet_period_sec=s.QUOTE_QUIET_PERIOD_SEC,
            token_decimals=s.TOKEN_DECIMALS,
        )
        self.saga_driver = RunOperationSagaUseCase(
            gateway=self._gateway,
            allowance_gate=AllowanceGateService(self._gateway),
            intent_store=IntentStoreService(),
            shadow_ledger=self.shadow_ledger,
            resolver=self.resolver,
            spenders=Spenders(lending_pool=s.LENDING_POOL, swap_engine=s.SWAP_ENGINE),
            categories=s.ASSET_CATEGORIES,
            default_max_slippage_bps=s.DEFAULT_MAX_SLIPPAGE_BPS,
            default_fee_rate_bps=s.DEFAULT_POOL_FEE_RATE_BPS,
            confirmation_timeout_sec=s.CONFIRMATION_TIMEOUT_SEC,
        )
        self._logger.info(
            "Session %s loaded: %d cached pools, %d shadow categories",
            s.SESSION_ID, len(self.session.record.resolver_cache), len(self.session.record.shadow_ledger),
        )

    async def stop(self):
        """
        Gracefully stop resources.
        """
        if self.quotes:
            await self.quotes.close()
        if self.saga_driver:
            await self.saga_driver.stop()
        if self._mongo_client:
            self._mongo_client.close()
