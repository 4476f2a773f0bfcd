import logging
from typing import Dict, Optional

from ..domain.entities.ledger_entities import (
    PairKey,
    ResolverCacheEntry,
    ResourceIdentity,
    make_pair_key,
)
from ..domain.enums.saga_enums import ResolutionSource
from ..domain.exceptions import ResolutionExhaustedError
from ..repositories.ledger_gateway import LedgerGateway
from .session_state_service import SessionStateService


def _is_empty_id(resource_id: Optional[str]) -> bool:
    if resource_id is None:
        return True
    s = str(resource_id).strip().lower()
    if not s:
        return True
    try:
        return int(s, 16 if s.startswith("0x") else 10) == 0
    except ValueError:
        return False


class ResourceResolverService:
    """
    Maps an unordered asset pair to its pool id.

    Sources, strict priority, first hit wins:
      1) authoritative on-chain lookup
      2) local cache (written only by record_creation after a confirmed pool creation)
      3) the single pre-registered legacy pair constant

    Reads never write the cache. A pair with no hit anywhere raises ResolutionExhaustedError.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        session: SessionStateService,
        legacy_pair: Optional[PairKey] = None,
        legacy_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._gateway = gateway
        self._session = session
        self._legacy_pair = make_pair_key(*legacy_pair) if legacy_pair else None
        self._legacy_id = legacy_id
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def _cache(self) -> Dict[PairKey, str]:
        return {e.pair_key: e.id for e in self._session.record.resolver_cache}

    async def resolve(self, asset_a: str, asset_b: str) -> ResourceIdentity:
        pair = make_pair_key(asset_a, asset_b)

        try:
            remote_id = await self._gateway.read_resource_identity(pair)
        except Exception as exc:
            # an unreachable source is a miss for that source only
            self._logger.warning("Authoritative lookup failed for %s/%s: %s", pair[0], pair[1], exc)
            remote_id = None
        if not _is_empty_id(remote_id):
            return ResourceIdentity(pair_key=pair, id=str(remote_id), source=ResolutionSource.AUTHORITATIVE)

        cached = self._cache().get(pair)
        if not _is_empty_id(cached):
            self._logger.debug("Pair %s/%s resolved from cache: %s", pair[0], pair[1], cached)
            return ResourceIdentity(pair_key=pair, id=cached, source=ResolutionSource.CACHE)

        if self._legacy_pair == pair and not _is_empty_id(self._legacy_id):
            self._logger.warning("Pair %s/%s resolved from legacy constant", pair[0], pair[1])
            return ResourceIdentity(pair_key=pair, id=str(self._legacy_id), source=ResolutionSource.FALLBACK_CONSTANT)

        raise ResolutionExhaustedError(pair)

    async def record_creation(self, asset_a: str, asset_b: str, resource_id: str) -> None:
        """
        Called from the confirmed-creation path only. Replaces any stale entry for the pair.
        """
        if _is_empty_id(resource_id):
            raise ValueError("cannot cache an empty resource id")
        pair = make_pair_key(asset_a, asset_b)
        entries = [e for e in self._session.record.resolver_cache if e.pair_key != pair]
        entries.append(ResolverCacheEntry(pair_key=pair, id=str(resource_id)))
        self._session.record.resolver_cache = entries
        await self._session.persist()
        self._logger.info("Cached pool %s for pair %s/%s", resource_id, pair[0], pair[1])
