"""Explicit construction of the long-lived service graph.

:func:`build_services` opens every shared resource exactly once and
:meth:`Services.close` releases them. Nothing is created lazily at module
level; callers pass the returned objects by reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from provenant.anchoring.batch_ids import BatchIdGenerator
from provenant.anchoring.network import ConsensusNetwork
from provenant.anchoring.query import ConsensusQuery, QueryWindow
from provenant.anchoring.reconcile import Reconciler
from provenant.anchoring.registration import ProductRegistrar
from provenant.anchoring.submission import SubmissionClient
from provenant.anchoring.verification import VerificationService
from provenant.caching import VerificationCache
from provenant.config import Settings
from provenant.db.session import build_engine, init_db
from provenant.db.store import CatalogStore
from provenant.hedera import HederaNetwork, MirrorNodeClient, build_submitter
from provenant.observability import redact_secret

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: Engine
    store: CatalogStore
    registrar: ProductRegistrar
    verifier: VerificationService
    reconciler: Reconciler
    network: Optional[ConsensusNetwork] = None
    query: Optional[ConsensusQuery] = None
    cache: Optional[VerificationCache] = None

    def close(self) -> None:
        network, self.network = self.network, None
        cache, self.cache = self.cache, None
        try:
            if network is not None:
                network.close()
        finally:
            try:
                if cache is not None:
                    cache.close()
            finally:
                self.engine.dispose()


def build_network(settings: Settings) -> Optional[HederaNetwork]:
    if not settings.hedera_topic_id:
        return None
    submitter = build_submitter(
        settings.hedera_network, settings.hedera_account_id, settings.hedera_private_key
    )
    return HederaNetwork(MirrorNodeClient(settings.mirror_url), submitter)


def build_services(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    network: Optional[ConsensusNetwork] = None,
    create_schema: bool = False,
) -> Services:
    """Wire the store, network gateway, cache and services from ``settings``.

    ``engine`` and ``network`` may be supplied directly (tests pass an
    in-memory engine and a fake network); otherwise they are built from
    settings. A supplied network is used as-is and is assumed to be open.
    """

    settings = settings or Settings.from_env()
    engine = engine or build_engine(settings.database_url)
    if create_schema:
        init_db(engine)
    store = CatalogStore(engine)

    owned: Optional[HederaNetwork] = None
    if network is None:
        owned = build_network(settings)
        if owned is not None:
            owned.open()
        network = owned

    cache: Optional[VerificationCache] = None
    if settings.redis_url and settings.verify_cache_ttl > 0:
        try:
            cache = VerificationCache.from_url(settings.redis_url, ttl=settings.verify_cache_ttl)
        except Exception:
            if owned is not None:
                owned.close()
            raise

    submitter: Optional[SubmissionClient] = None
    query: Optional[ConsensusQuery] = None
    if network is not None and settings.hedera_topic_id:
        query = ConsensusQuery(
            network,
            settings.hedera_topic_id,
            cache=cache,
            default_window=QueryWindow(timeout=settings.query_timeout, grace=settings.query_grace),
        )
        if settings.hedera_configured or not isinstance(network, HederaNetwork):
            submitter = SubmissionClient(
                network, settings.hedera_topic_id, max_message_bytes=settings.max_message_bytes
            )
    else:
        logger.warning("Consensus network not configured; claims will not be anchored")

    registrar = ProductRegistrar(
        store,
        submitter=submitter,
        batch_ids=BatchIdGenerator(store.exists_batch_id),
        verification_base_url=settings.frontend_url,
    )
    verifier = VerificationService(
        store, query, topic_id=settings.hedera_topic_id, network=settings.hedera_network
    )
    reconciler = Reconciler(
        store,
        query,
        settle_after=settings.reconcile_after,
        search_timeout=settings.query_timeout,
    )
    logger.info(
        "Services ready (network=%s, account=%s, key=%s, topic=%s, cache=%s)",
        settings.hedera_network,
        settings.hedera_account_id or "<none>",
        redact_secret(settings.hedera_private_key),
        settings.hedera_topic_id or "<none>",
        "redis" if cache else "off",
    )
    return Services(
        settings=settings,
        engine=engine,
        store=store,
        registrar=registrar,
        verifier=verifier,
        reconciler=reconciler,
        network=network,
        query=query,
        cache=cache,
    )
