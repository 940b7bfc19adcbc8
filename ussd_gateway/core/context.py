from dataclasses import dataclass

from ussd_gateway.backend.client import ServiceGateway
from ussd_gateway.core.menu_graph import MenuGraph
from ussd_gateway.core.menus import build_graph
from ussd_gateway.core.validation import Validator
from ussd_gateway.observability.logging import log
from ussd_gateway.observability.metrics import Metrics
from ussd_gateway.settings import Settings, settings as default_settings
from ussd_gateway.store.redis_conn import get_async_redis
from ussd_gateway.store.session_repo import MemorySessionStore, RedisSessionStore, SessionStore


@dataclass
class GatewayContext:
    """Everything a request needs, built once per process."""
    settings: Settings
    graph: MenuGraph
    validator: Validator
    store: SessionStore
    gateway: ServiceGateway
    metrics: Metrics

    async def aclose(self) -> None:
        await self.gateway.aclose()
        redis = getattr(self.store, "redis", None)
        if redis is not None:
            await redis.aclose()


def build_context(cfg: Settings = None) -> GatewayContext:
    cfg = cfg or default_settings
    validator = Validator()
    graph = build_graph(validator)

    if cfg.SESSION_BACKEND == "memory":
        store: SessionStore = MemorySessionStore()
        metrics = Metrics(redis=None, enabled=cfg.METRICS_ENABLED)
    else:
        redis = get_async_redis()
        store = RedisSessionStore(redis)
        metrics = Metrics(redis=redis, enabled=cfg.METRICS_ENABLED)

    gateway = ServiceGateway(metrics=metrics)
    log(event="graph_loaded", nodes=len(graph), entry=graph.entry, sessionBackend=cfg.SESSION_BACKEND)
    return GatewayContext(
        settings=cfg,
        graph=graph,
        validator=validator,
        store=store,
        gateway=gateway,
        metrics=metrics,
    )
