"""
Slashwatch HTTP API

Read-only views over the results store and Prometheus metrics. Nothing
here talks to the chain; every response reflects the last completed cycle.
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

from . import __version__
from .metrics import MetricsRegistry
from .store import SlashingStore
from .types import RoundStatus


def create_app(store: SlashingStore, registry: Optional[MetricsRegistry] = None) -> FastAPI:
    app = FastAPI(
        title="Slashwatch",
        description="Slashing veto-window monitor.",
        version=__version__,
    )

    def require_network(network: str) -> None:
        if store.get_chain_position(network) is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown network: {network}")

    @app.get("/health")
    async def health():
        return {"ok": True, "networks": store.networks()}

    @app.get("/networks")
    async def networks():
        return {
            "networks": [
                {"name": name, "chain": store.get_chain_position(name).to_dict()}
                for name in store.networks()
            ]
        }

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics():
        if registry is None:
            return PlainTextResponse("", media_type="text/plain; version=0.0.4")
        return PlainTextResponse(registry.expose(), media_type="text/plain; version=0.0.4")

    @app.get("/{network}/detections")
    async def detections(
        network: str,
        actionable: bool = Query(False, description="Only rounds where a veto can still matter"),
        round_status: Optional[str] = Query(None, alias="status"),
    ):
        require_network(network)
        items = store.get_detections(network)
        if actionable:
            items = [d for d in items if d.status.is_actionable]
        if round_status is not None:
            try:
                wanted = RoundStatus(round_status)
            except ValueError:
                raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Invalid status: {round_status}")
            items = [d for d in items if d.status == wanted]
        return {"network": network, "detections": [d.to_dict() for d in items]}

    @app.get("/{network}/detections/{round_number}")
    async def detection(network: str, round_number: int):
        require_network(network)
        found = store.get_detection(network, round_number)
        if found is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, f"Round {round_number} not detected")
        return found.to_dict()

    @app.get("/{network}/chain")
    async def chain(network: str):
        require_network(network)
        return store.get_chain_position(network).to_dict()

    @app.get("/{network}/stats")
    async def stats(network: str):
        require_network(network)
        return {
            "stats": store.get_stats(network).to_dict(),
            "caches": {name: s.to_dict() for name, s in store.get_cache_stats(network).items()},
        }

    @app.get("/{network}/offenses")
    async def offenses(network: str):
        require_network(network)
        return {"network": network, "offenses": [o.to_dict() for o in store.get_offenses(network)]}

    return app
