# server.py
"""
HTTP control surface for the wallet buy monitor.

  POST   /api/monitor   {"wallets": [...]}  -> (re)start monitoring
  GET    /api/monitor                       -> feed, newest first
  DELETE /api/monitor                       -> stop monitoring
  GET    /health
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import config
from tracker.scheduler import ConfigurationError, MonitorScheduler
from utils import get_logger, setup_logging

log = get_logger("server")


def create_app(scheduler: Optional[MonitorScheduler] = None) -> FastAPI:
    if scheduler is None:
        from monitor import build_scheduler
        scheduler = build_scheduler()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Resume the default watchlist, if one is configured
        if config.WATCH_WALLETS:
            try:
                await asyncio.to_thread(scheduler.start, config.WATCH_WALLETS)
            except ConfigurationError as e:
                log.warning(f"WATCH_WALLETS ignored: {e}")
        try:
            yield
        finally:
            scheduler.stop()

    app = FastAPI(lifespan=lifespan)
    app.state.scheduler = scheduler

    @app.get("/health")
    def health():
        return {"ok": True, **scheduler.status()}

    @app.post("/api/monitor")
    async def start_monitoring(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "Body must be JSON"}, status_code=400)
        wallets = payload.get("wallets", []) if isinstance(payload, dict) else None

        try:
            # start() polls every wallet before returning; keep it off the event loop
            result = await asyncio.to_thread(scheduler.start, wallets)
        except ConfigurationError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        except Exception:
            log.error("Error in POST handler", exc_info=True)
            return JSONResponse({"error": "Failed to start monitoring"}, status_code=500)

        if result["status"] == "superseded":
            message = "Start superseded by a newer request"
        else:
            message = "Monitoring started"
        return {
            "message": message,
            "status": result["status"],
            "wallets": result["trackedWallets"],
        }

    @app.get("/api/monitor")
    def get_feed() -> List[Dict[str, Any]]:
        return [ev.to_dict() for ev in scheduler.read_feed()]

    @app.delete("/api/monitor")
    def stop_monitoring():
        scheduler.stop()
        return scheduler.status()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    setup_logging()
    uvicorn.run(app, host=config.SERVER_HOST, port=config.SERVER_PORT)
