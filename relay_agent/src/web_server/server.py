# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""FastAPI server for inspecting stored jobs, with live updates over websockets."""

import asyncio
import logging

from typing import Any, Dict, List, Optional, Set
from pathlib import Path
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from ..config import settings
from ..callgraph.reporting import _format_duration
from ..io.formatting import format_name
from ..storage.job_store import JobStore
from ..storage.models import StoredJob

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class JobNotifier:
    """
    Websocket subscribers per job id.

    ``notify`` is the push channel handed to ``JobStore.set_notifier``: every
    event is sent to the job's subscribers, sockets that fail are dropped, and
    a ``job_complete`` event closes the remaining ones.
    """

    _instance = None
    _lock = asyncio.Lock()

    def __init__(self):
        self.subscribers: Dict[str, Set[WebSocket]] = {}

    @classmethod
    async def get_instance(cls) -> "JobNotifier":
        async with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def subscribe(self, job_id: str, websocket: WebSocket) -> None:
        self.subscribers.setdefault(job_id, set()).add(websocket)

    def unsubscribe(self, job_id: str, websocket: WebSocket) -> None:
        sockets = self.subscribers.get(job_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.subscribers[job_id]

    async def notify(self, job_id: str, event: Dict[str, Any]) -> None:
        sockets = set(self.subscribers.get(job_id, ()))
        for websocket in sockets:
            try:
                await websocket.send_json(event)
            except Exception as e:
                logger.error(f"Error sending to websocket for job {job_id}: {e}")
                self.unsubscribe(job_id, websocket)

        if event.get("type") == "job_complete":
            for websocket in set(self.subscribers.pop(job_id, ())):
                try:
                    await websocket.close()
                except Exception as e:
                    logger.debug(f"Error closing websocket for job {job_id}: {e}")


# Server setup
app = FastAPI(title="Job Inspector")

# Enable CORS for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

templates_path = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=str(templates_path))
templates.env.filters["duration"] = _format_duration
templates.env.filters["display_name"] = format_name

_store: Optional[JobStore] = None


def get_store() -> JobStore:
    global _store
    if _store is None:
        _store = JobStore(settings.JOBS_DIR)
    return _store


def set_store(store: Optional[JobStore]) -> None:
    global _store
    _store = store


def _load_or_404(job_id: str) -> StoredJob:
    job = get_store().load_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job


@app.get("/", response_class=HTMLResponse)
@app.get("/jobs", response_class=HTMLResponse)
async def jobs_page(request: Request, limit: int = 50):
    """List recent jobs."""
    jobs = get_store().list_jobs(limit)
    return templates.TemplateResponse(request, "jobs.html", {"jobs": jobs})


@app.get("/jobs/{job_id}", response_class=HTMLResponse)
async def job_page(request: Request, job_id: str):
    """Serve the job detail view; it subscribes to live updates while running."""
    job = _load_or_404(job_id)
    return templates.TemplateResponse(request, "job.html", {"job": job})


@app.get("/api/jobs", response_model=List[StoredJob])
async def list_jobs(limit: int = 50):
    return get_store().list_jobs(limit)


@app.get("/api/jobs/{job_id}", response_model=StoredJob)
async def get_job(job_id: str):
    return _load_or_404(job_id)


@app.websocket("/ws/jobs/{job_id}")
async def job_updates(websocket: WebSocket, job_id: str):
    """Push ``block_update`` and ``job_complete`` events for one job."""
    await websocket.accept()
    job = get_store().load_job(job_id)
    if job is not None and job.status != "running":
        await websocket.send_json({"type": "job_complete", "status": job.status})
        await websocket.close()
        return

    notifier = await JobNotifier.get_instance()
    notifier.subscribe(job_id, websocket)
    try:
        while True:
            await websocket.receive_text()  # Keep connection alive
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        notifier.unsubscribe(job_id, websocket)


class UvicornServer(uvicorn.Server):
    """Customized uvicorn server with graceful shutdown."""

    async def startup(self, sockets: Optional[List] = None) -> None:
        """
        Override startup to handle it more gracefully.
        """
        try:
            await super().startup(sockets)
        except Exception as e:
            logger.warning(f"Error during server startup: {e}")

    async def shutdown(self, sockets: Optional[List] = None) -> None:
        """
        Override shutdown to handle it more gracefully.
        """
        try:
            await super().shutdown(sockets)
        except Exception as e:
            logger.warning(f"Error during server shutdown: {e}")


async def run_server(store: Optional[JobStore] = None, host: Optional[str] = None, port: Optional[int] = None):
    """Run the FastAPI server using uvicorn with graceful shutdown.

    The store's live updates are routed to connected websockets.
    """
    if store is not None:
        set_store(store)
    notifier = await JobNotifier.get_instance()
    get_store().set_notifier(notifier.notify)

    config = uvicorn.Config(
        app,
        host=host or settings.WEB_HOST,
        port=port or settings.WEB_PORT,
        log_level="error",
    )
    server = UvicornServer(config=config)

    try:
        await server.serve()
    except asyncio.CancelledError:
        logger.info("Web server task cancelled, shutting down gracefully...")
        await server.shutdown()
    except Exception as e:
        logger.error(f"Error running web server: {e}")
        raise
