"""FastAPI surface for the push worker."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from umrahgo import obs
from umrahgo.infra.errors import BackendUnavailableError, PayloadDecodeError

from .worker import PushWorker


class ClickRequest(BaseModel):
	action: Optional[str] = None


class ClientRequest(BaseModel):
	url: str
	focused: bool = False


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		return JSONResponse(status_code=422, content={"detail": "validation_error", "errors": exc.errors()})

	@app.exception_handler(PayloadDecodeError)
	async def decode_exc_handler(request: Request, exc: PayloadDecodeError):  # type: ignore[override]
		return JSONResponse(status_code=400, content={"detail": exc.detail})

	@app.exception_handler(BackendUnavailableError)
	async def upstream_exc_handler(request: Request, exc: BackendUnavailableError):  # type: ignore[override]
		return JSONResponse(status_code=502, content={"detail": "upstream_unavailable"})


def create_app(worker: PushWorker | None = None) -> FastAPI:
	@asynccontextmanager
	async def lifespan(app: FastAPI):
		obs.init()
		current: PushWorker = app.state.worker
		await current.install()
		await current.activate()
		try:
			yield
		finally:
			await current.aclose()

	app = FastAPI(title="UmrahGo Push Worker", lifespan=lifespan)
	app.state.worker = worker or PushWorker()
	install_error_handlers(app)

	@app.post("/push", status_code=201)
	async def receive_push(request: Request) -> dict:
		notification = await request.app.state.worker.handle_push(await request.body())
		return notification.to_dict()

	@app.post("/notifications/{tag}/click")
	async def click_notification(tag: str, request: Request, payload: Optional[ClickRequest] = None) -> dict:
		action = payload.action if payload else None
		client = await request.app.state.worker.handle_click(tag, action)
		return {"action": action or "default", "client": client.to_dict() if client else None}

	@app.get("/notifications")
	async def list_notifications(request: Request) -> dict:
		items = request.app.state.worker.display.visible()
		return {"notifications": [item.to_dict() for item in items]}

	@app.post("/clients", status_code=201)
	async def register_client(payload: ClientRequest, request: Request) -> dict:
		client = request.app.state.worker.clients.register(payload.url, focused=payload.focused)
		return client.to_dict()

	@app.get("/clients")
	async def list_clients(request: Request) -> dict:
		return {"clients": [client.to_dict() for client in request.app.state.worker.clients.match_all()]}

	@app.get("/worker")
	async def worker_state(request: Request) -> dict:
		current: PushWorker = request.app.state.worker
		return {
			"state": current.state.value,
			"cache_name": current.cache.cache_name,
			"cached_assets": list(current.cached_assets),
		}

	@app.get("/{path:path}")
	async def fetch_asset(path: str, request: Request) -> Response:
		target = "/" + path
		if request.url.query:
			target = f"{target}?{request.url.query}"
		response, hit = await request.app.state.worker.fetch(target)
		return Response(
			content=response.body,
			status_code=response.status_code,
			media_type=response.content_type,
			headers={"X-Cache": "hit" if hit else "miss"},
		)

	return app


__all__ = ["create_app", "install_error_handlers"]
