"""Starlette app exposing the connector websocket, served with uvicorn."""

import logging

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..messages import new_id
from .manager import ConnectorManager

logger = logging.getLogger(__name__)


class WebSocketChannel:
	"""Channel over one accepted websocket."""

	def __init__(self, websocket: WebSocket):
		self.websocket = websocket
		self.id = new_id()

	async def send_json(self, data: dict) -> None:
		try:
			await self.websocket.send_json(data)
		except WebSocketDisconnect as e:
			raise ConnectionError(f"websocket closed ({e.code})") from e

	async def close(self) -> None:
		try:
			await self.websocket.close()
		except RuntimeError as e:
			logger.debug(f"Websocket {self.id} already closed: {e}")


def get_connector_manager(request: Request) -> ConnectorManager:
	return request.app.state.connector_manager


async def health(request: Request) -> JSONResponse:
	manager = get_connector_manager(request)
	return JSONResponse({
		"status": "ok",
		"connectors": len(manager.connectors),
		"projects": manager.project_manager.list_projects(),
	})


async def connector_endpoint(websocket: WebSocket) -> None:
	"""One websocket is one connector channel; messages are applied in arrival order."""
	manager: ConnectorManager = websocket.app.state.connector_manager
	await websocket.accept()
	channel = WebSocketChannel(websocket)
	logger.info(f"Connector channel {channel.id} connected")
	try:
		while True:
			text = await websocket.receive_text()
			await manager.process_message(channel, text)
	except WebSocketDisconnect:
		logger.info(f"Connector channel {channel.id} disconnected")
	finally:
		await manager.disconnect(channel)


def build_app(connector_manager: ConnectorManager) -> Starlette:
	"""Build and return the Starlette ASGI app."""
	routes = [
		Route("/health", health),
		WebSocketRoute("/connector", connector_endpoint),
	]

	app = Starlette(routes=routes)
	app.state.connector_manager = connector_manager
	return app


async def serve_connector(
	connector_manager: ConnectorManager,
	host: str = "127.0.0.1",
	port: int = 8421,
	log_level: str = "warning",
) -> None:
	"""Run the connector server until cancelled."""
	import uvicorn

	app = build_app(connector_manager)
	config = uvicorn.Config(app, host=host, port=port, log_level=log_level.lower())
	server = uvicorn.Server(config)
	logger.info(f"Connector server listening on ws://{host}:{port}/connector")
	await server.serve()
