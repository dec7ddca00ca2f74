import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import (
    Body,
    Depends,
    FastAPI,
    Header,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from gestion_pedidos import config, database_sql
from gestion_pedidos.auth import Caller, JWTAuthorizer, caller_from_header
from gestion_pedidos.broadcaster import Broadcaster, QueueObserver
from gestion_pedidos.database_sql import get_db
from gestion_pedidos.errors import InvalidRequestError, NotAuthorizedError, OrderError
from gestion_pedidos.schemas import StatusUpdateIn
from gestion_pedidos.service import OrderLifecycleService
from gestion_pedidos.store import OrderStore

# configure basic logging to stdout so container logs show lifecycle events
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("gestion_pedidos")

app = FastAPI(title="Gestion de Pedidos API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

broadcaster = Broadcaster()
authorizer = JWTAuthorizer()


def get_broadcaster() -> Broadcaster:
    return broadcaster


def get_authorizer():
    return authorizer


def get_service(
    db: Session = Depends(get_db), bus: Broadcaster = Depends(get_broadcaster)
) -> OrderLifecycleService:
    return OrderLifecycleService(OrderStore(db), bus)


def require_office(
    authorization: Optional[str] = Header(None),
    is_authorized=Depends(get_authorizer),
) -> Caller:
    """Dependency that raises unless the bearer token belongs to office staff."""
    caller = caller_from_header(authorization)
    if not is_authorized(caller):
        raise NotAuthorizedError()
    return caller


@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    error = InvalidRequestError("; ".join(problems) or None)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.on_event("startup")
def startup():
    if database_sql.create_db_and_tables():
        logger.info("order tables ready")
    else:
        # keep serving; requests will answer 503 until the database is back
        logger.error("could not create order tables, database unreachable")


@app.get("/")
def read_root():
    return {"message": "Servicio de gestion de pedidos en funcionamiento."}


@app.get("/health")
def health_check(
    db: Session = Depends(get_db), bus: Broadcaster = Depends(get_broadcaster)
):
    try:
        db.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.warning("health check could not reach database: %s", e)
        database = "disconnected"
    return {
        "status": "ok" if database == "connected" else "warning",
        "database": database,
        "observers": len(bus.members(config.ADMIN_ROOM)),
    }


# PUBLIC: customers can only create orders
@app.post("/api/orders", status_code=201)
def create_order(
    payload: Dict[str, Any] = Body(...),
    service: OrderLifecycleService = Depends(get_service),
):
    summary = service.submit(payload)
    return {
        "success": True,
        "message": "Order placed successfully! Our team will contact you shortly.",
        "data": summary.to_payload(),
    }


@app.get("/api/orders")
def list_orders(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=500),
    service: OrderLifecycleService = Depends(get_service),
    _office: Caller = Depends(require_office),
):
    result = service.list(status=status, page=page, page_size=limit)
    return {
        "success": True,
        "data": result.orders,
        "pagination": result.pagination.model_dump(),
    }


@app.get("/api/orders/stats")
def order_stats(
    service: OrderLifecycleService = Depends(get_service),
    _office: Caller = Depends(require_office),
):
    return {"success": True, "data": service.compute_statistics().to_payload()}


@app.get("/api/orders/search")
def search_orders(
    q: Optional[str] = None,
    phone: Optional[str] = None,
    service: OrderLifecycleService = Depends(get_service),
    _office: Caller = Depends(require_office),
):
    return {"success": True, "data": service.search(q, phone=phone)}


@app.get("/api/orders/{order_id}")
def get_order(
    order_id: str,
    service: OrderLifecycleService = Depends(get_service),
    _office: Caller = Depends(require_office),
):
    return {"success": True, "data": service.get(order_id)}


@app.put("/api/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    body: StatusUpdateIn,
    service: OrderLifecycleService = Depends(get_service),
    _office: Caller = Depends(require_office),
):
    order = service.transition_status(
        order_id, body.status, admin=body, expected_version=body.expected_version
    )
    return {
        "success": True,
        "message": "Order status updated successfully",
        "data": order,
    }


@app.delete("/api/orders/{order_id}")
def delete_order(
    order_id: str,
    service: OrderLifecycleService = Depends(get_service),
    _office: Caller = Depends(require_office),
):
    service.delete(order_id)
    return {"success": True, "message": "Order deleted successfully"}


async def _pump(websocket: WebSocket, observer: QueueObserver):
    while True:
        message = await observer.get()
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.debug("admin socket send failed, stopping pump: %s", e)
            return


@app.websocket("/ws/admin")
async def admin_socket(
    websocket: WebSocket,
    token: Optional[str] = None,
    bus: Broadcaster = Depends(get_broadcaster),
    is_authorized=Depends(get_authorizer),
):
    """Office dashboard feed.

    The client must send ``{"action": "join"}`` before any event is pushed;
    ``{"action": "leave"}`` stops the feed without closing the socket.
    """
    await websocket.accept()
    room = config.ADMIN_ROOM
    observer = None
    pump = None
    try:
        while True:
            try:
                msg = await websocket.receive_json()
            except ValueError:
                continue
            action = msg.get("action") if isinstance(msg, dict) else None
            if action == "join":
                if observer is None:
                    if not is_authorized(Caller(token=token or msg.get("token"))):
                        await websocket.send_json(
                            {"event": "error", "message": NotAuthorizedError.default_message}
                        )
                        await websocket.close(code=1008)
                        return
                    observer = QueueObserver(
                        asyncio.get_running_loop(), config.OBSERVER_QUEUE_SIZE
                    )
                    pump = asyncio.create_task(_pump(websocket, observer))
                # the ack is queued before joining so it precedes every event
                observer.offer({"event": "joined", "room": room})
                bus.join(room, observer)
            elif action == "leave" and observer is not None:
                bus.leave(room, observer)
                observer.offer({"event": "left", "room": room})
    except WebSocketDisconnect:
        pass
    finally:
        if observer is not None:
            bus.leave(room, observer)
        if pump is not None:
            pump.cancel()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
