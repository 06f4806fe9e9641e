"""
Dashboard API for the tailor shop
- Account sign-up, sign-in, password reset and sign-out
- Order writes for customers and the tailor, inspiration photo uploads
- Per-viewer notification list backed by the order watcher
- WebSocket push of notification batches to the open dashboard
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    HTTPException,
    Query,
    Request,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..adapters.email_adapter import EmailAdapter
from ..adapters.order_feed import SupabaseOrderFeed
from ..config.settings import Settings, get_settings
from ..config.supabase_config import create_supabase_client
from ..core.dashboard import month_calendar, order_stats
from ..core.models import OrderDraft, Party, Viewer, is_terminal
from ..core.notifications import NotificationCenter, NotificationRecord
from ..core.order_differ import OrderNotificationReconciler
from .auth_service import AuthService
from .order_service import OrderService
from .order_watcher import OrderWatcher, WatcherRegistry
from .photo_storage import InspirationPhotoStore, PhotoUpload, normalize_photos


settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)


class StatusUpdate(BaseModel):
    status: str
    progress: Optional[int] = None


class ProgressUpdate(BaseModel):
    progress: int


class MeasurementsUpdate(BaseModel):
    measurements: Dict[str, Any]


class SavedMeasurements(BaseModel):
    garment_type: str
    measurements: Dict[str, Any]


class ManualOrderRequest(BaseModel):
    customer_id: str
    order: OrderDraft


class SignUpRequest(BaseModel):
    email: str
    password: str
    role: Party
    name: str
    phone: str
    business_name: Optional[str] = None


class SignInRequest(BaseModel):
    email: str
    password: str
    role: Party


class PasswordResetRequest(BaseModel):
    email: str


def build_watcher_factory(feed, settings: Settings):
    def factory(viewer: Viewer) -> OrderWatcher:
        reconciler = OrderNotificationReconciler(
            viewer.role,
            warning_days=settings.DUE_DATE_WARNING_DAYS,
            urgent_days=settings.DUE_DATE_URGENT_DAYS,
        )
        return OrderWatcher(
            viewer,
            feed,
            reconciler,
            NotificationCenter(max_size=settings.MAX_NOTIFICATIONS),
            reconnect_delay=settings.LISTENER_RECONNECT_DELAY_SEC,
        )
    return factory


async def build_services(settings: Settings) -> Dict[str, Any]:
    """Wire the services onto a shared Supabase client; auth gets its own"""
    client = await create_supabase_client(settings)
    feed = SupabaseOrderFeed(client)
    email_adapter = EmailAdapter(settings)
    # Sign-in stores a session on its client; keep that off the shared one
    auth_client = await create_supabase_client(settings)
    return {
        "client": client,
        "feed": feed,
        "orders": OrderService(client, email_adapter=email_adapter, max_photos=settings.MAX_INSPIRATION_PHOTOS),
        "auth": AuthService(auth_client),
        "photos": InspirationPhotoStore(client, settings),
        "watchers": WatcherRegistry(build_watcher_factory(feed, settings)),
    }


# FastAPI app
app = FastAPI(title="Tailor Ops Dashboard API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    if getattr(app.state, "services", None) is not None:
        return
    try:
        app.state.services = await build_services(settings)
        logging.info("✅ Tailor ops dashboard API startup completed")
    except Exception as e:
        logging.error(f"Failed to initialize services: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    services = getattr(app.state, "services", None)
    if services:
        await services["watchers"].stop_all()
        logging.info("👋 All order watchers stopped")


def get_services(request: Request) -> Dict[str, Any]:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


async def get_viewer(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Dict[str, Any] = Depends(get_services),
) -> Viewer:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    viewer = await services["auth"].get_viewer(credentials.credentials)
    if viewer is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return viewer


def require_tailor(viewer: Viewer = Depends(get_viewer)) -> Viewer:
    if viewer.role != Party.TAILOR:
        raise HTTPException(status_code=403, detail="Only the tailor can do this")
    return viewer


def require_customer(viewer: Viewer = Depends(get_viewer)) -> Viewer:
    if viewer.role != Party.CUSTOMER:
        raise HTTPException(status_code=403, detail="Only customers can do this")
    return viewer


def _result_or_error(result: Dict[str, Any]) -> Dict[str, Any]:
    if result.get("success"):
        return result
    status_code = 404 if result.get("code") in ("order_not_found", "customer_not_found", "photo_not_found") else 400
    raise HTTPException(status_code=status_code, detail=result.get("error"))


def _center_for(services: Dict[str, Any], viewer: Viewer) -> NotificationCenter:
    watcher = services["watchers"].get(viewer.user_id)
    if watcher is None:
        raise HTTPException(status_code=409, detail="No live order feed for this viewer")
    return watcher.notification_center


async def _load_orders(services: Dict[str, Any], viewer: Viewer) -> List[Dict[str, Any]]:
    watcher = services["watchers"].get(viewer.user_id)
    if watcher is not None and watcher.orders:
        return watcher.orders
    query = services["client"].table("orders").select("*")
    if viewer.role == Party.CUSTOMER:
        query = query.eq("customer_id", viewer.user_id)
    result = await query.order("created_at", desc=True).execute()
    return list(result.data or [])


@app.get("/health")
async def health_check(request: Request):
    services = getattr(request.app.state, "services", None)
    return {
        "ok": services is not None,
        "email": bool(services and services["orders"].email_adapter and services["orders"].email_adapter.enabled),
        "watchers": len(services["watchers"].watchers) if services else 0,
    }


# ===== AUTH =====

@app.post("/auth/signup")
async def sign_up(body: SignUpRequest, services=Depends(get_services)):
    profile = body.model_dump(include={"name", "phone", "business_name"})
    return _result_or_error(await services["auth"].sign_up(body.email, body.password, body.role, profile))


@app.post("/auth/login")
async def sign_in(body: SignInRequest, services=Depends(get_services)):
    result = await services["auth"].sign_in(body.email, body.password, body.role)
    if not result["success"]:
        raise HTTPException(status_code=401, detail=result["error"])
    return result


@app.post("/auth/reset-password")
async def reset_password(body: PasswordResetRequest, services=Depends(get_services)):
    return _result_or_error(await services["auth"].reset_password(body.email))


@app.post("/auth/logout")
async def sign_out(viewer: Viewer = Depends(get_viewer), services=Depends(get_services)):
    await services["watchers"].stop(viewer.user_id)
    return await services["auth"].sign_out()


# ===== NOTIFICATIONS =====

@app.get("/notifications")
async def list_notifications(viewer: Viewer = Depends(get_viewer), services=Depends(get_services)):
    return _center_for(services, viewer).to_dict()


@app.post("/notifications/read-all")
async def mark_notifications_read(viewer: Viewer = Depends(get_viewer), services=Depends(get_services)):
    center = _center_for(services, viewer)
    center.mark_all_read()
    return {"success": True, "unread_count": center.unread_count}


@app.delete("/notifications/{notification_id}")
async def dismiss_notification(
    notification_id: str, viewer: Viewer = Depends(get_viewer), services=Depends(get_services)
):
    if not _center_for(services, viewer).dismiss(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@app.delete("/notifications")
async def clear_notifications(viewer: Viewer = Depends(get_viewer), services=Depends(get_services)):
    _center_for(services, viewer).clear()
    return {"success": True}


# ===== ORDERS =====

@app.post("/orders")
async def place_order(draft: OrderDraft, viewer: Viewer = Depends(require_customer), services=Depends(get_services)):
    customer = await services["orders"].get_customer(viewer.user_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer profile not found")
    return _result_or_error(await services["orders"].create_order(customer, draft))


@app.put("/orders/{order_id}")
async def edit_order(
    order_id: str, draft: OrderDraft, viewer: Viewer = Depends(require_customer), services=Depends(get_services)
):
    result = await services["orders"].update_order_by_customer(order_id, draft, customer_id=viewer.user_id)
    return _result_or_error(result)


@app.post("/orders/manual")
async def place_manual_order(
    body: ManualOrderRequest, viewer: Viewer = Depends(require_tailor), services=Depends(get_services)
):
    customer = await services["orders"].get_customer(body.customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer profile not found")
    return _result_or_error(await services["orders"].create_manual_order(customer, body.order))


@app.post("/orders/{order_id}/photos")
async def upload_photos(
    order_id: str,
    files: List[UploadFile] = File(...),
    viewer: Viewer = Depends(require_customer),
    services=Depends(get_services),
):
    orders: OrderService = services["orders"]
    store: InspirationPhotoStore = services["photos"]
    order = _result_or_error(await orders.get_editable_order(order_id, customer_id=viewer.user_id))["data"]

    uploads = [PhotoUpload(f.filename or "photo", f.content_type or "", await f.read()) for f in files]
    existing = len(normalize_photos(order.get("inspiration_photos")))
    uploaded = _result_or_error(await store.upload(viewer.user_id, uploads, existing_count=existing))
    summary = {"skipped": uploaded["skipped"], "failed": uploaded["failed"]}
    if not uploaded["photos"]:
        return {"success": True, "order_id": order_id, "data": order, **summary}

    result = await orders.attach_photos(order_id, uploaded["photos"], customer_id=viewer.user_id)
    if not result["success"]:
        # Order changed under us; drop the orphaned objects
        await asyncio.gather(*(store.remove(photo["url"]) for photo in uploaded["photos"]))
    return {**_result_or_error(result), **summary}


@app.delete("/orders/{order_id}/photos")
async def remove_photo(
    order_id: str, url: str = Query(...), viewer: Viewer = Depends(require_customer), services=Depends(get_services)
):
    result = _result_or_error(await services["orders"].detach_photo(order_id, url, customer_id=viewer.user_id))
    result["storage_removed"] = await services["photos"].remove(url)
    return result


@app.put("/orders/{order_id}/status")
async def change_status(
    order_id: str, body: StatusUpdate, viewer: Viewer = Depends(require_tailor), services=Depends(get_services)
):
    result = _result_or_error(await services["orders"].update_status(order_id, body.status, body.progress))
    if is_terminal(result["data"].get("status")):
        watcher = services["watchers"].get(viewer.user_id)
        if watcher is not None:
            watcher.release_due_date(order_id)
    return result


@app.put("/orders/{order_id}/progress")
async def change_progress(
    order_id: str, body: ProgressUpdate, viewer: Viewer = Depends(require_tailor), services=Depends(get_services)
):
    return _result_or_error(await services["orders"].update_progress(order_id, body.progress))


@app.put("/orders/{order_id}/measurements")
async def change_measurements(
    order_id: str, body: MeasurementsUpdate, viewer: Viewer = Depends(require_tailor), services=Depends(get_services)
):
    return _result_or_error(await services["orders"].record_measurements(order_id, body.measurements))


# ===== CUSTOMER PROFILE =====

@app.put("/customers/me/measurements")
async def save_measurements(
    body: SavedMeasurements, viewer: Viewer = Depends(require_customer), services=Depends(get_services)
):
    result = await services["orders"].save_customer_measurements(viewer.user_id, body.garment_type, body.measurements)
    return _result_or_error(result)


# ===== DASHBOARD =====

@app.get("/dashboard/stats")
async def dashboard_stats(viewer: Viewer = Depends(require_tailor), services=Depends(get_services)):
    return order_stats(await _load_orders(services, viewer))


@app.get("/dashboard/calendar")
async def dashboard_calendar(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    viewer: Viewer = Depends(get_viewer),
    services=Depends(get_services),
):
    today = date.today()
    orders = await _load_orders(services, viewer)
    return month_calendar(orders, year or today.year, month or today.month, today)


# WebSocket endpoint for real-time notification pushes
@app.websocket("/ws/notifications")
async def notifications_websocket(websocket: WebSocket, token: str = Query("")):
    """Start the viewer's order watcher and push each notification batch"""
    services = getattr(websocket.app.state, "services", None)
    viewer = await services["auth"].get_viewer(token) if services and token else None
    if viewer is None:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    registry: WatcherRegistry = services["watchers"]
    outbox: asyncio.Queue = asyncio.Queue()

    def push(records: List[NotificationRecord]) -> None:
        outbox.put_nowait(records)

    watcher = await registry.start(viewer)
    watcher.add_listener(push)
    logging.info(f"👀 Dashboard connected for {viewer.role.value} {viewer.user_id}")

    async def send_batches():
        while True:
            try:
                records = await asyncio.wait_for(outbox.get(), timeout=30)
                await websocket.send_json({
                    "type": "notification_batch",
                    "data": {
                        "notifications": [r.to_dict() for r in records],
                        "unread_count": watcher.notification_center.unread_count,
                    },
                })
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "keepalive", "state": watcher.state.value})

    async def read_until_disconnect():
        # Clients only ping; this returns by raising WebSocketDisconnect
        while True:
            await websocket.receive_text()

    try:
        await websocket.send_json({"type": "notifications", "data": watcher.notification_center.to_dict()})
        tasks = [asyncio.ensure_future(send_batches()), asyncio.ensure_future(read_until_disconnect())]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logging.warning(f"WebSocket error: {error}")
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logging.warning(f"WebSocket error: {e}")
    finally:
        watcher.remove_listener(push)
        if registry.get(viewer.user_id) is watcher:
            await registry.stop(viewer.user_id)
        logging.info(f"👋 Dashboard disconnected for {viewer.user_id}")


# Basic logging setup
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tailor_ops.services.dashboard_api:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=False
    )
