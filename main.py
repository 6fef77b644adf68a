import json
import os
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from actions import INVALID_BODY, ActionDispatcher, fail, is_coupon_expired
from config import Settings, get_settings
from database import RecordStore, build_store
from log import get_logger, setup_logging
from schemas import BANNERS, CATEGORIES, COUPONS, PRODUCTS

settings = get_settings()
setup_logging(settings.log_dir, settings.log_level)
logger = get_logger("api")


def create_app(store: RecordStore = None, dispatcher: ActionDispatcher = None, app_settings: Settings = None) -> FastAPI:
    app_settings = app_settings or settings
    store = store or build_store(app_settings)

    app = FastAPI(title="Storefront API", version="3.0.0")
    app.state.settings = app_settings
    app.state.store = store
    app.state.dispatcher = dispatcher or ActionDispatcher(store, app_settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_dispatcher(request: Request) -> ActionDispatcher:
    return request.app.state.dispatcher


# --------------------- Read snapshot ---------------------

def _read_table(store: RecordStore, table, build) -> List[Any]:
    # One unreadable table must not take the whole snapshot down
    try:
        return build(store.find_all(table))
    except Exception:
        logger.warning("snapshot_table_failed", extra={"data": {"table": table.name}}, exc_info=True)
        return []


def storefront_snapshot(store: RecordStore, now: datetime) -> Dict[str, Any]:
    products = _read_table(store, PRODUCTS, lambda rows: [
        p.model_dump(by_alias=True) for p in rows if p.id
    ])
    categories = _read_table(store, CATEGORIES, lambda rows: [
        c.name.strip() for c in rows if c.name.strip()
    ])
    # Banners carry their flag for the caller to filter; coupons are filtered here
    banners = _read_table(store, BANNERS, lambda rows: [
        b.model_dump(by_alias=True) for b in rows if b.id
    ])
    coupons = _read_table(store, COUPONS, lambda rows: [
        {
            "code": c.code.strip().upper(),
            "discount": c.discount,
            "expiryDate": c.expiry_date,
            "minimumAmount": c.minimum_amount,
        }
        for c in rows
        if c.code and c.active and not is_coupon_expired(c, now)
    ])
    return {"products": products, "categories": categories, "banners": banners, "coupons": coupons}


# --------------------- Routes ---------------------

router = APIRouter()


@router.get("/")
def root():
    return {"message": "Storefront API is running"}


@router.get("/schema")
def get_schema():
    # Minimal schema surface for viewer
    from schemas import Order, Product, User
    return {
        "user": User.model_json_schema(),
        "product": Product.model_json_schema(),
        "order": Order.model_json_schema(),
    }


@router.get("/api")
def read_storefront(
    store: RecordStore = Depends(get_store),
    dispatcher: ActionDispatcher = Depends(get_dispatcher),
):
    return storefront_snapshot(store, dispatcher.now())


@router.post("/api")
async def write_action(request: Request, dispatcher: ActionDispatcher = Depends(get_dispatcher)):
    # The browser client posts text/plain, so parse the raw body ourselves
    try:
        payload = json.loads(await request.body())
    except (ValueError, UnicodeDecodeError):
        return fail(INVALID_BODY)
    return await run_in_threadpool(dispatcher.dispatch, payload)


@router.get("/test")
def test_store(store: RecordStore = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "store": "❌ Not Available",
        "store_backend": store.backend.name,
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "tables": {},
    }
    try:
        response["tables"] = store.describe()
        response["store"] = "✅ Connected & Working"
    except Exception as e:
        response["store"] = f"❌ Error: {str(e)[:50]}"
    return response


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.port))
    uvicorn.run(app, host="0.0.0.0", port=port)
