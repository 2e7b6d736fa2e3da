import json
import logging
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple, Type, TypeVar
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from database import BANNERS, KINDS, PRODUCTS, Store, create_store
from pricing import order_total
from schemas import (
    BannerCreate,
    BannerOut,
    BannerUpdate,
    LoginInput,
    LoginResponse,
    OrderCreate,
    OrderOut,
    OrderStatusUpdate,
    OrderUpdate,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    ReviewIn,
    ReviewOut,
)
from uploads import DiskImageStore, ImageStore, create_image_store

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

router = APIRouter()


# -------------------------
# Utilities
# -------------------------

def get_store(request: Request) -> Store:
    return request.app.state.store


def get_images(request: Request) -> ImageStore:
    return request.app.state.images


def _body_error(msg: str):
    return RequestValidationError([{"type": "body", "loc": ("body",), "msg": msg, "input": None}])


async def read_command(request: Request, model: Type[M]) -> Tuple[M, Optional[UploadFile]]:
    """Build a command from a multipart/urlencoded form or a JSON body.

    Empty strings count as "not supplied". Returns the validated command and
    the uploaded ``image`` file, if any.
    """
    content_type = request.headers.get("content-type", "")
    upload = None
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        data = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == "image" and value.filename:
                    upload = value
                continue
            data[key] = value
    else:
        raw = await request.body()
        try:
            data = json.loads(raw) if raw else {}
        except ValueError:
            raise _body_error("Invalid JSON body")
        if not isinstance(data, dict):
            raise _body_error("Request body must be a JSON object")

    data = {k: v for k, v in data.items() if v is not None and v != ""}
    try:
        command = model.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False))
    return command, upload


def changes_from(command: BaseModel) -> dict:
    return command.model_dump(exclude_unset=True, exclude_none=True)


def present_image(images: ImageStore, record: dict) -> dict:
    return {**record, "image_url": images.resolve(record.get("image"))}


# -------------------------
# Error responses
# -------------------------

def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p != "body"]
    return parts[0] if parts else "body"


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    details = {}
    for err in errors:
        details.setdefault(_field_name(err.get("loc", ())), err.get("msg", "Invalid value"))
    if any(err.get("type") == "missing" for err in errors):
        message = "Required fields missing"
    elif errors:
        message = errors[0].get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content=jsonable_encoder({"error": message, "details": details}))


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# -------------------------
# Auth (Admin)
# -------------------------

class AdminSessions:
    """Admin session tokens with their expiry, owned by one app instance."""

    def __init__(self, ttl_hours: int = 24):
        self.ttl = timedelta(hours=ttl_hours)
        self._expiry = {}
        self._lock = threading.Lock()

    def open(self) -> Tuple[str, datetime]:
        token = uuid4().hex
        expires_at = datetime.now(timezone.utc) + self.ttl
        with self._lock:
            self._expiry[token] = expires_at
        return token, expires_at

    def expires_at(self, token: str) -> Optional[datetime]:
        with self._lock:
            return self._expiry.get(token)

    def close(self, token: str) -> bool:
        with self._lock:
            return self._expiry.pop(token, None) is not None


def require_admin(request: Request, x_admin_token: Optional[str] = Header(None)) -> str:
    if not x_admin_token:
        raise HTTPException(status_code=401, detail="Missing admin token")
    sessions = request.app.state.admin_sessions
    expires_at = sessions.expires_at(x_admin_token)
    if expires_at is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    if expires_at <= datetime.now(timezone.utc):
        sessions.close(x_admin_token)
        raise HTTPException(status_code=401, detail="Session expired")
    return x_admin_token


@router.post("/api/admin/login", response_model=LoginResponse)
async def admin_login(request: Request):
    command, _ = await read_command(request, LoginInput)
    if command.username != config.ADMIN_USERNAME or command.password != config.ADMIN_PASSWORD:
        logger.warning("Rejected admin login for %r", command.username)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token, expires_at = request.app.state.admin_sessions.open()
    logger.info("Admin session opened, expires %s", expires_at.isoformat())
    return LoginResponse(token=token, expires_at=expires_at)


@router.post("/api/admin/logout")
def admin_logout(request: Request, token: str = Depends(require_admin)):
    request.app.state.admin_sessions.close(token)
    return {"success": True}


# -------------------------
# Health & test
# -------------------------

@router.get("/")
def read_root():
    return {"message": "Storefront backend running"}


@router.get("/api/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/test")
def test_database(store: Store = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "storage_backend": store.name,
        "connection_status": "Not Connected",
        "counts": {},
    }
    try:
        response["counts"] = {kind: store.count(kind) for kind in KINDS}
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.exception("Storage check failed")
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# -------------------------
# Products
# -------------------------

@router.get("/api/products", response_model=List[ProductOut])
def list_products(store: Store = Depends(get_store), images: ImageStore = Depends(get_images)):
    return [present_image(images, p) for p in store.list_products()]


@router.get("/api/products/{id}", response_model=ProductOut)
def get_product(id: str, store: Store = Depends(get_store), images: ImageStore = Depends(get_images)):
    product = store.get_product(id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return present_image(images, product)


@router.post("/api/products", response_model=ProductOut, status_code=201)
async def create_product(
    request: Request, store: Store = Depends(get_store), images: ImageStore = Depends(get_images)
):
    command, upload = await read_command(request, ProductCreate)
    data = command.model_dump()
    image_url = data.pop("image_url", None)
    data["image"] = await images.save(upload) if upload else image_url
    product = await run_in_threadpool(store.create_product, data)
    logger.info("Created product %s (%s)", product["id"], product["title"])
    return present_image(images, product)


@router.put("/api/products/{id}", response_model=ProductOut)
async def update_product(
    id: str,
    request: Request,
    store: Store = Depends(get_store),
    images: ImageStore = Depends(get_images),
):
    command, upload = await read_command(request, ProductUpdate)
    changes = changes_from(command)
    image_url = changes.pop("image_url", None)
    if not changes and not upload and not image_url:
        raise HTTPException(status_code=400, detail="No fields to update")
    existing = await run_in_threadpool(store.get_product, id)
    if not existing:
        raise HTTPException(status_code=404, detail="Product not found")
    if upload:
        changes["image"] = await images.save(upload)
    elif image_url:
        changes["image"] = image_url
    product = await run_in_threadpool(store.update_product, id, changes)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if "image" in changes and existing.get("image") != changes["image"]:
        await run_in_threadpool(images.delete, existing.get("image"))
    return present_image(images, product)


@router.delete("/api/products/{id}")
def delete_product(id: str, store: Store = Depends(get_store), images: ImageStore = Depends(get_images)):
    product = store.delete_product(id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    images.delete(product.get("image"))
    logger.info("Deleted product %s", id)
    return {"success": True}


# -------------------------
# Orders
# -------------------------

@router.get("/api/orders", response_model=List[OrderOut])
def list_orders(store: Store = Depends(get_store)):
    return store.list_orders()


@router.get("/api/orders/{id}", response_model=OrderOut)
def get_order(id: str, store: Store = Depends(get_store)):
    order = store.get_order(id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/api/orders", response_model=OrderOut, status_code=201)
async def create_order(request: Request, store: Store = Depends(get_store)):
    command, _ = await read_command(request, OrderCreate)
    product = await run_in_threadpool(store.get_product, command.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    data = command.model_dump()
    data["product_title"] = product["title"]
    data["total_price"] = order_total(product["price"], product["discount"], command.quantity)
    order = await run_in_threadpool(store.create_order, data)
    logger.info("Created order %s for product %s", order["id"], order["product_id"])
    return order


@router.put("/api/orders/{id}/status", response_model=OrderOut)
async def update_order_status(id: str, request: Request, store: Store = Depends(get_store)):
    command, _ = await read_command(request, OrderStatusUpdate)
    order = await run_in_threadpool(store.update_order, id, {"status": command.status})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.put("/api/orders/{id}", response_model=OrderOut)
async def update_order(id: str, request: Request, store: Store = Depends(get_store)):
    command, _ = await read_command(request, OrderUpdate)
    changes = changes_from(command)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")
    order = await run_in_threadpool(store.get_order, id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if "product_id" in changes or "quantity" in changes:
        product = await run_in_threadpool(store.get_product, changes.get("product_id", order["product_id"]))
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        quantity = changes.get("quantity", order["quantity"])
        changes["product_title"] = product["title"]
        changes["total_price"] = order_total(product["price"], product["discount"], quantity)
    order = await run_in_threadpool(store.update_order, id, changes)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.delete("/api/orders/{id}")
def delete_order(id: str, store: Store = Depends(get_store)):
    if not store.delete_order(id):
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info("Deleted order %s", id)
    return {"success": True}


# -------------------------
# Banners
# -------------------------

@router.get("/api/banners", response_model=List[BannerOut])
def list_banners(store: Store = Depends(get_store), images: ImageStore = Depends(get_images)):
    return [present_image(images, b) for b in store.list_banners()]


@router.get("/api/banners/{id}", response_model=BannerOut)
def get_banner(id: str, store: Store = Depends(get_store), images: ImageStore = Depends(get_images)):
    banner = store.get_banner(id)
    if not banner:
        raise HTTPException(status_code=404, detail="Banner not found")
    return present_image(images, banner)


@router.post("/api/banners", response_model=BannerOut, status_code=201)
async def create_banner(
    request: Request, store: Store = Depends(get_store), images: ImageStore = Depends(get_images)
):
    command, upload = await read_command(request, BannerCreate)
    data = command.model_dump()
    image_url = data.pop("image_url", None)
    if not upload and not image_url:
        raise HTTPException(status_code=400, detail="Please provide either an image file or image URL")
    data["image"] = await images.save(upload) if upload else image_url
    banner = await run_in_threadpool(store.create_banner, data)
    logger.info("Created banner %s (%s)", banner["id"], banner["title"])
    return present_image(images, banner)


@router.put("/api/banners/{id}", response_model=BannerOut)
async def update_banner(
    id: str,
    request: Request,
    store: Store = Depends(get_store),
    images: ImageStore = Depends(get_images),
):
    command, upload = await read_command(request, BannerUpdate)
    changes = changes_from(command)
    image_url = changes.pop("image_url", None)
    if not changes and not upload and not image_url:
        raise HTTPException(status_code=400, detail="No fields to update")
    existing = await run_in_threadpool(store.get_banner, id)
    if not existing:
        raise HTTPException(status_code=404, detail="Banner not found")
    if upload:
        changes["image"] = await images.save(upload)
    elif image_url:
        changes["image"] = image_url
    banner = await run_in_threadpool(store.update_banner, id, changes)
    if not banner:
        raise HTTPException(status_code=404, detail="Banner not found")
    if "image" in changes and existing.get("image") != changes["image"]:
        await run_in_threadpool(images.delete, existing.get("image"))
    return present_image(images, banner)


@router.delete("/api/banners/{id}")
def delete_banner(id: str, store: Store = Depends(get_store), images: ImageStore = Depends(get_images)):
    banner = store.delete_banner(id)
    if not banner:
        raise HTTPException(status_code=404, detail="Banner not found")
    images.delete(banner.get("image"))
    logger.info("Deleted banner %s", id)
    return {"success": True}


# -------------------------
# Reviews
# -------------------------

@router.get("/api/reviews", response_model=List[ReviewOut])
def list_reviews(store: Store = Depends(get_store)):
    return store.list_reviews()


@router.post("/api/reviews", response_model=ReviewOut, status_code=201)
async def create_review(request: Request, store: Store = Depends(get_store)):
    command, _ = await read_command(request, ReviewIn)
    review = await run_in_threadpool(store.create_review, command.model_dump())
    logger.info("Created review %s (rating %s)", review["id"], review["rating"])
    return review


@router.put("/api/reviews/{id}", response_model=ReviewOut)
async def update_review(id: str, request: Request, store: Store = Depends(get_store)):
    command, _ = await read_command(request, ReviewIn)
    review = await run_in_threadpool(store.update_review, id, command.model_dump())
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    return review


@router.delete("/api/reviews/{id}")
def delete_review(id: str, store: Store = Depends(get_store)):
    if not store.delete_review(id):
        raise HTTPException(status_code=404, detail="Review not found")
    logger.info("Deleted review %s", id)
    return {"success": True}


# -------------------------
# Seed demo data
# -------------------------

SAMPLE_PRODUCT = {
    "title": "Syp. Chylosin-DS 450ml",
    "description": "Herbal tonic for appetite, liver weakness and digestion.",
    "price": Decimal("6000"),
    "discount": 10,
    "features": [
        "Made from natural ingredients",
        "No side effects",
        "Effective for liver conditions",
        "Improves appetite",
        "Aids digestion",
    ],
    "image": "https://www.prachinebangla.com/storage/app/public/product/2024-10-05-6701076548fd0.webp",
}

SAMPLE_BANNER = {
    "title": "Premium Headphones",
    "description": "Special headphones with high quality sound.",
    "price": Decimal("5000"),
    "discount": 5,
    "image": "https://www.prachinebangla.com/storage/app/public/product/2024-01-15-65a4e9f5c8f9f.jpg",
    "link": "https://www.prachinebangla.com/product/65a4e9f5c8f9f",
}


def seed_sample_data(store: Store) -> dict:
    seeded = {PRODUCTS: False, BANNERS: False}
    if store.count(PRODUCTS) == 0:
        store.create_product(dict(SAMPLE_PRODUCT))
        seeded[PRODUCTS] = True
    if store.count(BANNERS) == 0:
        store.create_banner(dict(SAMPLE_BANNER))
        seeded[BANNERS] = True
    if any(seeded.values()):
        logger.info("Inserted sample data: %s", seeded)
    return seeded


# -------------------------
# Application
# -------------------------

def create_app(
    store: Optional[Store] = None,
    images: Optional[ImageStore] = None,
    seed: Optional[bool] = None,
) -> FastAPI:
    """Build the API around a store and an image store.

    Whatever is not passed in is opened from config when the app starts up,
    so building the app touches neither the database nor the upload
    directory. A store opened that way is closed again on shutdown.
    """
    seed = config.SEED_SAMPLE_DATA if seed is None else seed

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_store = app.state.store is None
        if owns_store:
            app.state.store = create_store()
        if app.state.images is None:
            app.state.images = create_image_store()
        if seed:
            await run_in_threadpool(seed_sample_data, app.state.store)
        logger.info("Storefront API ready (storage=%s)", app.state.store.name)
        try:
            yield
        finally:
            if owns_store:
                app.state.store.close()
                app.state.store = None

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.store = store
    app.state.images = images
    app.state.admin_sessions = AdminSessions(config.ADMIN_SESSION_TTL_HOURS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(router)
    if isinstance(images, DiskImageStore):
        upload_dir = str(images.upload_dir)
    elif images is None and config.IMAGE_STORAGE == "disk":
        upload_dir = config.UPLOAD_DIR
    else:
        upload_dir = None
    if upload_dir is not None:
        # the directory is created at startup, before the first request
        app.mount("/uploads", StaticFiles(directory=upload_dir, check_dir=False), name="uploads")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
