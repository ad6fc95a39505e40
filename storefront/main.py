import logging
from decimal import Decimal
from typing import List, Optional

import jwt
import pydantic
from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud, errors, schemas
from .auth import create_access_token, decode_access_token
from .config import Settings, get_settings
from .db import Base, SessionLocal, engine
from .storage import ImageStorage
from .utils import sanitize_input

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create tables if not existing. In production, use Alembic.
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Storefront API")
app.mount("/public/uploads", StaticFiles(directory=get_settings().upload_dir, check_dir=False), name="uploads")

MAX_GALLERY_IMAGES = 10


# Dependency to get DB session per request

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_storage(settings: Settings = Depends(get_settings)) -> ImageStorage:
    return ImageStorage(settings.upload_dir)


# -------------------- Auth dependencies --------------------

def token_claims(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> Optional[dict]:
    """Claims of the caller's bearer token; ``None`` when auth is switched off."""
    if not settings.auth_enabled:
        return None
    if not authorization or not authorization.lower().startswith("bearer "):
        raise errors.AuthError("missing bearer token")
    token = authorization.split(None, 1)[1]
    try:
        return decode_access_token(token, settings.jwt_secret)
    except jwt.PyJWTError:
        raise errors.AuthError("invalid token")


def require_admin(claims: Optional[dict] = Depends(token_claims)) -> Optional[dict]:
    if claims is not None and not claims.get("isAdmin"):
        raise errors.Forbidden("admin required")
    return claims


def ensure_self_or_admin(claims: Optional[dict], user_id: int) -> None:
    if claims is None or claims.get("isAdmin"):
        return
    if claims.get("userId") != user_id:
        raise errors.Forbidden("forbidden")


# -------------------- Error envelopes --------------------

def error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error": code},
    )


@app.exception_handler(errors.StoreError)
async def store_error_handler(request: Request, exc: errors.StoreError):
    return error_response(exc.status_code, exc.message, exc.code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}" for err in exc.errors()
    )
    return error_response(400, problems or "invalid input", errors.ValidationError.code)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = errors.NotFound.code if exc.status_code == 404 else "HTTPError"
    return error_response(exc.status_code, str(exc.detail), code)


@app.exception_handler(SQLAlchemyError)
async def store_failure_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("unhandled store failure on %s %s", request.method, request.url.path)
    return error_response(500, errors.InternalError.default_message, errors.InternalError.code)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unexpected failure on %s %s", request.method, request.url.path)
    return error_response(500, errors.InternalError.default_message, errors.InternalError.code)


@app.get("/health")
async def health():
    return {"status": "ok"}


# -------------------- Categories --------------------

@app.get("/categories", response_model=schemas.Envelope[List[schemas.CategoryRead]])
async def get_categories(db: Session = Depends(get_db)):
    return {"success": True, "data": crud.list_categories(db)}


@app.get("/categories/{category_id}", response_model=schemas.Envelope[schemas.CategoryRead])
async def get_category(category_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.get_category(db, category_id)}


@app.post(
    "/categories",
    response_model=schemas.Envelope[schemas.CategoryRead],
    status_code=201,
    dependencies=[Depends(require_admin)],
)
async def create_category(category: schemas.CategoryCreate, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.create_category(db, category)}


@app.put(
    "/categories/{category_id}",
    response_model=schemas.Envelope[schemas.CategoryRead],
    dependencies=[Depends(require_admin)],
)
async def update_category(category_id: int, changes: schemas.CategoryUpdate, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.update_category(db, category_id, changes)}


@app.delete("/categories/{category_id}", response_model=schemas.Envelope, dependencies=[Depends(require_admin)])
async def delete_category(category_id: int, db: Session = Depends(get_db)):
    crud.delete_category(db, category_id)
    return {"success": True, "message": "The category is deleted!"}


# -------------------- Products --------------------

def product_form(
    name: str = Form(...),
    description: str = Form(""),
    rich_description: str = Form("", alias="richDescription"),
    brand: str = Form(""),
    price: Decimal = Form(Decimal("0")),
    category: Optional[int] = Form(None),
    count_in_stock: int = Form(0, alias="countInStock"),
    rating: Decimal = Form(Decimal("0")),
    num_reviews: int = Form(0, alias="numReviews"),
    is_featured: bool = Form(False, alias="isFeatured"),
) -> schemas.ProductFields:
    if category is None:
        raise errors.ValidationError("Invalid Category")
    try:
        return schemas.ProductFields(
            name=name,
            description=description,
            rich_description=rich_description,
            brand=brand,
            price=price,
            category=category,
            count_in_stock=count_in_stock,
            rating=rating,
            num_reviews=num_reviews,
            is_featured=is_featured,
        )
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        raise errors.ValidationError(f"{first['loc'][0]}: {first['msg']}") from e


@app.get("/products", response_model=schemas.Envelope[List[schemas.ProductDetail]])
async def get_products(categories: Optional[str] = Query(None), db: Session = Depends(get_db)):
    category_ids = None
    if categories:
        try:
            category_ids = [int(c) for c in categories.split(",") if c.strip()]
        except ValueError:
            raise errors.ValidationError("categories must be a comma separated list of ids")
    return {"success": True, "data": crud.list_products(db, category_ids)}


@app.get("/products/get/count", response_model=schemas.Envelope[schemas.ProductCount])
async def get_product_count(db: Session = Depends(get_db)):
    return {"success": True, "data": {"product_count": crud.count_products(db)}}


@app.get("/products/get/featured/{count}", response_model=schemas.Envelope[List[schemas.ProductRead]])
async def get_featured_products(count: int, db: Session = Depends(get_db)):
    if count < 0:
        raise errors.ValidationError("count must be non-negative")
    return {"success": True, "data": crud.list_featured(db, count)}


@app.get("/products/{product_id}", response_model=schemas.Envelope[schemas.ProductDetail])
async def get_product(product_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.get_product(db, product_id)}


@app.post(
    "/products",
    response_model=schemas.Envelope[schemas.ProductRead],
    status_code=201,
    dependencies=[Depends(require_admin)],
)
async def create_product(
    request: Request,
    fields: schemas.ProductFields = Depends(product_form),
    image: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_storage),
):
    crud.ensure_category(db, fields.category)
    if image is None:
        raise errors.InputError("No image in the request")
    image_url = storage.save(image, str(request.base_url))
    with storage.discard_on_error([image_url]):
        product = crud.create_product(db, fields, image_url)
    return {"success": True, "data": product}


@app.put(
    "/products/gallery-images/{product_id}",
    response_model=schemas.Envelope[schemas.ProductRead],
    dependencies=[Depends(require_admin)],
)
async def update_gallery_images(
    request: Request,
    product_id: int,
    images: List[UploadFile] = File(default=[]),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_storage),
):
    if len(images) > MAX_GALLERY_IMAGES:
        raise errors.InputError(f"at most {MAX_GALLERY_IMAGES} images are accepted")
    crud.get_product(db, product_id)
    image_urls = storage.save_many(images, str(request.base_url))
    with storage.discard_on_error(image_urls):
        product = crud.set_gallery_images(db, product_id, image_urls)
    return {"success": True, "data": product}


@app.put(
    "/products/{product_id}",
    response_model=schemas.Envelope[schemas.ProductRead],
    dependencies=[Depends(require_admin)],
)
async def update_product(
    request: Request,
    product_id: int,
    fields: schemas.ProductFields = Depends(product_form),
    image: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_db),
    storage: ImageStorage = Depends(get_storage),
):
    crud.get_product(db, product_id)
    crud.ensure_category(db, fields.category)
    image_url = storage.save(image, str(request.base_url)) if image is not None else None
    with storage.discard_on_error([image_url] if image_url else []):
        product = crud.update_product(db, product_id, fields, image_url)
    return {"success": True, "data": product}


@app.delete("/products/{product_id}", response_model=schemas.Envelope, dependencies=[Depends(require_admin)])
async def delete_product(product_id: int, db: Session = Depends(get_db)):
    crud.delete_product(db, product_id)
    return {"success": True, "message": "The product is deleted!"}


@app.get("/search", response_model=schemas.Envelope[List[schemas.ProductRead]])
async def search_products(
    term: Optional[str] = Query(None, max_length=100),
    category: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    cleaned = sanitize_input(term) or None
    products = crud.search_products(db, cleaned, category, create_on_miss=settings.search_creates_on_miss)
    return {"success": True, "data": products}


# -------------------- Orders --------------------

@app.get(
    "/orders",
    response_model=schemas.Envelope[List[schemas.OrderSummary]],
    dependencies=[Depends(require_admin)],
)
async def get_orders(db: Session = Depends(get_db)):
    return {"success": True, "data": crud.list_orders(db)}


@app.get(
    "/orders/get/totalsales",
    response_model=schemas.Envelope[schemas.TotalSales],
    dependencies=[Depends(require_admin)],
)
async def get_total_sales(db: Session = Depends(get_db)):
    return {"success": True, "data": {"totalsales": crud.total_sales(db)}}


@app.get(
    "/orders/get/count",
    response_model=schemas.Envelope[schemas.OrderCount],
    dependencies=[Depends(require_admin)],
)
async def get_order_count(db: Session = Depends(get_db)):
    return {"success": True, "data": {"order_count": crud.count_orders(db)}}


@app.get("/orders/get/userorders/{user_id}", response_model=schemas.Envelope[List[schemas.OrderDetail]])
async def get_user_orders(user_id: int, db: Session = Depends(get_db), claims: Optional[dict] = Depends(token_claims)):
    ensure_self_or_admin(claims, user_id)
    return {"success": True, "data": crud.list_orders_for_user(db, user_id)}


@app.get(
    "/orders/{order_id}",
    response_model=schemas.Envelope[schemas.OrderDetail],
    dependencies=[Depends(require_admin)],
)
async def get_order(order_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.get_order(db, order_id)}


@app.post("/orders", response_model=schemas.Envelope[schemas.OrderSummary], status_code=201)
async def create_order(
    order: schemas.OrderCreate, db: Session = Depends(get_db), claims: Optional[dict] = Depends(token_claims)
):
    ensure_self_or_admin(claims, order.user)
    return {"success": True, "data": crud.create_order(db, order)}


@app.put(
    "/orders/{order_id}",
    response_model=schemas.Envelope[schemas.OrderSummary],
    dependencies=[Depends(require_admin)],
)
async def update_order(order_id: int, payload: schemas.OrderStatusUpdate, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.update_order_status(db, order_id, payload.status)}


@app.delete("/orders/{order_id}", response_model=schemas.Envelope, dependencies=[Depends(require_admin)])
async def delete_order(order_id: int, db: Session = Depends(get_db)):
    crud.delete_order(db, order_id)
    return {"success": True, "message": "The order and its items are deleted!"}


# -------------------- Users --------------------

@app.get("/users", response_model=schemas.Envelope[List[schemas.UserRead]], dependencies=[Depends(require_admin)])
async def get_users(db: Session = Depends(get_db)):
    return {"success": True, "data": crud.list_users(db)}


@app.get("/users/get/count", response_model=schemas.Envelope[schemas.UserCount], dependencies=[Depends(require_admin)])
async def get_user_count(db: Session = Depends(get_db)):
    return {"success": True, "data": {"user_count": crud.count_users(db)}}


@app.post(
    "/users",
    response_model=schemas.Envelope[schemas.UserRead],
    status_code=201,
    dependencies=[Depends(require_admin)],
)
async def create_user(user: schemas.UserCreate, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.create_user(db, user)}


@app.post("/users/register", response_model=schemas.Envelope[schemas.UserRead], status_code=201)
async def register_user(user: schemas.UserCreate, db: Session = Depends(get_db)):
    return {"success": True, "data": crud.register_user(db, user)}


@app.post("/users/login", response_model=schemas.Envelope[schemas.LoginResult])
async def login(
    payload: schemas.LoginRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)
):
    user = crud.authenticate(db, payload.email, payload.password)
    token = create_access_token(user.id, user.is_admin, settings.jwt_secret)
    return {"success": True, "data": {"user": user.email, "token": token}}


@app.get("/users/{user_id}", response_model=schemas.Envelope[schemas.UserRead])
async def get_user(user_id: int, db: Session = Depends(get_db), claims: Optional[dict] = Depends(token_claims)):
    ensure_self_or_admin(claims, user_id)
    return {"success": True, "data": crud.get_user(db, user_id)}


@app.put("/users/{user_id}", response_model=schemas.Envelope[schemas.UserRead])
async def update_user(
    user_id: int,
    changes: schemas.UserUpdate,
    db: Session = Depends(get_db),
    claims: Optional[dict] = Depends(token_claims),
):
    ensure_self_or_admin(claims, user_id)
    # isAdmin changes require admin privilege
    if changes.is_admin is not None and claims is not None and not claims.get("isAdmin"):
        raise errors.Forbidden("forbidden: admin required to change isAdmin")
    return {"success": True, "data": crud.update_user(db, user_id, changes)}


@app.delete("/users/{user_id}", response_model=schemas.Envelope, dependencies=[Depends(require_admin)])
async def delete_user(user_id: int, db: Session = Depends(get_db)):
    crud.delete_user(db, user_id)
    return {"success": True, "message": "The user is deleted!"}
