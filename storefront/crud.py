import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from . import errors, models, schemas
from .auth import hash_password, verify_password
from .utils import leading_int, leading_number, like_pattern, round_amount

logger = logging.getLogger(__name__)

# order -> user, order -> items -> product -> category
ORDER_DETAIL_OPTIONS = (
    joinedload(models.Order.user),
    selectinload(models.Order.order_items)
    .joinedload(models.OrderItem.product)
    .joinedload(models.Product.category),
)


def _commit(db: Session, error: type[errors.StoreError], message: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("%s: %s", message, e)
        raise error(message) from e


# -------------------- Categories --------------------

def list_categories(db: Session) -> List[models.Category]:
    categories = db.query(models.Category).order_by(models.Category.id).all()
    if not categories:
        raise errors.NotFound("No categories found.")
    return categories


def get_category(db: Session, category_id: int) -> models.Category:
    category = db.get(models.Category, category_id)
    if not category:
        raise errors.NotFound("Category not found.")
    return category


def create_category(db: Session, category: schemas.CategoryCreate) -> models.Category:
    db_category = models.Category(name=category.name, icon=category.icon, color=category.color)
    db.add(db_category)
    _commit(db, errors.CreationError, "The category cannot be created.")
    db.refresh(db_category)
    return db_category


def update_category(db: Session, category_id: int, changes: schemas.CategoryUpdate) -> models.Category:
    category = get_category(db, category_id)
    for field, value in changes.model_dump(exclude_none=True).items():
        setattr(category, field, value)
    _commit(db, errors.PersistError, "The category cannot be updated.")
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: int) -> None:
    category = get_category(db, category_id)
    in_use = db.query(func.count(models.Product.id)).filter(models.Product.category_id == category_id).scalar()
    if in_use:
        raise errors.ValidationError(f"The category is still used by {in_use} product(s).")
    db.delete(category)
    _commit(db, errors.PersistError, "The category cannot be deleted.")


# -------------------- Products --------------------

def ensure_category(db: Session, category_id: Optional[int]) -> None:
    if category_id is None or db.get(models.Category, category_id) is None:
        raise errors.ValidationError("Invalid Category")


def list_products(db: Session, category_ids: Optional[List[int]] = None) -> List[models.Product]:
    query = db.query(models.Product).options(joinedload(models.Product.category))
    if category_ids:
        query = query.filter(models.Product.category_id.in_(category_ids))
    return query.order_by(models.Product.id).all()


def get_product(db: Session, product_id: int) -> models.Product:
    product = (
        db.query(models.Product)
        .options(joinedload(models.Product.category))
        .filter(models.Product.id == product_id)
        .first()
    )
    if not product:
        raise errors.NotFound("Product not found")
    return product


def create_product(db: Session, fields: schemas.ProductFields, image_url: Optional[str]) -> models.Product:
    ensure_category(db, fields.category)
    if not image_url:
        raise errors.InputError("No image in the request")
    db_product = models.Product(
        **fields.model_dump(exclude={"category"}),
        category_id=fields.category,
        image=image_url,
        images=[],
    )
    db.add(db_product)
    _commit(db, errors.CreationError, "The product cannot be created")
    db.refresh(db_product)
    return db_product


def update_product(
    db: Session, product_id: int, fields: schemas.ProductFields, image_url: Optional[str] = None
) -> models.Product:
    product = get_product(db, product_id)
    ensure_category(db, fields.category)
    for field, value in fields.model_dump(exclude={"category"}).items():
        setattr(product, field, value)
    product.category_id = fields.category
    if image_url:
        product.image = image_url
    _commit(db, errors.PersistError, "The product cannot be updated")
    db.refresh(product)
    return product


def delete_product(db: Session, product_id: int) -> None:
    product = db.get(models.Product, product_id)
    if not product:
        raise errors.NotFound("Product not found")
    if db.query(models.OrderItem.id).filter(models.OrderItem.product_id == product_id).first():
        raise errors.ValidationError("The product is part of existing orders.")
    db.delete(product)
    _commit(db, errors.PersistError, "The product cannot be deleted")


def count_products(db: Session) -> int:
    return db.query(func.count(models.Product.id)).scalar()


def list_featured(db: Session, limit: int = 0) -> List[models.Product]:
    query = db.query(models.Product).filter(models.Product.is_featured.is_(True)).order_by(models.Product.id)
    # 0 means no limit
    if limit > 0:
        query = query.limit(limit)
    return query.all()


def set_gallery_images(db: Session, product_id: int, image_urls: List[str]) -> models.Product:
    product = db.get(models.Product, product_id)
    if not product:
        raise errors.NotFound("Product not found")
    product.images = list(image_urls)
    _commit(db, errors.PersistError, "The gallery cannot be updated")
    db.refresh(product)
    return product


# -------------------- Search --------------------

def search_products(
    db: Session, term: Optional[str], category_id: Optional[int] = None, create_on_miss: bool = True
) -> List[models.Product]:
    """Match ``term`` against name or description (case-insensitive), optionally within one category.

    A term that matches nothing yields a freshly created product built from
    the term, unless ``create_on_miss`` is off.
    """
    query = db.query(models.Product)
    if term:
        pattern = like_pattern(term)
        query = query.filter(
            or_(
                models.Product.name.ilike(pattern, escape="\\"),
                models.Product.description.ilike(pattern, escape="\\"),
            )
        )
    if category_id is not None:
        query = query.filter(models.Product.category_id == category_id)
    products = query.order_by(models.Product.id).all()
    if not products and term and create_on_miss:
        products = [suggest_product(db, term, category_id)]
    return products


def suggest_product(db: Session, term: str, category_id: Optional[int] = None) -> models.Product:
    if category_id is not None:
        ensure_category(db, category_id)
    db_product = models.Product(
        name=term,
        description=term,
        rich_description=f"{term} - rich description",
        brand=term,
        image="",
        images=[],
        price=max(leading_number(term), Decimal(0)),
        rating=max(leading_number(term), Decimal(0)),
        count_in_stock=max(leading_int(term), 0),
        num_reviews=max(leading_int(term), 0),
        is_featured=True,
        category_id=category_id,
    )
    db.add(db_product)
    _commit(db, errors.CreationError, "Error saving product")
    db.refresh(db_product)
    logger.info("search for %r matched nothing; created product %s", term, db_product.id)
    return db_product


# -------------------- Orders --------------------

def list_orders(db: Session) -> List[models.Order]:
    orders = (
        db.query(models.Order)
        .options(joinedload(models.Order.user), selectinload(models.Order.order_items))
        .order_by(models.Order.date_ordered.desc(), models.Order.id.desc())
        .all()
    )
    if not orders:
        raise errors.NotFound("No orders found.")
    return orders


def get_order(db: Session, order_id: int) -> models.Order:
    order = db.query(models.Order).options(*ORDER_DETAIL_OPTIONS).filter(models.Order.id == order_id).first()
    if not order:
        raise errors.NotFound("Order not found.")
    return order


def _create_order_item(db: Session, line: schemas.OrderItemCreate) -> models.OrderItem:
    product = db.get(models.Product, line.product)
    if product is None:
        raise errors.ValidationError(f"foreign key violation: product {line.product} does not exist")
    item = models.OrderItem(quantity=line.quantity, product=product)
    db.add(item)
    return item


def line_total(item: models.OrderItem) -> Decimal:
    return Decimal(item.product.price) * item.quantity


def create_order(db: Session, order: schemas.OrderCreate) -> models.Order:
    """Create the line items, price them from current product prices and save the order.

    Everything happens in one transaction: a failure at any step leaves
    neither line items nor the order behind.
    """
    try:
        if db.get(models.User, order.user) is None:
            raise errors.ValidationError("foreign key violation: user does not exist")

        items = [_create_order_item(db, line) for line in order.order_items]
        db.flush()

        total_price = round_amount(sum((line_total(item) for item in items), Decimal(0)))

        db_order = models.Order(
            order_items=items,
            shipping_address1=order.shipping_address1,
            shipping_address2=order.shipping_address2,
            city=order.city,
            zip=order.zip,
            country=order.country,
            phone=order.phone,
            status=order.status,
            total_price=total_price,
            user_id=order.user,
        )
        db.add(db_order)
        db.commit()
    except errors.StoreError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("order creation failed for user %s: %s", order.user, e)
        raise errors.CreationError("The order cannot be created.") from e

    db.refresh(db_order)
    logger.info("order %s created for user %s: %d item(s), total %s", db_order.id, order.user, len(items), total_price)
    return db_order


def update_order_status(db: Session, order_id: int, status: str) -> models.Order:
    order = db.get(models.Order, order_id)
    if not order:
        raise errors.NotFound("Order not found.")
    order.status = status
    _commit(db, errors.PersistError, "The order cannot be updated.")
    db.refresh(order)
    return order


def delete_order(db: Session, order_id: int) -> None:
    order = db.get(models.Order, order_id)
    if not order:
        raise errors.NotFound("Order not found.")
    item_count = len(order.order_items)
    for item in list(order.order_items):
        db.delete(item)
    db.delete(order)
    _commit(db, errors.PersistError, "The order cannot be deleted.")
    logger.info("order %s deleted with %d item(s)", order_id, item_count)


def total_sales(db: Session) -> Decimal:
    total = db.query(func.sum(models.Order.total_price)).scalar()
    # SUM over zero rows is NULL
    if total is None:
        raise errors.AggregationError("The order sales cannot be generated")
    return round_amount(total)


def count_orders(db: Session) -> int:
    return db.query(func.count(models.Order.id)).scalar()


def list_orders_for_user(db: Session, user_id: int) -> List[models.Order]:
    orders = (
        db.query(models.Order)
        .options(*ORDER_DETAIL_OPTIONS)
        .filter(models.Order.user_id == user_id)
        .order_by(models.Order.date_ordered.desc(), models.Order.id.desc())
        .all()
    )
    if not orders:
        raise errors.NotFound("No orders found for the user.")
    return orders


# -------------------- Users --------------------

def list_users(db: Session) -> List[models.User]:
    return db.query(models.User).order_by(models.User.id).all()


def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise errors.NotFound("User not found")
    return user


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()


def create_user(db: Session, user: schemas.UserCreate, is_admin: Optional[bool] = None) -> models.User:
    if get_user_by_email(db, user.email):
        raise errors.ValidationError("email already registered")
    db_user = models.User(
        **user.model_dump(exclude={"password", "is_admin"}),
        password_hash=hash_password(user.password),
        is_admin=user.is_admin if is_admin is None else is_admin,
    )
    db.add(db_user)
    _commit(db, errors.CreationError, "The user cannot be created")
    db.refresh(db_user)
    return db_user


def register_user(db: Session, user: schemas.UserCreate) -> models.User:
    # Only the very first account may register itself as an admin
    return create_user(db, user, is_admin=user.is_admin and count_users(db) == 0)


def update_user(db: Session, user_id: int, changes: schemas.UserUpdate) -> models.User:
    user = get_user(db, user_id)
    values = changes.model_dump(exclude_unset=True, exclude_none=True, exclude={"password"})
    email = values.get("email")
    if email and email.lower() != user.email.lower():
        if get_user_by_email(db, email):
            raise errors.ValidationError("email already registered")
    for field, value in values.items():
        setattr(user, field, value)
    if changes.password:
        user.password_hash = hash_password(changes.password)
    _commit(db, errors.PersistError, "The user cannot be updated")
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> None:
    user = get_user(db, user_id)
    if db.query(models.Order.id).filter(models.Order.user_id == user_id).first():
        raise errors.ValidationError("The user still has orders.")
    db.delete(user)
    _commit(db, errors.PersistError, "The user cannot be deleted")


def count_users(db: Session) -> int:
    return db.query(func.count(models.User.id)).scalar()


def authenticate(db: Session, email: str, password: str) -> models.User:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("failed login for %s", email)
        raise errors.AuthError("invalid credentials")
    return user
