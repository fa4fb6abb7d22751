import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from . import auth, errors, models, schemas
from .utils import like_pattern, sanitize_input

log = logging.getLogger(__name__)


def _commit(db: Session, message: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise errors.Conflict(message) from e


# -------------------- Roles --------------------

def list_roles(db: Session) -> List[models.Role]:
    return db.query(models.Role).order_by(models.Role.id).all()


def get_role(db: Session, role_id: int) -> models.Role:
    role = db.get(models.Role, role_id)
    if not role:
        raise errors.NotFound("role not found")
    return role


def get_role_by_name(db: Session, name: str) -> Optional[models.Role]:
    return db.query(models.Role).filter(models.Role.name == name).first()


def _check_role_name(db: Session, name: str, role_id: Optional[int] = None) -> str:
    if not name or not name.strip():
        raise errors.ValidationError("role name is required")
    query = db.query(models.Role).filter(models.Role.name == name)
    if role_id is not None:
        query = query.filter(models.Role.id != role_id)
    if query.first():
        raise errors.Conflict("a role with this name already exists")
    return name


def create_role(db: Session, role: schemas.RoleCreate) -> models.Role:
    name = _check_role_name(db, role.name)
    db_role = models.Role(name=name)
    db.add(db_role)
    _commit(db, "a role with this name already exists")
    db.refresh(db_role)
    return db_role


def update_role(db: Session, role_id: int, role: schemas.RoleCreate) -> models.Role:
    db_role = get_role(db, role_id)
    db_role.name = _check_role_name(db, role.name, role_id=role_id)
    _commit(db, "a role with this name already exists")
    db.refresh(db_role)
    return db_role


def delete_role(db: Session, role_id: int) -> None:
    role = get_role(db, role_id)
    users = db.query(func.count(models.User.id)).filter(models.User.role_id == role_id).scalar()
    if users:
        log.warning("refusing to delete role %s: %s user(s) attached", role_id, users)
        raise errors.Conflict("role still has users assigned", count=users)
    db.delete(role)
    db.commit()
    log.info("deleted role %s", role_id)


# -------------------- Users --------------------

def list_users(db: Session) -> List[models.User]:
    return db.query(models.User).options(selectinload(models.User.role)).order_by(models.User.id).all()


def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise errors.NotFound("user not found")
    return user


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email).first()


def _resolve_role_id(db: Session, role_id: Optional[int]) -> int:
    if role_id is None:
        role = get_role_by_name(db, auth.RoleName.CLIENT.value)
        if not role:
            raise errors.ValidationError("default role is not configured")
        return role.id
    if not db.get(models.Role, role_id):
        raise errors.ValidationError("foreign key violation: role does not exist")
    return role_id


def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    if get_user_by_email(db, user.email):
        raise errors.DuplicateEmail("email already registered")
    role_id = _resolve_role_id(db, user.role_id)

    db_user = models.User(
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        password_hash=auth.hash_password(user.password),
        role_id=role_id,
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise errors.DuplicateEmail("email already registered") from e
    db.refresh(db_user)
    log.info("registered user %s with role %s", db_user.id, role_id)
    return db_user


# registration and admin user creation share the same rules
register = create_user


def update_user(db: Session, user_id: int, changes: schemas.UserUpdate) -> models.User:
    user = get_user(db, user_id)
    fields = changes.model_dump(exclude_unset=True)

    if fields.get("email") is not None and fields["email"] != user.email:
        if get_user_by_email(db, fields["email"]):
            raise errors.DuplicateEmail("email already registered")
    if "role_id" in fields and fields["role_id"] is not None:
        _resolve_role_id(db, fields["role_id"])

    for name in ("first_name", "last_name", "email", "role_id"):
        if fields.get(name) is not None:
            setattr(user, name, fields[name])
    if fields.get("password"):
        user.password_hash = auth.hash_password(fields["password"])

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise errors.DuplicateEmail("email already registered") from e
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> None:
    user = get_user(db, user_id)
    db.delete(user)
    db.commit()
    log.info("deleted user %s", user_id)


def authenticate(db: Session, email: str, password: str) -> Tuple[str, dict]:
    """Check a password and mint an access token.

    Returns ``(token, identity)`` where identity is the display-safe summary
    sent back to the client.
    """
    user = get_user_by_email(db, email)
    if not user:
        raise errors.NotFound("user not found")
    if not auth.verify_password(password, user.password_hash):
        log.warning("failed login for user %s", user.id)
        raise errors.InvalidCredentials("invalid credentials")

    token = auth.create_access_token(user.id, user.email, user.role.name)
    identity = {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "role": user.role.name,
        "role_id": user.role.id,
    }
    return token, identity


# -------------------- Categories --------------------

def list_categories(db: Session, include_products: bool = False) -> List[models.Category]:
    query = db.query(models.Category)
    if include_products:
        query = query.options(selectinload(models.Category.products))
    return query.order_by(models.Category.name).all()


def get_category(db: Session, category_id: int) -> models.Category:
    category = (
        db.query(models.Category)
        .options(selectinload(models.Category.products))
        .filter(models.Category.id == category_id)
        .first()
    )
    if not category:
        raise errors.NotFound("category not found")
    return category


def _check_category_name(db: Session, name: str, category_id: Optional[int] = None) -> str:
    if not name or not name.strip():
        raise errors.ValidationError("category name is required")
    query = db.query(models.Category).filter(models.Category.name == name)
    if category_id is not None:
        query = query.filter(models.Category.id != category_id)
    if query.first():
        raise errors.Conflict("a category with this name already exists")
    return name


def create_category(db: Session, category: schemas.CategoryCreate) -> models.Category:
    name = _check_category_name(db, category.name)
    db_category = models.Category(name=name)
    db.add(db_category)
    _commit(db, "a category with this name already exists")
    db.refresh(db_category)
    return db_category


def update_category(db: Session, category_id: int, category: schemas.CategoryCreate) -> models.Category:
    db_category = db.get(models.Category, category_id)
    if not db_category:
        raise errors.NotFound("category not found")
    db_category.name = _check_category_name(db, category.name, category_id=category_id)
    _commit(db, "a category with this name already exists")
    db.refresh(db_category)
    return db_category


def delete_category(db: Session, category_id: int) -> None:
    category = db.get(models.Category, category_id)
    if not category:
        raise errors.NotFound("category not found")
    products = (
        db.query(func.count())
        .select_from(models.product_categories)
        .filter(models.product_categories.c.category_id == category_id)
        .scalar()
    )
    if products:
        log.warning("refusing to delete category %s: %s product(s) attached", category_id, products)
        raise errors.Conflict("category still has products assigned", count=products)
    db.delete(category)
    db.commit()
    log.info("deleted category %s", category_id)


# -------------------- Products --------------------

def _product_query(db: Session):
    return db.query(models.Product).options(selectinload(models.Product.categories))


def _resolve_categories(db: Session, category_ids: Sequence[int]) -> List[models.Category]:
    if not category_ids:
        raise errors.ValidationError("a product needs at least one category")
    wanted = set(category_ids)
    found = db.query(models.Category).filter(models.Category.id.in_(wanted)).all()
    missing = wanted - {c.id for c in found}
    if missing:
        raise errors.NotFound(f"categories not found: {sorted(missing)}")
    return found


def list_products(
    db: Session,
    search: Optional[str] = None,
    category: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[List[models.Product], int]:
    query = db.query(models.Product)
    term = sanitize_input(search)
    if term:
        pattern = like_pattern(term)
        query = query.filter(
            or_(
                models.Product.name.ilike(pattern, escape="\\"),
                models.Product.description.ilike(pattern, escape="\\"),
            )
        )
    category_term = sanitize_input(category)
    if category_term:
        query = query.filter(
            models.Product.categories.any(models.Category.name.ilike(like_pattern(category_term), escape="\\"))
        )

    total = query.count()
    query = query.options(selectinload(models.Product.categories)).order_by(
        models.Product.created_at.desc(), models.Product.id.desc()
    )
    if limit is not None:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)
    return query.all(), total


def get_product(db: Session, product_id: int) -> models.Product:
    product = _product_query(db).filter(models.Product.id == product_id).first()
    if not product:
        raise errors.NotFound("product not found")
    return product


def create_product(db: Session, product: schemas.ProductCreate) -> models.Product:
    if not product.name or product.price is None:
        raise errors.ValidationError("name and price are required")
    categories = _resolve_categories(db, product.category_ids)

    # product and its category rows go in the same commit, so a failure leaves nothing behind
    db_product = models.Product(
        name=product.name,
        description=product.description,
        price=product.price,
        image_url=product.image_url,
        categories=categories,
    )
    db.add(db_product)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise errors.ValidationError("integrity error") from e
    log.info("created product %s in categories %s", db_product.id, sorted(c.id for c in categories))
    return get_product(db, db_product.id)


def update_product(db: Session, product_id: int, changes: schemas.ProductUpdate) -> models.Product:
    product = get_product(db, product_id)
    fields = changes.model_dump(exclude_unset=True)

    categories = None
    if "category_ids" in fields and fields["category_ids"] is not None:
        categories = _resolve_categories(db, fields["category_ids"])

    for name in ("name", "description", "price", "image_url"):
        if name in fields:
            setattr(product, name, fields[name])
    if categories is not None:
        # replaces the whole association set
        product.categories = categories

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise errors.ValidationError("integrity error") from e
    return get_product(db, product_id)


def delete_product(db: Session, product_id: int) -> None:
    product = db.get(models.Product, product_id)
    if not product:
        raise errors.NotFound("product not found")
    lines = db.query(func.count(models.OrderLine.id)).filter(models.OrderLine.product_id == product_id).scalar()
    if lines:
        log.warning("refusing to delete product %s: %s order line(s) reference it", product_id, lines)
        raise errors.Conflict(
            f'product "{product.name}" is referenced by {lines} order line(s)', count=lines
        )
    db.delete(product)
    db.commit()
    log.info("deleted product %s", product_id)
