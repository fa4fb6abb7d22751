import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import auth, crud, errors, orders, schemas
from .config import get_settings
from .db import Base, SessionLocal, engine

logging.basicConfig(level=get_settings().log_level)
log = logging.getLogger(__name__)

# Create tables if not existing. Use storefront.seed to add the default roles.
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Storefront API")


# Dependency to get DB session per request

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_identity(authorization: Optional[str] = Header(default=None)) -> auth.Identity:
    return auth.verify(auth.bearer_token(authorization))


def require_admin(identity: auth.Identity = Depends(current_identity)) -> auth.Identity:
    if not identity.is_admin:
        log.warning("user %s with role %r hit an admin endpoint", identity.user_id, identity.role)
        raise errors.Forbidden("administrator role required")
    return identity


# -------------------- Error handlers --------------------

@app.exception_handler(errors.StoreError)
async def store_error_handler(request: Request, exc: errors.StoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, **exc.extra})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"detail": "; ".join(problems) or "invalid request"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "internal server error"})


@app.get("/health")
async def health():
    return {"status": "ok"}


# -------------------- Auth --------------------

@app.post("/auth/register", response_model=schemas.UserRead, status_code=201)
async def register(user: schemas.UserCreate, db: Session = Depends(get_db)):
    return crud.register(db, user)


@app.post("/auth/login", response_model=schemas.LoginResponse)
async def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    token, identity = crud.authenticate(db, payload.email, payload.password)
    return {"token": token, "token_type": "bearer", "user": identity}


# -------------------- Users --------------------

@app.get("/users", response_model=List[schemas.UserRead])
async def get_users(db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    return crud.list_users(db)


@app.post("/users", response_model=schemas.UserRead, status_code=201)
async def create_user(user: schemas.UserCreate, db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    return crud.create_user(db, user)


@app.get("/users/{user_id}", response_model=schemas.UserRead)
async def get_user(user_id: int, db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    return crud.get_user(db, user_id)


@app.put("/users/{user_id}", response_model=schemas.UserRead)
async def update_user(
    user_id: int,
    changes: schemas.UserUpdate,
    db: Session = Depends(get_db),
    admin: auth.Identity = Depends(require_admin),
):
    return crud.update_user(db, user_id, changes)


@app.delete("/users/{user_id}")
async def delete_user(user_id: int, db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    crud.delete_user(db, user_id)
    return {"deleted": user_id}


# -------------------- Roles --------------------

@app.get("/roles", response_model=List[schemas.RoleRead])
async def get_roles(db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    return crud.list_roles(db)


@app.post("/roles", response_model=schemas.RoleRead, status_code=201)
async def create_role(role: schemas.RoleCreate, db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    return crud.create_role(db, role)


@app.get("/roles/{role_id}", response_model=schemas.RoleRead)
async def get_role(role_id: int, db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    return crud.get_role(db, role_id)


@app.put("/roles/{role_id}", response_model=schemas.RoleRead)
async def update_role(
    role_id: int,
    role: schemas.RoleCreate,
    db: Session = Depends(get_db),
    admin: auth.Identity = Depends(require_admin),
):
    return crud.update_role(db, role_id, role)


@app.delete("/roles/{role_id}")
async def delete_role(role_id: int, db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    crud.delete_role(db, role_id)
    return {"deleted": role_id}


# -------------------- Categories --------------------

@app.get("/categories", response_model=schemas.CategoryList, response_model_exclude_none=True)
async def get_categories(include_products: bool = Query(False, alias="includeProducts"), db: Session = Depends(get_db)):
    categories = crud.list_categories(db, include_products=include_products)
    if include_products:
        items = [schemas.CategoryDetail.model_validate(c) for c in categories]
    else:
        items = [schemas.CategoryDetail(id=c.id, name=c.name) for c in categories]
    return schemas.CategoryList(categories=items, total_count=len(items))


@app.get("/categories/{category_id}", response_model=schemas.CategoryDetail)
async def get_category(category_id: int, db: Session = Depends(get_db)):
    return crud.get_category(db, category_id)


@app.post("/categories", response_model=schemas.CategoryRead, status_code=201)
async def create_category(
    category: schemas.CategoryCreate,
    db: Session = Depends(get_db),
    admin: auth.Identity = Depends(require_admin),
):
    return crud.create_category(db, category)


@app.put("/categories/{category_id}", response_model=schemas.CategoryRead)
async def update_category(
    category_id: int,
    category: schemas.CategoryCreate,
    db: Session = Depends(get_db),
    admin: auth.Identity = Depends(require_admin),
):
    return crud.update_category(db, category_id, category)


@app.delete("/categories/{category_id}")
async def delete_category(category_id: int, db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    crud.delete_category(db, category_id)
    return {"deleted": category_id}


# -------------------- Products --------------------

@app.get("/products", response_model=schemas.ProductList)
async def get_products(
    search: Optional[str] = Query(None, max_length=100),
    category: Optional[str] = Query(None, max_length=100),
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    products, total = crud.list_products(db, search=search, category=category, limit=limit, offset=offset)
    return {
        "products": products,
        "total_count": total,
        "filters": {"search": search, "category": category, "limit": limit, "offset": offset or 0},
    }


@app.get("/products/{product_id}", response_model=schemas.ProductRead)
async def get_product(product_id: int, db: Session = Depends(get_db)):
    return crud.get_product(db, product_id)


@app.post("/products", response_model=schemas.ProductRead, status_code=201)
async def create_product(
    product: schemas.ProductCreate,
    db: Session = Depends(get_db),
    admin: auth.Identity = Depends(require_admin),
):
    return crud.create_product(db, product)


@app.put("/products/{product_id}", response_model=schemas.ProductRead)
async def update_product(
    product_id: int,
    changes: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    admin: auth.Identity = Depends(require_admin),
):
    return crud.update_product(db, product_id, changes)


@app.delete("/products/{product_id}")
async def delete_product(product_id: int, db: Session = Depends(get_db), admin: auth.Identity = Depends(require_admin)):
    crud.delete_product(db, product_id)
    return {"deleted": product_id}


# -------------------- Orders --------------------

@app.post("/orders", response_model=schemas.OrderRead, status_code=201)
async def create_order(
    order: schemas.OrderCreate,
    db: Session = Depends(get_db),
    identity: auth.Identity = Depends(current_identity),
):
    return orders.create_order(db, identity.user_id, order.lines)


def _order_list(db: Session, identity: auth.Identity, target_user_id, limit, offset):
    found, total_count, filters = orders.list_orders(
        db, identity, target_user_id=target_user_id, limit=limit, offset=offset
    )
    return {"orders": found, "total_count": total_count, "filters": filters}


@app.get("/orders", response_model=schemas.OrderList)
async def get_orders(
    target_user_id: Optional[int] = Query(None, alias="targetUserId"),
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    identity: auth.Identity = Depends(current_identity),
):
    return _order_list(db, identity, target_user_id, limit, offset)


@app.get("/orders/user/{user_id}", response_model=schemas.OrderList)
async def get_orders_for_user(
    user_id: int,
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    identity: auth.Identity = Depends(current_identity),
):
    return _order_list(db, identity, user_id, limit, offset)


@app.get("/orders/{order_id}", response_model=schemas.OrderRead)
async def get_order(order_id: int, db: Session = Depends(get_db), identity: auth.Identity = Depends(current_identity)):
    return orders.get_order(db, identity, order_id)


@app.delete("/orders/{order_id}")
async def delete_order(order_id: int, db: Session = Depends(get_db), identity: auth.Identity = Depends(current_identity)):
    orders.delete_order(db, identity, order_id)
    return {"deleted": order_id}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("storefront.main:app", host="127.0.0.1", port=8000)
