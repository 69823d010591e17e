import time
from typing import List, Optional

from fastapi import Cookie, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import EmailStr, ValidationError
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth_service
import cart_service
import config
import dashboard_service
import order_service
import product_service
import user_service
from database import get_db
from log import configure_logging, get_logger
from schemas import (
    CartBody,
    ChangePasswordBody,
    LoginBody,
    OrderForm,
    OrderStatusBody,
    PaymentMethod,
    ProductCreateBody,
    ProductUpdateBody,
    RefreshTokenBody,
    RegisterBody,
    UserStatusBody,
)
from security import get_current_user, require_roles
from utils import send_response, serialize_doc

configure_logging()
logger = get_logger(__name__)

REFRESH_COOKIE = "refresh_token"

app = FastAPI(title="MediMart API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

admin_only = require_roles("ADMIN")
customer_only = require_roles("CUSTOMER")
any_user = require_roles("ADMIN", "CUSTOMER")


# Error handling

def error_response(status_code: int, message: str, errors=None):
    data = {"errors": errors} if errors is not None else None
    return send_response(status_code=status_code, message=message, data=data, success=False)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning("request_failed", path=request.url.path, status=exc.status_code, message=str(exc.detail))
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else first.get("msg", "Validation error")
    logger.warning("request_invalid", path=request.url.path, message=message)
    return error_response(400, message, errors=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors])


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("request_crashed", path=request.url.path)
    return error_response(500, "Something went wrong")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request_handled",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


# Routes
@app.get("/")
def read_root():
    return {"message": "MediMart API"}


@app.get("/health")
def health(db: Database = Depends(get_db)):
    db.command("ping")
    return {"status": "ok", "database": db.name}


# Auth
@app.post("/auth/login")
def login(payload: LoginBody, db: Database = Depends(get_db)):
    tokens = auth_service.login(db, payload)
    response = send_response(200, "User logged in successfully", {"access_token": tokens["access_token"]})
    response.set_cookie(
        REFRESH_COOKIE,
        tokens["refresh_token"],
        httponly=True,
        secure=config.ENV == "production",
        samesite="lax",
    )
    return response


@app.post("/auth/register")
def register(payload: RegisterBody, db: Database = Depends(get_db)):
    tokens = auth_service.register(db, payload)
    response = send_response(201, "User registered successfully", {"access_token": tokens["access_token"]})
    response.set_cookie(
        REFRESH_COOKIE,
        tokens["refresh_token"],
        httponly=True,
        secure=config.ENV == "production",
        samesite="lax",
    )
    return response


@app.post("/auth/logout")
def logout():
    response = send_response(200, "User logged out successfully")
    response.delete_cookie(REFRESH_COOKIE)
    return response


@app.post("/auth/refresh-token")
def refresh_access_token(
    body: Optional[RefreshTokenBody] = None,
    refresh_token: Optional[str] = Cookie(default=None),
    db: Database = Depends(get_db),
):
    token = (body.refresh_token if body else None) or refresh_token
    result = auth_service.refresh_token(db, token)
    return send_response(200, "Access token retrieved successfully", result)


@app.patch("/auth/change-password")
def change_password(payload: ChangePasswordBody, user: dict = Depends(any_user), db: Database = Depends(get_db)):
    auth_service.change_password(db, payload, user)
    return send_response(200, "Password changed successfully")


@app.get("/auth/me")
def me(user: dict = Depends(get_current_user)):
    return send_response(200, "User retrieved successfully", serialize_doc(user))


# Users
@app.get("/users")
def list_users(request: Request, _: dict = Depends(admin_only), db: Database = Depends(get_db)):
    result = user_service.get_all_users(db, dict(request.query_params))
    return send_response(200, "Users retrieved successfully", result["data"], meta=result["meta"])


@app.patch("/users/{user_id}/status")
def update_user_status(user_id: str, payload: UserStatusBody, admin: dict = Depends(admin_only), db: Database = Depends(get_db)):
    result = user_service.update_user_status(db, user_id, payload.is_blocked, admin)
    return send_response(200, "User status updated successfully", result)


@app.delete("/users/{user_id}")
def delete_user(user_id: str, admin: dict = Depends(admin_only), db: Database = Depends(get_db)):
    user_service.delete_user(db, user_id, admin)
    return send_response(200, "User deleted successfully")


# Products
@app.get("/products")
def list_products(request: Request, db: Database = Depends(get_db)):
    result = product_service.get_products(db, dict(request.query_params))
    return send_response(200, "Products retrieved successfully", result["data"], meta=result["meta"])


@app.get("/products/{id_or_slug}")
def get_product(id_or_slug: str, db: Database = Depends(get_db)):
    return send_response(200, "Product retrieved successfully", product_service.get_product(db, id_or_slug))


@app.post("/products")
def create_product(payload: ProductCreateBody, _: dict = Depends(admin_only), db: Database = Depends(get_db)):
    return send_response(201, "Product created successfully", product_service.create_product(db, payload))


@app.post("/products/bulk")
def create_products(payload: List[ProductCreateBody], _: dict = Depends(admin_only), db: Database = Depends(get_db)):
    return send_response(201, "Products created successfully", product_service.create_products(db, payload))


@app.patch("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdateBody, _: dict = Depends(admin_only), db: Database = Depends(get_db)):
    return send_response(200, "Product updated successfully", product_service.update_product(db, product_id, payload))


@app.delete("/products/{product_id}")
def delete_product(product_id: str, _: dict = Depends(admin_only), db: Database = Depends(get_db)):
    product_service.delete_product(db, product_id)
    return send_response(200, "Product deleted successfully")


# Cart
@app.post("/cart")
def get_cart_products(payload: CartBody, db: Database = Depends(get_db)):
    return send_response(200, "Cart products retrieved successfully", cart_service.get_cart_products(db, payload.product_ids))


# Orders
@app.post("/orders")
def create_order(
    products: str = Form(...),
    customer_name: str = Form(...),
    customer_email: EmailStr = Form(...),
    customer_phone: str = Form(...),
    address: str = Form(...),
    city: str = Form(...),
    postal_code: str = Form(...),
    payment_method: PaymentMethod = Form(...),
    notes: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    user: dict = Depends(customer_only),
    db: Database = Depends(get_db),
):
    try:
        form = OrderForm(
            products=products,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            address=address,
            city=city,
            postal_code=postal_code,
            payment_method=payment_method,
            notes=notes,
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())
    order = order_service.create_order(db, form, file, user)
    return send_response(201, "Order created successfully", order)


@app.get("/orders/mine")
def my_orders(user: dict = Depends(customer_only), db: Database = Depends(get_db)):
    return send_response(200, "Orders retrieved successfully", order_service.get_my_orders(db, user))


@app.get("/orders/mine/{order_id}")
def my_order(order_id: str, user: dict = Depends(customer_only), db: Database = Depends(get_db)):
    return send_response(200, "Order retrieved successfully", order_service.get_my_order(db, order_id, user))


@app.get("/orders")
def list_orders(request: Request, _: dict = Depends(admin_only), db: Database = Depends(get_db)):
    result = order_service.get_all_orders(db, dict(request.query_params))
    return send_response(200, "Orders retrieved successfully", result["data"], meta=result["meta"])


@app.patch("/orders/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusBody, _: dict = Depends(admin_only), db: Database = Depends(get_db)):
    order = order_service.update_order_status(db, order_id, payload.status)
    return send_response(200, "Order status updated successfully", order)


# Dashboard
@app.get("/dashboard/stats")
def dashboard_stats(_: dict = Depends(admin_only), db: Database = Depends(get_db)):
    return send_response(200, "Dashboard statistics retrieved successfully", dashboard_service.get_stats_summary(db))


@app.get("/dashboard/revenue")
def dashboard_revenue(_: dict = Depends(admin_only), db: Database = Depends(get_db)):
    return send_response(200, "Revenue summary retrieved successfully", dashboard_service.get_revenue_summary(db))


@app.get("/dashboard/recent-orders")
def dashboard_recent_orders(_: dict = Depends(admin_only), db: Database = Depends(get_db)):
    return send_response(200, "Recent orders retrieved successfully", dashboard_service.get_recent_orders(db))


@app.get("/dashboard/low-stock")
def dashboard_low_stock(_: dict = Depends(admin_only), db: Database = Depends(get_db)):
    return send_response(200, "Low stock products retrieved successfully", dashboard_service.get_low_stock_products(db))


@app.get("/dashboard/expiring")
def dashboard_expiring(_: dict = Depends(admin_only), db: Database = Depends(get_db)):
    return send_response(200, "Expiring products retrieved successfully", dashboard_service.get_expiring_products(db))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
