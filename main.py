import os
from typing import List, Optional, Union

import structlog
from fastapi import APIRouter, Depends, FastAPI, Path, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.database import Database

import database
from database import get_db
from errors import (
    CategoryInUseError,
    CategoryNotFoundError,
    DatabaseNotConfiguredError,
    EmptyOrderError,
    InvalidIdError,
    InvalidReferenceError,
    OrderNotCreatedError,
    OrderNotFoundError,
    ProductNotFoundError,
    StorefrontError,
    UserNotFoundError,
)
from schemas import (
    Category,
    CategoryUpdate,
    OrderCreate,
    OrderStatusUpdate,
    Product,
    ProductUpdate,
    User,
)
from services import CategoryService, OrderService, ProductService, UserService

logger = structlog.get_logger(__name__)

API_PREFIX = os.getenv("API_PREFIX", "/api")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


ERROR_STATUS_CODES = {
    InvalidIdError: 400,
    InvalidReferenceError: 400,
    EmptyOrderError: 400,
    OrderNotFoundError: 404,
    ProductNotFoundError: 404,
    CategoryNotFoundError: 404,
    CategoryInUseError: 409,
    UserNotFoundError: 404,
    OrderNotCreatedError: 500,
    DatabaseNotConfiguredError: 500,
}


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": str(exc), "error_type": type(exc).__name__},
    )


# Response models

class CategoryResponse(BaseModel):
    id: str
    name: str
    icon: str = ""
    color: str = ""


class ProductResponse(BaseModel):
    id: str
    name: str
    description: str
    long_description: str = ""
    image: str = ""
    images: List[str] = []
    brand: str = ""
    price: float
    category: Optional[Union[CategoryResponse, str]] = None
    stock: int
    rating: float = 0
    number_reviews: int = 0
    featured: bool = False


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: str = ""
    street: str = ""
    apartment: str = ""
    city: str = ""
    zip: str = ""
    country: str = ""
    is_admin: bool = False


# Service dependencies

def get_order_service(db: Database = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_product_service(db: Database = Depends(get_db)) -> ProductService:
    return ProductService(db)


def get_category_service(db: Database = Depends(get_db)) -> CategoryService:
    return CategoryService(db)


def get_user_service(db: Database = Depends(get_db)) -> UserService:
    return UserService(db)


# Orders

orders_router = APIRouter(prefix=f"{API_PREFIX}/orders", tags=["orders"])


@orders_router.get("/get/totalsales")
def total_sales(service: OrderService = Depends(get_order_service)):
    return {"totalsales": service.total_sales()}


@orders_router.get("/get/count")
def order_count(service: OrderService = Depends(get_order_service)):
    return {"quantidadePedidos": service.count()}


@orders_router.get("/get/userorders/{user_id}")
def user_orders(user_id: str, service: OrderService = Depends(get_order_service)):
    return service.list_for_user(user_id)


@orders_router.get("")
def list_orders(service: OrderService = Depends(get_order_service)):
    return service.list()


@orders_router.get("/{order_id}")
def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    return service.get(order_id)


@orders_router.post("")
def create_order(order: OrderCreate, service: OrderService = Depends(get_order_service)):
    # total_price in the payload is ignored, the service computes it
    return service.create(order)


@orders_router.put("/{order_id}")
def update_order_status(order_id: str, body: OrderStatusUpdate,
                        service: OrderService = Depends(get_order_service)):
    return service.update_status(order_id, body.status)


@orders_router.delete("/{order_id}")
def delete_order(order_id: str, service: OrderService = Depends(get_order_service)):
    result = service.delete(order_id)
    return {"success": True, "message": "Order deleted", **result}


# Products

products_router = APIRouter(prefix=f"{API_PREFIX}/products", tags=["products"])


@products_router.get("/get/count")
def product_count(service: ProductService = Depends(get_product_service)):
    return {"productCount": service.count()}


@products_router.get("/get/featured/{count}", response_model=List[ProductResponse])
def featured_products(count: int = Path(..., ge=0),
                      service: ProductService = Depends(get_product_service)):
    return service.featured(count)


@products_router.get("", response_model=List[ProductResponse])
def list_products(categories: Optional[str] = None,
                  service: ProductService = Depends(get_product_service)):
    category_ids = [c for c in categories.split(",") if c] if categories else None
    return service.list(category_ids)


@products_router.get("/{product_id}", response_model=ProductResponse)
def get_product(product_id: str, service: ProductService = Depends(get_product_service)):
    return service.get(product_id)


@products_router.post("", response_model=ProductResponse)
def create_product(product: Product, service: ProductService = Depends(get_product_service)):
    return service.create(product)


@products_router.put("/{product_id}", response_model=ProductResponse)
def update_product(product_id: str, changes: ProductUpdate,
                   service: ProductService = Depends(get_product_service)):
    return service.update(product_id, changes)


@products_router.delete("/{product_id}")
def delete_product(product_id: str, service: ProductService = Depends(get_product_service)):
    service.delete(product_id)
    return {"success": True, "message": "Product deleted"}


# Categories

categories_router = APIRouter(prefix=f"{API_PREFIX}/categories", tags=["categories"])


@categories_router.get("", response_model=List[CategoryResponse])
def list_categories(service: CategoryService = Depends(get_category_service)):
    return service.list()


@categories_router.get("/{category_id}", response_model=CategoryResponse)
def get_category(category_id: str, service: CategoryService = Depends(get_category_service)):
    return service.get(category_id)


@categories_router.post("", response_model=CategoryResponse)
def create_category(category: Category, service: CategoryService = Depends(get_category_service)):
    return service.create(category)


@categories_router.put("/{category_id}", response_model=CategoryResponse)
def update_category(category_id: str, changes: CategoryUpdate,
                    service: CategoryService = Depends(get_category_service)):
    return service.update(category_id, changes)


@categories_router.delete("/{category_id}")
def delete_category(category_id: str, service: CategoryService = Depends(get_category_service)):
    service.delete(category_id)
    return {"success": True, "message": "Category deleted"}


# Users

users_router = APIRouter(prefix=f"{API_PREFIX}/users", tags=["users"])


@users_router.get("", response_model=List[UserResponse])
def list_users(service: UserService = Depends(get_user_service)):
    return service.list()


@users_router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: str, service: UserService = Depends(get_user_service)):
    return service.get(user_id)


@users_router.post("", response_model=UserResponse)
def create_user(user: User, service: UserService = Depends(get_user_service)):
    return service.create(user)


for router in (orders_router, products_router, categories_router, users_router):
    app.include_router(router)


@app.get("/")
def read_root():
    return {"message": "Storefront API is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
        "counts": {},
    }
    db = database.db
    if db is None:
        response["database"] = "⚠️  Available but not initialized"
        return response

    response["database"] = "✅ Available"
    response["database_name"] = db.name
    try:
        collections = db.list_collection_names()
        response["collections"] = collections[:10]
        response["counts"] = {name: db[name].estimated_document_count() for name in collections[:10]}
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.warning("database_check_failed", error=str(e))
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
