# storefront/api/__init__.py
from fastapi import FastAPI
from storefront.api.routers import carts, orders, inventory
from storefront.api.routers.health import router as health_router


def create_app():
    app = FastAPI(title="Hardware Store - Cart & Orders", version="1.0.0")
    app.include_router(health_router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(inventory.router)
    return app
