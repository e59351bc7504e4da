from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from marketplace.api.routes import addresses, cart, inventory, orders
from marketplace.core.exceptions import MarketplaceError
from marketplace.core.logging_config import setup_logging
import logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Local Marketplace Backend",
    description="Order lifecycle and inventory service for a multi-vendor local marketplace",
    version="1.0.0"
)

@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    logger.info(f"{request.method} {request.url.path} failed: {exc.kind.value} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Include routers
app.include_router(cart.router, prefix="/api/v1/cart", tags=["cart"])
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])
app.include_router(inventory.router, prefix="/api/v1/inventory", tags=["inventory"])
app.include_router(addresses.router, prefix="/api/v1/addresses", tags=["addresses"])

@app.get("/")
async def root():
    return {"message": "Local Marketplace API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
