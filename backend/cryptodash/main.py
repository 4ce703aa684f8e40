import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cryptodash.config import settings
from cryptodash.database import init_db
from cryptodash.exceptions import AppError
from cryptodash.price_feeds import BinancePriceFeed
from cryptodash.routers import engine_router
from cryptodash.routers.engine_router import set_stop_order_engine
from cryptodash.services.email_service import EmailNotifier
from cryptodash.trading_engine import StopOrderEngine

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="CryptoDash Trading Engine")

# Stop-order engine - checks stop loss / trailing stops every 30s,
# refreshes moving averages hourly
stop_order_engine = StopOrderEngine(price_oracle=BinancePriceFeed(), notifier=EmailNotifier())
set_stop_order_engine(stop_order_engine)

app.include_router(engine_router.router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def startup_event():
    logger.info("Initializing database...")
    await init_db()

    if settings.engine_enabled:
        await stop_order_engine.start()
    else:
        logger.warning("Trading engine disabled (ENGINE_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down - waiting for in-flight liquidations...")
    result = await stop_order_engine.stop()
    logger.info(result.get("message", "Trading engine stopped"))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
