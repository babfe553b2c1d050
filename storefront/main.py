import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.config import settings
from storefront.database import create_tables
from storefront.presentation.api import router as orders_router
from storefront.presentation.customer_api import router as customer_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    if settings.AUTO_CREATE_TABLES:
        await create_tables()
        logger.info("Таблицы созданы")

    yield

    logger.info("Приложение останавливается...")


app = FastAPI(
    title="Storefront Order Service",
    description="Оформление и сопровождение заказов магазина",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(orders_router, prefix="/api")
app.include_router(customer_router, prefix="/api")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Ошибки схемы запроса: 400 с сообщениями по полям"""
    errors = [
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    ]
    logger.info(f"Невалидный запрос {request.method} {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": errors}
    )


@app.get("/")
async def root():
    return {"message": "Storefront Order Service работает"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
