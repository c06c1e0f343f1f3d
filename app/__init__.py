import logging
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.configuration.settings import Configuration
from app.core.exceptions.app_exception import AppHttpException
from app.core.exceptions.checkout import CheckoutError
from app.database.connection import init_db
from app.functions.scheduler.scheduler import start_scheduler

from app.admin.admin import AdminRouter
from app.routes.order.order import OrderRouter
from app.routes.payment.payment import PaymentRouter

from app.tasks.websockets import routes as websocket_routes

configuration = Configuration()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logging.info(f"SISTEMA >>> Ambiente carregado: {configuration.environment}")


async def checkout_error_handler(request: Request, exc: CheckoutError):
    http_exception = exc.to_http_exception()
    if http_exception.status_code >= 500:
        logging.error(f"SISTEMA >>> {request.method} {request.url.path} -> {http_exception.status_code} {exc.detail}")
    return http_exception.to_response()


async def app_http_exception_handler(request: Request, exc: AppHttpException):
    return exc.to_response()


async def validation_error_handler(request: Request, exc: RequestValidationError):
    # O valor recebido fica fora da resposta: NaN/Infinity não são JSON válido
    errors = [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


def create_app():
    """
    Cria e configura a aplicação FastAPI, incluindo middlewares e rotas.
    """
    app = FastAPI(title=f"{configuration.store_name} API")

    logging.info("SISTEMA >>> Inicializando o banco de dados...")
    init_db()

    if configuration.scheduler_enabled:
        start_scheduler()
    else:
        logging.info("SISTEMA >>> Agendador desativado por configuração")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=configuration.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CheckoutError, checkout_error_handler)
    app.add_exception_handler(AppHttpException, app_http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(OrderRouter())
    app.include_router(PaymentRouter())
    app.include_router(AdminRouter())

    app.include_router(websocket_routes.router)

    return app
