import logging
import os
from dotenv import load_dotenv

# Configuração de logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

# Carrega as variáveis de ambiente
load_dotenv(dotenv_path=".env", encoding="utf-8")

# Silencia logs de SQLAlchemy
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Configuration:
    def __init__(self):

        # Url base
        self.base_url = os.getenv("BASE_URL", "http://localhost:8000")

        # Configurações do ambiente e banco de dados
        self.environment = os.getenv("ENVIRONMENT", "development").lower()
        self.database_url = os.getenv("DATABASE_URL")

        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
            if origin.strip()
        ]

        # Token do painel administrativo
        self.secret_key = os.getenv("SECRET_KEY")

        # POSTGRES PRODUCTION
        self.db_user = os.getenv("DB_USER")
        self.db_password = os.getenv("DB_PASSWORD")
        self.db_host = os.getenv("DB_HOST")
        self.db_port = os.getenv("DB_PORT", "5432")
        self.db_name = os.getenv("DB_NAME")

        # POSTGRES
        self.db_dev_user = os.getenv("DB_DEV_USER")
        self.db_dev_password = os.getenv("DB_DEV_PASSWORD")
        self.db_dev_host = os.getenv("DB_DEV_HOST")
        self.db_dev_port = os.getenv("DB_DEV_PORT", "5432")
        self.db_dev_name = os.getenv("DB_DEV_NAME")

        # Loja
        self.store_name = os.getenv("STORE_NAME", "DoceEntrega")

        # Mercado Pago
        self.mercado_pago_access_token_test = os.getenv("MERCADO_PAGO_ACCESS_TOKEN_TEST")
        self.mercado_pago_access_token_prod = os.getenv("MERCADO_PAGO_ACCESS_TOKEN_PROD")
        self.mercado_pago_webhook_secret = os.getenv("MERCADO_PAGO_WEBHOOK_SECRET")
        self.webhook_signature_enforced = _env_bool("MERCADO_PAGO_WEBHOOK_ENFORCE_SIGNATURE", True)

        # Pagamentos
        self.pix_expiration_minutes = int(os.getenv("PIX_EXPIRATION_MINUTES", 30))
        self.payment_max_amount = float(os.getenv("PAYMENT_MAX_AMOUNT", 100000))
        self.payment_persist_attempts = int(os.getenv("PAYMENT_PERSIST_ATTEMPTS", 3))
        self.payment_status_poll_seconds = float(os.getenv("PAYMENT_STATUS_POLL_SECONDS", 5))

        # Agendador
        self.scheduler_enabled = _env_bool("SCHEDULER_ENABLED", True)
        self.payment_sweep_minutes = int(os.getenv("PAYMENT_SWEEP_MINUTES", 5))

    @property
    def mercado_pago_access_token(self):
        if self.environment == "production":
            return self.mercado_pago_access_token_prod
        return self.mercado_pago_access_token_test

    def connect_to_postgresql(self):
        # Montar a URL de conexão corretamente
        db_url = f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
        logging.info(f"BANCO DE DADOS >>> SELECIONADO DE PRODUÇÃO -> {self.db_host}/{self.db_name}")
        return db_url

    def connect_to_postgresql_dev(self):
        # Montar a URL de conexão corretamente
        db_url = f"postgresql://{self.db_dev_user}:{self.db_dev_password}@{self.db_dev_host}:{self.db_dev_port}/{self.db_dev_name}"
        logging.info(f"BANCO DE DADOS >>> SELECIONADO DE DESENVOLVIMENTO -> {self.db_dev_host}/{self.db_dev_name}")
        return db_url

    def resolve_database_url(self):
        if self.database_url:
            return self.database_url
        if self.environment == "production":
            return self.connect_to_postgresql()
        if self.db_dev_host:
            return self.connect_to_postgresql_dev()
        logging.info("BANCO DE DADOS >>> Nenhum Postgres configurado, usando SQLite local")
        return "sqlite:///./doceentrega.db"
