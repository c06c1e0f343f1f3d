import logging
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from app.configuration.settings import Configuration

configuration = Configuration()


def _build_engine(database_url: str):
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # Banco em memória precisa de uma única conexão compartilhada
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return create_engine(database_url, **options)
    return create_engine(database_url, pool_pre_ping=True)


engine = _build_engine(configuration.resolve_database_url())


def get_session():
    with Session(engine) as session:
        yield session


def init_db():
    # Registra as tabelas no metadata antes do create_all
    import app.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logging.info("BANCO DE DADOS >>> Tabelas verificadas/criadas")
