import importlib

from marketplace.core import config
from marketplace.core.database import make_engine


def test_default_url_uses_declared_postgres_driver(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    defaults = importlib.reload(config)

    engine = make_engine(defaults.DATABASE_URL)

    assert engine.dialect.name == "postgresql"
    assert engine.dialect.driver == "psycopg2"

