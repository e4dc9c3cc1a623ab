import pytest
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from jose import jwt
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import farmstand.models  # noqa: F401
from farmstand.core.config import settings
from farmstand.core.deps import get_db
from farmstand.core.id_utils import generate_shortuuid
from farmstand.core.security import ALGORITHM
from farmstand.db.base import Base
from farmstand.main import app
from farmstand.models.expense import ExpenseRecord
from farmstand.models.farm import Farm
from farmstand.models.product import Product, ProductBatch, StoreProduct
from farmstand.models.user import User


class Seeder:
    """Writes catalog and identity rows the engine only reads."""

    def __init__(self, session_local):
        self._session_local = session_local

    def _save(self, row) -> str:
        with self._session_local() as db:
            db.add(row)
            db.commit()
            return row.id

    def farm(self, name: str = "Green Acres") -> str:
        return self._save(Farm(id=generate_shortuuid(), name=name))

    def user(self, *, role: str = "customer", farm_id: str | None = None, is_active: bool = True) -> str:
        user_id = generate_shortuuid()
        return self._save(
            User(
                id=user_id,
                email=f"{user_id.lower()}@example.com",
                full_name=role.replace("_", " ").title(),
                role=role,
                farm_id=farm_id,
                is_active=is_active,
            )
        )

    def batch(self, farm_id: str, name: str = "Season batch") -> str:
        return self._save(ProductBatch(id=generate_shortuuid(), farm_id=farm_id, name=name))

    def product(
        self,
        farm_id: str,
        *,
        quantity: int = 100,
        unit_price: str = "2.00",
        batch_id: str | None = None,
        name: str = "Tomatoes",
    ) -> str:
        return self._save(
            Product(
                id=generate_shortuuid(),
                farm_id=farm_id,
                name=name,
                category="vegetables",
                unit="kg",
                quantity=quantity,
                unit_price=Decimal(unit_price),
                total_value=Decimal(unit_price) * quantity,
                product_batch_id=batch_id,
            )
        )

    def listing(
        self,
        farm_id: str,
        *,
        stock: int = 10,
        price: str = "10.00",
        published: bool = True,
        name: str = "Tomatoes",
        product_id: str | None = None,
    ) -> str:
        product_id = product_id or self.product(farm_id, name=name)
        return self._save(
            StoreProduct(
                id=generate_shortuuid(),
                product_id=product_id,
                farm_id=farm_id,
                name=name,
                category="vegetables",
                unit="kg",
                selling_price=Decimal(price),
                available_stock=stock,
                is_published=published,
            )
        )

    def expense(self, farm_id: str, batch_id: str | None, amount: str) -> str:
        return self._save(
            ExpenseRecord(
                id=generate_shortuuid(),
                farm_id=farm_id,
                product_batch_id=batch_id,
                category="feed",
                amount=Decimal(amount),
            )
        )


def _memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def test_context():
    original_secret = settings.secret_key
    settings.secret_key = "test-secret-key"

    engine = _memory_engine()
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    settings.secret_key = original_secret


@pytest.fixture()
def session_local():
    engine = _memory_engine()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def file_session_local(tmp_path):
    """Separate connections per session, for interleaving two writers."""
    engine = create_engine(f"sqlite:///{tmp_path / 'farmstand.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_local):
    session = session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seed(session_local):
    return Seeder(session_local)


@pytest.fixture()
def api_seed(test_context):
    _, session_local = test_context
    return Seeder(session_local)


@pytest.fixture()
def file_seed(file_session_local):
    return Seeder(file_session_local)


def mint_token(user_id: str, *, token_type: str = "access", expires_in: timedelta = timedelta(minutes=30)) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": token_type,
        "jti": str(uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


@pytest.fixture()
def auth_headers(test_context):
    def _headers(user_id: str, **token_kwargs) -> dict[str, str]:
        return {"Authorization": f"Bearer {mint_token(user_id, **token_kwargs)}"}

    return _headers
