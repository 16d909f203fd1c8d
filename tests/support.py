"""Shared fixtures: a fresh schema per test, user/product factories, an authenticated client."""

import unittest

from fastapi.testclient import TestClient

from database import Base, SessionLocal, engine, init_db
from models.product import Product
from models.users import User
from utils.tokenJWT import create_access_token


class DatabaseTestCase(unittest.TestCase):
    def setUp(self):
        init_db()
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        self.db = SessionLocal()
        self.user = self.make_user("admin@example.com", role="admin")

    def tearDown(self):
        self.db.close()

    def make_user(self, email, role="tech", status="active"):
        user = User(email=email, full_name=email.split("@")[0].title(), role=role, status=status)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def make_product(self, stock_code, name=None, quantity=0, min_stock_level=0, **extra):
        product = Product(
            stock_code=stock_code,
            name=name or f"Product {stock_code}",
            quantity_on_hand=quantity,
            min_stock_level=min_stock_level,
            **extra,
        )
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product

    def fresh(self, model, **filters):
        """Query bypassing anything cached in the test session."""
        self.db.expire_all()
        return self.db.query(model).filter_by(**filters)


class ApiTestCase(DatabaseTestCase):
    def setUp(self):
        super().setUp()
        from main import app

        self.client = TestClient(app)

    def auth(self, user=None):
        user = user or self.user
        token = create_access_token({"sub": user.email})
        return {"Authorization": f"Bearer {token}"}
