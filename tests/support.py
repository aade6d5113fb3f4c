"""
Shared test setup: an application bound to its own test database
"""

import logging
import os
from unittest import TestCase

from promo_admin import create_app
from promo_admin.models import Admin, AdminToken, BlogPost, PromoCode, PromoCodeRequest, db
from promo_admin.services.auth import GoogleUser
from tests.factories import AdminFactory

# SQLite in memory unless DATABASE_URI points at a real test database
DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///:memory:")
ADMIN_EMAIL = "admin@example.com"
CSRF_TOKEN = "test-csrf-token"


def make_app(**overrides):
    """Creates an app configured for testing"""
    config = {
        "TESTING": True,
        "DEBUG": False,
        "SQLALCHEMY_DATABASE_URI": DATABASE_URI,
        "SECRET_KEY": "testing",
        "GOOGLE_CLIENT_ID": "test-client-id",
        "GOOGLE_CLIENT_SECRET": "test-client-secret",
        "OAUTH_REDIRECT_URL": "http://localhost/auth/callback",
    }
    config.update(overrides)
    app = create_app(config)
    app.logger.setLevel(logging.CRITICAL)
    return app


def admin_user(email: str = ADMIN_EMAIL) -> GoogleUser:
    """A Google identity for the seeded admin"""
    return GoogleUser(id="1234567890", email=email, name="Ada Admin", given_name="Ada")


def clear_tables():
    """Empties every table"""
    for model in (PromoCodeRequest, PromoCode, BlogPost, AdminToken, Admin):
        db.session.query(model).delete()
    db.session.commit()


def seed_admin(email: str = ADMIN_EMAIL, is_admin: bool = True) -> Admin:
    """Adds an allow-list entry"""
    admin = AdminFactory(email=email, is_admin=is_admin)
    admin.create()
    return admin


class ServiceTestCase(TestCase):
    """
    Runs every test inside a request context with a signed-in admin

    Subclasses reach the services through self.services.
    """

    app = None

    @classmethod
    def setUpClass(cls):
        """Run once before all tests"""
        cls.app = make_app()
        cls.services = cls.app.extensions["promo_admin"]

    def setUp(self):
        """Runs before each test"""
        self.ctx = self.app.test_request_context()
        self.ctx.push()
        clear_tables()
        seed_admin()
        self.assertTrue(self.services.gate.establish_session(admin_user()))

    def tearDown(self):
        """Runs after each test"""
        db.session.remove()
        self.ctx.pop()


class ClientTestCase(TestCase):
    """Drives the app through the Flask test client"""

    app = None

    @classmethod
    def setUpClass(cls):
        """Run once before all tests"""
        cls.app = make_app()
        cls.services = cls.app.extensions["promo_admin"]

    def setUp(self):
        """Runs before each test"""
        self.ctx = self.app.app_context()
        self.ctx.push()
        clear_tables()
        self.client = self.app.test_client()

    def tearDown(self):
        """Runs after each test"""
        db.session.remove()
        self.ctx.pop()

    def sign_in(self, email: str = ADMIN_EMAIL):
        """Seeds the admin and puts its identity in the client's session"""
        seed_admin(email)
        with self.client.session_transaction() as sess:
            sess["auth_user"] = admin_user(email).to_dict()
            sess["auth_tokens"] = {"access_token": "token", "expires_at": None}
            sess["_csrf"] = CSRF_TOKEN
