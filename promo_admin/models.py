######################################################################
# Copyright 2016, 2024 John J. Rofrano. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
######################################################################

"""
Models for the Promo Admin dashboard

Tables:
- promo_codes          codes that can be handed out to customers
- promo_code_requests  redemptions of those codes (written by the storefront)
- admins               allow-list consulted at every sign-in
- admin_tokens         Google refresh tokens of signed-in admins
- blog_posts           multilingual blog articles

Single-item lookups (find) return object|None; multi-item lookups return list.
"""

import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from flask_sqlalchemy import SQLAlchemy

logger = logging.getLogger("promo_admin")

# SQLAlchemy handle; bound to the app in create_app()
db = SQLAlchemy()

CODE_TYPES = ("starter", "standard")
REGIONS = ("americas", "asia-pacific", "emea")

LANGUAGES = (
    ("en", "English"),
    ("fr", "French"),
    ("es", "Spanish"),
    ("pt", "Portuguese"),
    ("de", "German"),
    ("ja", "Japanese"),
    ("hi", "Hindi"),
    ("ru", "Russian"),
)
TRANSLATED_FIELDS = tuple(
    f"{prefix}_{code}" for prefix in ("title", "content", "excerpt") for code, _ in LANGUAGES
)


class DataValidationError(Exception):
    """Used for data validation errors when deserializing or updating."""


class DatabaseError(Exception):
    """Used for database operation failures (commit/connection/constraint errors)."""


class RecordNotFound(Exception):
    """Used when an operation targets a row that does not exist."""


def new_id() -> str:
    """Returns a fresh row identifier"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Timezone-aware 'now' used for all timestamps"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def normalize_choice(value, choices: Iterable[str], field: str) -> str:
    """Lowercases an enum-like value and checks it against the allowed choices"""
    normalized = str(value or "").strip().lower()
    if normalized not in choices:
        raise DataValidationError(
            f"Field '{field}' must be one of: {', '.join(choices)}; received {value!r}"
        )
    return normalized


######################################################################
#  P E R S I S T E N T   B A S E   M O D E L
######################################################################
class PersistentBase:
    """Base class added persistent methods"""

    def create(self):
        """Creates this record in the database."""
        logger.info("Creating %s", self)
        if not self.id:
            self.id = new_id()
        try:
            db.session.add(self)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error("Error creating record: %s", self)
            raise DatabaseError(e) from e

    def update(self):
        """Updates this record in the database."""
        logger.info("Saving %s", self)
        if not self.id:
            raise DataValidationError("Field 'id' is required for update")
        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error("Error updating record: %s", self)
            raise DatabaseError(e) from e

    def delete(self):
        """Removes this record from the data store."""
        logger.info("Deleting %s", self)
        try:
            db.session.delete(self)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error("Error deleting record: %s", self)
            raise DatabaseError(e) from e

    @classmethod
    def all(cls) -> list:
        """Returns all of the records in the database"""
        logger.info("Processing all records of %s", cls.__name__)
        return list(cls.query.all())

    @classmethod
    def find(cls, by_id):
        """Finds a record by its ID (single object or None)."""
        logger.info("Processing lookup for id %s ...", by_id)
        if not by_id:
            return None
        return db.session.get(cls, str(by_id))

    @classmethod
    def remove_many(cls, ids: Iterable[str]) -> int:
        """Deletes the rows with the given ids inside the current transaction."""
        ids = [str(i) for i in ids]
        if not ids:
            return 0
        return cls.query.filter(cls.id.in_(ids)).delete(synchronize_session=False)


######################################################################
#  P R O M O   C O D E
######################################################################
class PromoCode(db.Model, PersistentBase):
    """
    Class that represents a promotional code
    """

    __tablename__ = "promo_codes"

    ##################################################
    # Table Schema
    ##################################################
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    code = db.Column(db.String(255), unique=True, nullable=False)
    type = db.Column(db.String(16), nullable=False)
    region = db.Column(db.String(16), nullable=False)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<PromoCode {self.code} id=[{self.id}]>"

    def serialize(self) -> dict:
        """Serializes a PromoCode into a dictionary."""
        return {
            "id": self.id,
            "code": self.code,
            "type": self.type,
            "region": self.region,
            "is_used": bool(self.is_used),
            "created_at": _isoformat(self.created_at),
        }

    def deserialize(self, data: dict):
        """
        Deserializes a PromoCode from a dictionary.

        Args:
            data (dict): a dictionary containing the promo code data
        """
        try:
            code = str(data["code"]).strip()
            if not code:
                raise DataValidationError("Field 'code' must not be empty")
            self.code = code
            self.type = normalize_choice(data["type"], CODE_TYPES, "type")
            self.region = normalize_choice(data["region"], REGIONS, "region")
            is_used = data.get("is_used", False)
            if not isinstance(is_used, bool):
                raise DataValidationError("Field 'is_used' must be a boolean")
            self.is_used = is_used
        except KeyError as error:
            raise DataValidationError(f"Invalid promo code: missing '{error.args[0]}'") from error
        except (AttributeError, TypeError) as error:
            raise DataValidationError(
                "Invalid promo code: body contained malformed or invalid data"
            ) from error
        return self

    @classmethod
    def existing_codes(cls, codes: Iterable[str]) -> Set[str]:
        """Returns the subset of the given code strings already stored"""
        codes = list(codes)
        if not codes:
            return set()
        rows = db.session.query(cls.code).filter(cls.code.in_(codes)).all()
        return {row.code for row in rows}

    @classmethod
    def find_filtered(
        cls,
        code_type: Optional[str] = None,
        region: Optional[str] = None,
        is_used: Optional[bool] = None,
    ) -> List["PromoCode"]:
        """Returns the codes matching every supplied filter, newest first"""
        logger.info("Processing query type=%s region=%s is_used=%s", code_type, region, is_used)
        query = cls.query
        if code_type:
            query = query.filter(cls.type == code_type)
        if region:
            query = query.filter(cls.region == region)
        if is_used is not None:
            query = query.filter(cls.is_used == is_used)
        return list(query.order_by(cls.created_at.desc()).all())

    @classmethod
    def stats_rows(cls) -> list:
        """Returns (type, region, is_used) for every code"""
        return db.session.query(cls.type, cls.region, cls.is_used).all()


######################################################################
#  P R O M O   C O D E   R E Q U E S T  (redemption)
######################################################################
class PromoCodeRequest(db.Model, PersistentBase):
    """
    Class that represents the redemption of a PromoCode

    promo_code_id is a plain reference: rows are written by the storefront and
    a request pointing at a missing code is excluded from joined listings.
    """

    __tablename__ = "promo_code_requests"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_identifier = db.Column(db.String(255), nullable=False, default="")
    business_email = db.Column(db.String(255), nullable=False, default="")
    promo_code_id = db.Column(db.String(36), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)
    region = db.Column(db.String(16), nullable=False)
    verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<PromoCodeRequest id=[{self.id}] code=[{self.promo_code_id}]>"

    def serialize(self) -> dict:
        """Serializes a PromoCodeRequest into a dictionary."""
        return {
            "id": self.id,
            "user_identifier": self.user_identifier,
            "business_email": self.business_email,
            "promo_code_id": self.promo_code_id,
            "type": self.type,
            "region": self.region,
            "verified": bool(self.verified),
            "created_at": _isoformat(self.created_at),
        }

    @classmethod
    def find_redeemed(cls) -> list:
        """Inner join of requests to their codes, newest redemption first"""
        logger.info("Processing redeemed codes query")
        return (
            db.session.query(cls, PromoCode)
            .join(PromoCode, PromoCode.id == cls.promo_code_id)
            .order_by(cls.created_at.desc())
            .all()
        )

    @classmethod
    def code_ids_for(cls, ids: Iterable[str]) -> List[str]:
        """Returns the distinct promo code ids referenced by the given requests"""
        ids = [str(i) for i in ids]
        if not ids:
            return []
        rows = db.session.query(cls.promo_code_id).filter(cls.id.in_(ids)).all()
        return sorted({row.promo_code_id for row in rows})

    @classmethod
    def stats_rows(cls) -> list:
        """Returns (verified, created_at) for every request"""
        return db.session.query(cls.verified, cls.created_at).all()


######################################################################
#  A D M I N   A L L O W - L I S T
######################################################################
class Admin(db.Model, PersistentBase):
    """
    An entry of the admin allow-list. Read-only to the dashboard.
    """

    __tablename__ = "admins"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self):
        return f"<Admin {self.email} is_admin={self.is_admin}>"

    @classmethod
    def is_allowed(cls, email: str) -> bool:
        """True when email is on the allow-list with is_admin set (exact match)"""
        row = cls.query.filter(cls.email == email, cls.is_admin.is_(True)).first()
        return row is not None


class AdminToken(db.Model, PersistentBase):
    """
    Google refresh token of a signed-in admin

    The session cookie only carries the row id; the token stays server side.
    """

    __tablename__ = "admin_tokens"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    refresh_token = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<AdminToken {self.email}>"

    @classmethod
    def issue(cls, email: str, refresh_token: str) -> str:
        """Stores a refresh token and returns the opaque handle for the session"""
        token = cls(id=secrets.token_urlsafe(32), email=email, refresh_token=refresh_token)
        token.create()
        return token.id

    @classmethod
    def lookup(cls, handle: Optional[str]) -> Optional[str]:
        """Returns the refresh token behind a handle, if it still exists"""
        token = cls.find(handle)
        return token.refresh_token if token else None

    @classmethod
    def revoke(cls, handle: Optional[str]):
        """Forgets the refresh token behind a handle"""
        if not handle:
            return
        cls.query.filter(cls.id == handle).delete(synchronize_session=False)
        db.session.commit()


######################################################################
#  B L O G   P O S T
######################################################################
class BlogPost(db.Model, PersistentBase):
    """
    Class that represents a Blog Post

    Every post carries title/content/excerpt for each of the LANGUAGES.
    """

    __tablename__ = "blog_posts"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    slug = db.Column(db.String(255), nullable=False, default="", index=True)
    author = db.Column(db.String(255), nullable=False, default="")
    category = db.Column(db.String(255), nullable=False, default="")
    tags = db.Column(db.Text, nullable=False, default="")
    featured_image = db.Column(db.Text, nullable=False, default="")
    published = db.Column(db.Boolean, nullable=False, default=False)
    featured = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    # Translations
    title_en = db.Column(db.Text, nullable=False, default="")
    title_fr = db.Column(db.Text, nullable=False, default="")
    title_es = db.Column(db.Text, nullable=False, default="")
    title_pt = db.Column(db.Text, nullable=False, default="")
    title_de = db.Column(db.Text, nullable=False, default="")
    title_ja = db.Column(db.Text, nullable=False, default="")
    title_hi = db.Column(db.Text, nullable=False, default="")
    title_ru = db.Column(db.Text, nullable=False, default="")
    content_en = db.Column(db.Text, nullable=False, default="")
    content_fr = db.Column(db.Text, nullable=False, default="")
    content_es = db.Column(db.Text, nullable=False, default="")
    content_pt = db.Column(db.Text, nullable=False, default="")
    content_de = db.Column(db.Text, nullable=False, default="")
    content_ja = db.Column(db.Text, nullable=False, default="")
    content_hi = db.Column(db.Text, nullable=False, default="")
    content_ru = db.Column(db.Text, nullable=False, default="")
    excerpt_en = db.Column(db.Text, nullable=False, default="")
    excerpt_fr = db.Column(db.Text, nullable=False, default="")
    excerpt_es = db.Column(db.Text, nullable=False, default="")
    excerpt_pt = db.Column(db.Text, nullable=False, default="")
    excerpt_de = db.Column(db.Text, nullable=False, default="")
    excerpt_ja = db.Column(db.Text, nullable=False, default="")
    excerpt_hi = db.Column(db.Text, nullable=False, default="")
    excerpt_ru = db.Column(db.Text, nullable=False, default="")

    TEXT_FIELDS = ("slug", "author", "category", "tags", "featured_image") + TRANSLATED_FIELDS
    FLAG_FIELDS = ("published", "featured")

    def __repr__(self):
        return f"<BlogPost {self.slug} id=[{self.id}]>"

    def tag_list(self) -> List[str]:
        """Splits the comma-separated tags, dropping blanks"""
        return [tag.strip() for tag in (self.tags or "").split(",") if tag.strip()]

    def serialize(self) -> dict:
        """Serializes a BlogPost into a dictionary; text fields are never None"""
        data = {"id": self.id}
        for field in self.TEXT_FIELDS:
            data[field] = getattr(self, field) or ""
        for field in self.FLAG_FIELDS:
            data[field] = bool(getattr(self, field))
        data["created_at"] = _isoformat(self.created_at)
        data["updated_at"] = _isoformat(self.updated_at)
        return data

    def deserialize(self, data: dict, partial: bool = False):
        """
        Deserializes a BlogPost from a dictionary.

        Args:
            data (dict): the post fields
            partial (bool): only touch the fields present in data
        """
        if not isinstance(data, dict):
            raise DataValidationError(
                "Invalid blog post: body contained malformed or invalid data"
            )
        for field in self.TEXT_FIELDS:
            if field in data:
                value = data[field]
                if value is not None and not isinstance(value, str):
                    raise DataValidationError(f"Field '{field}' must be a string")
                setattr(self, field, value or "")
            elif not partial:
                setattr(self, field, "")
        for field in self.FLAG_FIELDS:
            if field in data:
                if not isinstance(data[field], bool):
                    raise DataValidationError(f"Field '{field}' must be a boolean")
                setattr(self, field, data[field])
            elif not partial:
                setattr(self, field, False)
        return self

    @classmethod
    def find_all(cls, published_only: bool = False) -> List["BlogPost"]:
        """Returns posts newest first, optionally only the published ones"""
        logger.info("Processing blog posts query published_only=%s", published_only)
        query = cls.query
        if published_only:
            query = query.filter(cls.published.is_(True))
        return list(query.order_by(cls.created_at.desc()).all())

    @classmethod
    def stats_rows(cls) -> list:
        """Returns (published, featured) for every post"""
        return db.session.query(cls.published, cls.featured).all()
