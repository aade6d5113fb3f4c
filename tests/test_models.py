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
Test cases for the data models
"""

# pylint: disable=duplicate-code
from datetime import datetime, timedelta, timezone
from unittest import TestCase
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from promo_admin.models import (
    Admin,
    BlogPost,
    DatabaseError,
    DataValidationError,
    PromoCode,
    PromoCodeRequest,
    as_utc,
    db,
    normalize_choice,
)
from tests.factories import (
    BlogPostFactory,
    PromoCodeFactory,
    PromoCodeRequestFactory,
)
from tests.support import clear_tables, make_app, seed_admin


######################################################################
#  P R O M O   C O D E   M O D E L
######################################################################
class TestPromoCodeModel(TestCase):
    """Test Cases for the PromoCode Model"""

    @classmethod
    def setUpClass(cls):
        """This runs once before the entire test suite"""
        cls.app = make_app()

    def setUp(self):
        """This runs before each test"""
        self.ctx = self.app.app_context()
        self.ctx.push()
        clear_tables()

    def tearDown(self):
        """This runs after each test"""
        db.session.remove()
        self.ctx.pop()

    def test_create_a_promo_code(self):
        """It should Create a promo code and assign an id"""
        code = PromoCodeFactory(code="WELCOME10", type="starter", region="emea")
        code.create()
        self.assertIsNotNone(code.id)
        found = PromoCode.all()
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].code, "WELCOME10")
        self.assertFalse(found[0].is_used)

    def test_serialize_a_promo_code(self):
        """It should serialize a PromoCode with an ISO timestamp"""
        code = PromoCodeFactory(code="ABC", type="standard", region="americas")
        code.create()
        data = code.serialize()
        self.assertEqual(data["id"], code.id)
        self.assertEqual(data["code"], "ABC")
        self.assertEqual(data["type"], "standard")
        self.assertEqual(data["region"], "americas")
        self.assertIs(data["is_used"], False)
        self.assertTrue(data["created_at"].endswith("+00:00"))

    def test_deserialize_a_promo_code(self):
        """It should deserialize and normalize a PromoCode"""
        code = PromoCode().deserialize(
            {"code": "  SPRING  ", "type": "Starter", "region": "EMEA", "is_used": True}
        )
        self.assertEqual(code.code, "SPRING")
        self.assertEqual(code.type, "starter")
        self.assertEqual(code.region, "emea")
        self.assertTrue(code.is_used)

    def test_deserialize_missing_field(self):
        """It should not deserialize a PromoCode without a region"""
        with self.assertRaises(DataValidationError) as ctx:
            PromoCode().deserialize({"code": "X", "type": "starter"})
        self.assertIn("region", str(ctx.exception))

    def test_deserialize_bad_values(self):
        """It should reject unknown types, empty codes and non-boolean flags"""
        with self.assertRaises(DataValidationError):
            PromoCode().deserialize({"code": "X", "type": "gold", "region": "emea"})
        with self.assertRaises(DataValidationError):
            PromoCode().deserialize({"code": "   ", "type": "starter", "region": "emea"})
        with self.assertRaises(DataValidationError):
            PromoCode().deserialize(
                {"code": "X", "type": "starter", "region": "emea", "is_used": "yes"}
            )
        with self.assertRaises(DataValidationError):
            PromoCode().deserialize(None)

    def test_find_filtered(self):
        """It should filter codes by type, region and used flag"""
        PromoCodeFactory(type="starter", region="emea", is_used=False).create()
        PromoCodeFactory(type="starter", region="americas", is_used=True).create()
        PromoCodeFactory(type="standard", region="emea", is_used=False).create()

        self.assertEqual(len(PromoCode.find_filtered()), 3)
        self.assertEqual(len(PromoCode.find_filtered(code_type="starter")), 2)
        rows = PromoCode.find_filtered(code_type="starter", region="emea")
        self.assertEqual(len(rows), 1)
        self.assertEqual((rows[0].type, rows[0].region), ("starter", "emea"))
        self.assertEqual(len(PromoCode.find_filtered(is_used=True)), 1)
        self.assertEqual(len(PromoCode.find_filtered(is_used=False)), 2)

    def test_find_filtered_newest_first(self):
        """It should list codes newest first"""
        now = datetime.now(timezone.utc)
        PromoCodeFactory(code="OLD", created_at=now - timedelta(days=2)).create()
        PromoCodeFactory(code="NEW", created_at=now).create()
        self.assertEqual([c.code for c in PromoCode.find_filtered()], ["NEW", "OLD"])

    def test_existing_codes(self):
        """It should report which codes are already stored"""
        PromoCodeFactory(code="A1").create()
        self.assertEqual(PromoCode.existing_codes(["A1", "B2"]), {"A1"})
        self.assertEqual(PromoCode.existing_codes([]), set())

    def test_find_by_id(self):
        """It should Find a code by id or return None"""
        code = PromoCodeFactory()
        code.create()
        self.assertEqual(PromoCode.find(code.id).code, code.code)
        self.assertIsNone(PromoCode.find("no-such-id"))
        self.assertIsNone(PromoCode.find(None))

    def test_update_and_delete(self):
        """It should Update and Delete a code"""
        code = PromoCodeFactory(is_used=False)
        code.create()
        code.is_used = True
        code.update()
        self.assertTrue(PromoCode.find(code.id).is_used)
        code.delete()
        self.assertEqual(PromoCode.all(), [])

    def test_update_no_id(self):
        """It should not Update a code without an id"""
        code = PromoCodeFactory()
        code.id = None
        self.assertRaises(DataValidationError, code.update)

    def test_remove_many(self):
        """It should bulk delete by id and ignore unknown ids"""
        first, second, third = PromoCodeFactory(), PromoCodeFactory(), PromoCodeFactory()
        for code in (first, second, third):
            code.create()
        deleted = PromoCode.remove_many([first.id, second.id, "missing"])
        db.session.commit()
        self.assertEqual(deleted, 2)
        self.assertEqual([c.id for c in PromoCode.all()], [third.id])
        self.assertEqual(PromoCode.remove_many([]), 0)

    def test_duplicate_code_fails(self):
        """It should raise DatabaseError for a duplicate code"""
        PromoCodeFactory(code="DUP").create()
        with self.assertRaises(DatabaseError):
            PromoCodeFactory(code="DUP").create()

    @patch("promo_admin.models.db.session.commit")
    def test_create_failure_rolls_back(self, exception_mock):
        """It should raise DatabaseError when the commit fails"""
        exception_mock.side_effect = SQLAlchemyError("commit failed")
        with self.assertRaises(DatabaseError):
            PromoCodeFactory().create()

    @patch("promo_admin.models.db.session.commit")
    def test_delete_failure(self, exception_mock):
        """It should raise DatabaseError when a delete cannot be committed"""
        code = PromoCodeFactory()
        code.create()
        exception_mock.side_effect = SQLAlchemyError("commit failed")
        self.assertRaises(DatabaseError, code.delete)


######################################################################
#  R E D E M P T I O N S   A N D   A D M I N S
######################################################################
class TestRedemptionModel(TestCase):
    """Test Cases for PromoCodeRequest and Admin"""

    @classmethod
    def setUpClass(cls):
        """This runs once before the entire test suite"""
        cls.app = make_app()

    def setUp(self):
        """This runs before each test"""
        self.ctx = self.app.app_context()
        self.ctx.push()
        clear_tables()

    def tearDown(self):
        """This runs after each test"""
        db.session.remove()
        self.ctx.pop()

    def test_find_redeemed_joins_codes(self):
        """It should join requests to codes and skip dangling references"""
        now = datetime.now(timezone.utc)
        code = PromoCodeFactory(code="JOINED", is_used=True)
        code.create()
        older = PromoCodeRequestFactory(promo_code_id=code.id, created_at=now - timedelta(hours=1))
        older.create()
        other = PromoCodeFactory(code="SECOND", is_used=True)
        other.create()
        newer = PromoCodeRequestFactory(promo_code_id=other.id, created_at=now)
        newer.create()
        PromoCodeRequestFactory(promo_code_id="gone").create()

        rows = PromoCodeRequest.find_redeemed()
        self.assertEqual([(r.id, c.code) for r, c in rows], [(newer.id, "SECOND"), (older.id, "JOINED")])

    def test_code_ids_for(self):
        """It should collect the distinct code ids of some requests"""
        code = PromoCodeFactory()
        code.create()
        first = PromoCodeRequestFactory(promo_code_id=code.id)
        first.create()
        second = PromoCodeRequestFactory(promo_code_id=code.id)
        second.create()
        self.assertEqual(PromoCodeRequest.code_ids_for([first.id, second.id]), [code.id])
        self.assertEqual(PromoCodeRequest.code_ids_for([]), [])

    def test_serialize_request(self):
        """It should serialize a PromoCodeRequest"""
        request = PromoCodeRequestFactory(promo_code_id="abc", verified=True)
        request.create()
        data = request.serialize()
        self.assertEqual(data["promo_code_id"], "abc")
        self.assertIs(data["verified"], True)
        self.assertIn("business_email", data)

    def test_admin_allow_list(self):
        """It should allow only exact emails flagged as admin"""
        seed_admin("boss@example.com")
        seed_admin("former@example.com", is_admin=False)
        self.assertTrue(Admin.is_allowed("boss@example.com"))
        self.assertFalse(Admin.is_allowed("BOSS@example.com"))
        self.assertFalse(Admin.is_allowed("former@example.com"))
        self.assertFalse(Admin.is_allowed("stranger@example.com"))


######################################################################
#  B L O G   P O S T   M O D E L
######################################################################
class TestBlogPostModel(TestCase):
    """Test Cases for the BlogPost Model"""

    @classmethod
    def setUpClass(cls):
        """This runs once before the entire test suite"""
        cls.app = make_app()

    def setUp(self):
        """This runs before each test"""
        self.ctx = self.app.app_context()
        self.ctx.push()
        clear_tables()

    def tearDown(self):
        """This runs after each test"""
        db.session.remove()
        self.ctx.pop()

    def test_serialize_never_returns_none_text(self):
        """It should serialize missing translations as empty strings"""
        post = BlogPostFactory()
        post.create()
        data = post.serialize()
        self.assertEqual(data["title_ja"], "")
        self.assertEqual(data["content_ru"], "")
        self.assertEqual(data["excerpt_hi"], "")
        self.assertEqual(data["title_en"], post.title_en)
        self.assertIs(data["published"], False)

    def test_tag_list(self):
        """It should split tags on commas and drop blanks"""
        post = BlogPost(tags=" news, ,launch ,, promo ")
        self.assertEqual(post.tag_list(), ["news", "launch", "promo"])
        self.assertEqual(BlogPost(tags="").tag_list(), [])

    def test_deserialize_full(self):
        """It should reset absent fields on a full deserialize"""
        post = BlogPost(title_fr="Bonjour", featured=True)
        post.deserialize({"title_en": "Hello", "published": True})
        self.assertEqual(post.title_en, "Hello")
        self.assertEqual(post.title_fr, "")
        self.assertTrue(post.published)
        self.assertFalse(post.featured)

    def test_deserialize_partial(self):
        """It should only touch given fields on a partial deserialize"""
        post = BlogPost(title_fr="Bonjour", featured=True)
        post.deserialize({"title_en": "Hello"}, partial=True)
        self.assertEqual(post.title_fr, "Bonjour")
        self.assertTrue(post.featured)

    def test_deserialize_bad_types(self):
        """It should reject non-string text and non-boolean flags"""
        self.assertRaises(DataValidationError, BlogPost().deserialize, {"title_en": 5})
        self.assertRaises(DataValidationError, BlogPost().deserialize, {"published": "yes"})
        self.assertRaises(DataValidationError, BlogPost().deserialize, ["not", "a", "dict"])

    def test_find_all_published_only(self):
        """It should list only published posts when asked"""
        BlogPostFactory(published=True).create()
        BlogPostFactory(published=False).create()
        self.assertEqual(len(BlogPost.find_all()), 2)
        published = BlogPost.find_all(published_only=True)
        self.assertEqual(len(published), 1)
        self.assertTrue(published[0].published)


######################################################################
#  H E L P E R S
######################################################################
class TestModelHelpers(TestCase):
    """Test Cases for the model helper functions"""

    def test_normalize_choice(self):
        """It should lowercase valid choices and reject others"""
        self.assertEqual(normalize_choice(" Asia-Pacific ", ("asia-pacific",), "region"), "asia-pacific")
        self.assertRaises(DataValidationError, normalize_choice, None, ("emea",), "region")

    def test_as_utc(self):
        """It should treat naive datetimes as UTC"""
        naive = datetime(2025, 1, 1, 12, 0)
        self.assertEqual(as_utc(naive).tzinfo, timezone.utc)
        self.assertIsNone(as_utc(None))
