"""
Test Factory to make fake objects for testing
"""

import factory

from promo_admin.models import (
    CODE_TYPES,
    REGIONS,
    Admin,
    BlogPost,
    PromoCode,
    PromoCodeRequest,
    utcnow,
)


class PromoCodeFactory(factory.Factory):
    """Creates fake promo codes for testing"""

    class Meta:  # pylint: disable=too-few-public-methods
        """Maps factory to data model"""

        model = PromoCode

    code = factory.Sequence(lambda n: f"PROMO{n:05d}")
    type = factory.Faker("random_element", elements=CODE_TYPES)
    region = factory.Faker("random_element", elements=REGIONS)
    is_used = False
    created_at = factory.LazyFunction(utcnow)


class PromoCodeRequestFactory(factory.Factory):
    """Creates fake redemptions; pass promo_code_id"""

    class Meta:  # pylint: disable=too-few-public-methods
        """Maps factory to data model"""

        model = PromoCodeRequest

    user_identifier = factory.Faker("user_name")
    business_email = factory.Faker("company_email")
    promo_code_id = None
    type = factory.Faker("random_element", elements=CODE_TYPES)
    region = factory.Faker("random_element", elements=REGIONS)
    verified = False
    created_at = factory.LazyFunction(utcnow)


class AdminFactory(factory.Factory):
    """Creates allow-list entries"""

    class Meta:  # pylint: disable=too-few-public-methods
        """Maps factory to data model"""

        model = Admin

    email = factory.Faker("email")
    is_admin = True


class BlogPostFactory(factory.Factory):
    """Creates fake blog posts with English text"""

    class Meta:  # pylint: disable=too-few-public-methods
        """Maps factory to data model"""

        model = BlogPost

    slug = factory.Sequence(lambda n: f"post-{n}")
    author = factory.Faker("name")
    category = factory.Faker("random_element", elements=("News", "Guides", "Releases"))
    tags = "launch, promo"
    title_en = factory.Faker("sentence")
    content_en = factory.Faker("paragraph")
    excerpt_en = factory.Faker("sentence")
    published = False
    featured = False
