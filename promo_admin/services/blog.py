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
Blog Service

CRUD over multilingual blog posts.
"""

import logging
import re
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from promo_admin.common.retry import with_retry
from promo_admin.models import BlogPost, DatabaseError, RecordNotFound, db

logger = logging.getLogger("promo_admin")


def generate_slug(title: str) -> str:
    """'Hello, World!  2025' -> 'hello-world-2025'"""
    slug = (title or "").lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


class BlogService:
    """Operations over the blog_posts table"""

    def __init__(self, gate, events):
        self.gate = gate
        self.events = events

    @with_retry()
    def get_blog_posts(self, published_only: bool = False) -> List[BlogPost]:
        """Returns posts newest first"""
        self.gate.ensure_authenticated()
        try:
            return BlogPost.find_all(published_only)
        except SQLAlchemyError as error:
            db.session.rollback()
            raise DatabaseError(f"Failed to fetch blog posts: {error}") from error

    @with_retry()
    def get_blog_post(self, post_id: str) -> Optional[BlogPost]:
        """Returns the post or None when it does not exist"""
        self.gate.ensure_authenticated()
        try:
            return BlogPost.find(post_id)
        except SQLAlchemyError as error:
            db.session.rollback()
            raise DatabaseError(f"Failed to fetch blog post: {error}") from error

    @with_retry()
    def create_blog_post(self, data: dict) -> BlogPost:
        """Creates a post; a blank slug is derived from the English title"""
        self.gate.ensure_authenticated()
        post = BlogPost().deserialize(data)
        if not post.slug:
            post.slug = generate_slug(post.title_en)
        post.create()
        self.events.posts_changed.send(self, action="create", ids=[post.id])
        return post

    @with_retry()
    def update_blog_post(self, post_id: str, updates: dict) -> BlogPost:
        """Applies a partial set of fields to an existing post"""
        self.gate.ensure_authenticated()
        post = BlogPost.find(post_id)
        if post is None:
            raise RecordNotFound(f"Blog post with id '{post_id}' was not found.")
        post.deserialize(updates, partial=True)
        post.update()
        self.events.posts_changed.send(self, action="update", ids=[post.id])
        return post

    @with_retry()
    def delete_blog_posts(self, ids: Iterable[str]) -> int:
        """Deletes posts by id; unknown ids are ignored"""
        self.gate.ensure_authenticated()
        ids = [str(i) for i in ids]
        try:
            deleted = BlogPost.remove_many(ids)
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            raise DatabaseError(f"Failed to delete blog posts: {error}") from error
        logger.info("Deleted %d blog posts", deleted)
        self.events.posts_changed.send(self, action="delete", ids=ids)
        return deleted

    @with_retry()
    def get_blog_stats(self) -> dict:
        """Counts total, published, draft and featured posts"""
        self.gate.ensure_authenticated()
        try:
            rows = BlogPost.stats_rows()
        except SQLAlchemyError as error:
            db.session.rollback()
            raise DatabaseError(f"Failed to fetch blog statistics: {error}") from error

        stats = {"total": 0, "published": 0, "draft": 0, "featured": 0}
        for published, featured in rows:
            stats["total"] += 1
            if published:
                stats["published"] += 1
            else:
                stats["draft"] += 1
            if featured:
                stats["featured"] += 1
        return stats
