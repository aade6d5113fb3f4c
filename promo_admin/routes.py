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
Promo Admin Service

This service implements a REST API that allows administrators to manage
promo codes, redeemed codes and blog posts
"""

# Third-party
from flask import Blueprint, abort, flash, jsonify, redirect, request, url_for
from flask import current_app as app

# First-party
from promo_admin.common import status  # HTTP status codes
from promo_admin.services import get_services
from promo_admin.services.codes import parse_codes

api = Blueprint("api", __name__)


def _parse_bool_strict(value: str):
    """
    Strictly parse query-string boolean.
    Accepted (case-insensitive, trimmed):
      True:  'true', '1', 'yes'
      False: 'false', '0', 'no'
    Others: return None (caller should raise 400)
    """
    v = str(value).strip().lower()
    if v in {"true", "1", "yes"}:
        return True
    if v in {"false", "0", "no"}:
        return False
    return None


def _json_body() -> dict:
    """Returns the JSON object of the request or aborts with 400"""
    check_content_type("application/json")
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(status.HTTP_400_BAD_REQUEST, "Request body must be a JSON object")
    return data


def _ids_from_body() -> list:
    data = _json_body()
    ids = data.get("ids")
    if not isinstance(ids, list):
        abort(status.HTTP_400_BAD_REQUEST, "Field 'ids' must be a list")
    return ids


######################################################################
# Root endpoint
######################################################################
@api.route("/", methods=["GET"])
def index():
    """Root URL response"""
    return (
        jsonify(
            name="Promo Admin Service",
            version="1.0.0",
            description="Administration of promo codes, redemptions and blog posts",
            paths={
                "promo_codes": "/promo-codes",
                "redeemed_codes": "/redeemed-codes",
                "blog_posts": "/blog-posts",
                "ui": "/ui",
            },
        ),
        status.HTTP_200_OK,
    )


######################################################################
# Endpoint: /health (K8s liveness/readiness)
######################################################################
@api.route("/health", methods=["GET"])
def health():
    """
    K8s health check endpoint
    Returns:
        JSON: {"status": "OK"} with HTTP 200
    """
    app.logger.info("Health check requested")
    return jsonify(status="OK"), status.HTTP_200_OK


######################################################################
# AUTH
######################################################################
@api.route("/auth/login", methods=["GET"])
def login():
    """Redirects to the Google consent screen"""
    result = get_services().gate.sign_in(request.args.get("next"))
    if not result.success:
        flash(result.error, "error")
        return redirect(url_for("ui.login"))
    return redirect(result.redirect_url)


@api.route("/auth/callback", methods=["GET"])
def auth_callback():
    """
    OAuth redirect target

    Both endpoints are visited by the browser, so failures are flashed on
    the admin login page rather than returned as JSON.
    """
    result = get_services().gate.complete_sign_in(
        request.args.get("code"), request.args.get("state"), request.args.get("error")
    )
    if not result.success:
        flash(result.error, "error")
        return redirect(url_for("ui.login"))
    return redirect(result.redirect_url or url_for("ui.dashboard"))


@api.route("/auth/logout", methods=["POST"])
def logout():
    """Ends the admin session"""
    get_services().gate.sign_out()
    return "", status.HTTP_204_NO_CONTENT


@api.route("/auth/me", methods=["GET"])
def me():
    """Returns the signed-in admin"""
    gate = get_services().gate
    gate.ensure_authenticated()
    return jsonify(gate.get_current_user().to_dict()), status.HTTP_200_OK


######################################################################
# PROMO CODES
######################################################################
@api.route("/promo-codes", methods=["POST"])
def create_promo_codes():
    """
    Bulk add promo codes

    Body: {"codes": [..] | "one\\nper\\nline", "type": .., "region": ..}
    Per-code problems come back in `errors` with a 201/200 response.
    """
    app.logger.info("Request to add promo codes")
    data = _json_body()
    codes = data.get("codes")
    if isinstance(codes, str):
        codes = parse_codes(codes)
    if not isinstance(codes, list):
        abort(status.HTTP_400_BAD_REQUEST, "Field 'codes' must be a list or a string")

    result = get_services().codes.add_promo_codes(codes, data.get("type"), data.get("region"))
    code = status.HTTP_201_CREATED if result.success else status.HTTP_200_OK
    return jsonify(result.serialize()), code


######################################################################
# LIST promo codes with optional filters
# ?type=<starter|standard>  ?region=<americas|asia-pacific|emea>
# ?is_used=<bool>  (true/false/1/0/yes/no; invalid => 400)
######################################################################
@api.route("/promo-codes", methods=["GET"])
def list_promo_codes():
    """List promo codes matching every supplied filter"""
    app.logger.info("Request to list promo codes")
    is_used = None
    is_used_raw = request.args.get("is_used")
    if is_used_raw is not None:
        is_used = _parse_bool_strict(is_used_raw)
        if is_used is None:
            abort(
                status.HTTP_400_BAD_REQUEST,
                (
                    "Invalid value for query parameter 'is_used'. "
                    "Accepted: true, false, 1, 0, yes, no (case-insensitive). "
                    f"Received: {is_used_raw!r}"
                ),
            )

    codes = get_services().codes.get_promo_codes(
        code_type=request.args.get("type"),
        region=request.args.get("region"),
        is_used=is_used,
    )
    return jsonify([code.serialize() for code in codes]), status.HTTP_200_OK


@api.route("/promo-codes", methods=["DELETE"])
def delete_promo_codes():
    """Bulk delete promo codes by id"""
    ids = _ids_from_body()
    app.logger.info("Request to delete %d promo codes", len(ids))
    deleted = get_services().codes.delete_promo_codes(ids)
    return jsonify(deleted=deleted), status.HTTP_200_OK


@api.route("/promo-codes/stats", methods=["GET"])
def promo_code_stats():
    """Dashboard statistics"""
    return jsonify(get_services().codes.get_promo_code_stats()), status.HTTP_200_OK


######################################################################
# REDEEMED CODES
######################################################################
@api.route("/redeemed-codes", methods=["GET"])
def list_redeemed_codes():
    """List redeemed codes, newest first"""
    app.logger.info("Request to list redeemed codes")
    return jsonify(get_services().redemptions.get_redeemed_codes()), status.HTTP_200_OK


@api.route("/redeemed-codes/<request_id>/verified", methods=["PUT"])
def set_verified(request_id: str):
    """Body: {"verified": bool}"""
    data = _json_body()
    verified = data.get("verified")
    if not isinstance(verified, bool):
        abort(status.HTTP_400_BAD_REQUEST, "Field 'verified' must be a boolean")
    row = get_services().redemptions.toggle_verified_status(request_id, verified)
    return jsonify(row), status.HTTP_200_OK


@api.route("/redeemed-codes/<request_id>/restore", methods=["PUT"])
def restore_redeemed_code(request_id: str):
    """Action: return the code of a redemption to the available pool"""
    app.logger.info("Request to restore redeemed code [%s]", request_id)
    code = get_services().redemptions.restore_redeemed_code(request_id)
    return jsonify(code.serialize() if code else None), status.HTTP_200_OK


@api.route("/redeemed-codes", methods=["DELETE"])
def delete_redeemed_codes():
    """Bulk delete redemptions and the codes they reference"""
    ids = _ids_from_body()
    result = get_services().redemptions.delete_redeemed_codes(ids)
    return jsonify(result.serialize()), status.HTTP_200_OK


######################################################################
# BLOG POSTS
######################################################################
@api.route("/blog-posts", methods=["GET"])
def list_blog_posts():
    """List blog posts; ?published=true limits to published ones"""
    published_only = False
    raw = request.args.get("published")
    if raw is not None:
        published_only = _parse_bool_strict(raw)
        if published_only is None:
            abort(
                status.HTTP_400_BAD_REQUEST,
                f"Invalid value for query parameter 'published'. Received: {raw!r}",
            )
    posts = get_services().blog.get_blog_posts(published_only=published_only)
    return jsonify([post.serialize() for post in posts]), status.HTTP_200_OK


@api.route("/blog-posts/stats", methods=["GET"])
def blog_stats():
    """Blog statistics"""
    return jsonify(get_services().blog.get_blog_stats()), status.HTTP_200_OK


@api.route("/blog-posts/<post_id>", methods=["GET"])
def get_blog_post(post_id: str):
    """
    Get a blog post by id
    """
    app.logger.info("Request to get blog post with id [%s]", post_id)
    post = get_services().blog.get_blog_post(post_id)
    if not post:
        abort(status.HTTP_404_NOT_FOUND, f"Blog post with id '{post_id}' was not found.")
    return jsonify(post.serialize()), status.HTTP_200_OK


@api.route("/blog-posts", methods=["POST"])
def create_blog_post():
    """
    Create a blog post
    """
    app.logger.info("Request to create a blog post")
    post = get_services().blog.create_blog_post(_json_body())
    location_url = url_for("api.get_blog_post", post_id=post.id, _external=True)
    return (
        jsonify(post.serialize()),
        status.HTTP_201_CREATED,
        {"Location": location_url},
    )


@api.route("/blog-posts/<post_id>", methods=["PUT"])
def update_blog_post(post_id: str):
    """
    Update a blog post
    Only the fields present in the payload change
    """
    app.logger.info("Request to update blog post with id [%s]", post_id)
    data = _json_body()
    if "id" in data and str(data["id"]) != str(post_id):
        abort(status.HTTP_400_BAD_REQUEST, "ID in body must match resource path")
    data.pop("id", None)
    post = get_services().blog.update_blog_post(post_id, data)
    return jsonify(post.serialize()), status.HTTP_200_OK


@api.route("/blog-posts", methods=["DELETE"])
def delete_blog_posts():
    """Bulk delete blog posts by id"""
    ids = _ids_from_body()
    deleted = get_services().blog.delete_blog_posts(ids)
    return jsonify(deleted=deleted), status.HTTP_200_OK


######################################################################
# Utility: Content-Type guard
######################################################################
def check_content_type(content_type: str):
    """Checks that the media type is correct (tolerates charset etc.)"""
    if request.mimetype != content_type:
        got = request.content_type or "none"
        abort(
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            f"Content-Type must be {content_type}; received {got}",
        )
