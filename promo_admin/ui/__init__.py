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

"""Admin UI blueprint for the Promo Admin service.

Server-rendered pages mounted at `/ui`: dashboard, code entry, code list,
redeemed codes and the blog editor. Every page talks to the same services as
the REST API. Service errors are shown on an error page with a retry link;
a missing or expired session sends the browser to the sign-in page.
"""

import secrets
from functools import wraps

from flask import (
    Blueprint,
    abort,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from flask import current_app as app

from promo_admin.common import status
from promo_admin.models import (
    CODE_TYPES,
    LANGUAGES,
    REGIONS,
    BlogPost,
    DatabaseError,
    DataValidationError,
    RecordNotFound,
)
from promo_admin.services import get_services
from promo_admin.services.auth import AuthenticationError
from promo_admin.services.codes import parse_codes
from promo_admin.ui.state import OptimisticList

CSRF_SESSION_KEY = "_csrf"

ui_bp = Blueprint(
    "ui",
    __name__,
    url_prefix="/ui",
    template_folder="../templates",
    static_folder="../static",
)

_ERROR_STATUS = {
    DataValidationError: status.HTTP_400_BAD_REQUEST,
    RecordNotFound: status.HTTP_404_NOT_FOUND,
    DatabaseError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


######################################################################
# CSRF and access guards
######################################################################
@ui_bp.app_context_processor
def inject_globals():
    """Adds the CSRF token and the signed-in admin to every template"""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return {
        "csrf_token": token,
        "current_user": get_services().gate.get_current_user(),
    }


def check_csrf():
    """Aborts with 400 unless the form carries the session's CSRF token"""
    sent = (request.form.get("csrf_token") or request.headers.get("X-CSRF-Token") or "").strip()
    expected = session.get(CSRF_SESSION_KEY) or ""
    if not sent or not secrets.compare_digest(sent, expected):
        abort(status.HTTP_400_BAD_REQUEST, "CSRF token invalid")


def _error_message(error: Exception) -> str:
    if isinstance(error, DatabaseError):
        return "Something went wrong while talking to the database. Please try again."
    return str(error)


def admin_page(view):
    """
    Guards an admin page

    Anonymous visitors are sent to the sign-in page; POSTs must carry the
    CSRF token; service errors render the error page with a retry link.
    """

    @wraps(view)
    def wrapper(*args, **kwargs):
        if not get_services().gate.is_authenticated():
            flash("Please sign in to continue.", "warning")
            return redirect(url_for("ui.login", next=request.full_path))
        if request.method == "POST":
            check_csrf()
        try:
            return view(*args, **kwargs)
        except AuthenticationError as error:
            flash(str(error), "error")
            return redirect(url_for("ui.login"))
        except tuple(_ERROR_STATUS) as error:
            app.logger.warning("Admin page %s failed: %s", request.path, error)
            retry_url = request.url if request.method == "GET" else request.referrer
            return (
                render_template(
                    "error.html",
                    message=_error_message(error),
                    retry_url=retry_url or url_for("ui.dashboard"),
                ),
                _ERROR_STATUS[type(error)],
            )

    return wrapper


######################################################################
# Sign in / out
######################################################################
@ui_bp.route("/login", methods=["GET"])
def login():
    """Sign-in page with the 'Sign in with Google' button"""
    if get_services().gate.is_authenticated():
        return redirect(url_for("ui.dashboard"))
    next_url = request.args.get("next") or url_for("ui.dashboard")
    return render_template("login.html", title="Promo Admin", next_url=next_url)


@ui_bp.route("/logout", methods=["POST"])
def logout():
    """Signs out and returns to the sign-in page"""
    check_csrf()
    get_services().gate.sign_out()
    flash("You have been signed out.", "info")
    return redirect(url_for("ui.login"))


######################################################################
# Dashboard
######################################################################
@ui_bp.route("/", methods=["GET"])
@admin_page
def dashboard():
    """Statistics cards"""
    services = get_services()
    return render_template(
        "dashboard.html",
        title="Dashboard",
        stats=services.codes.get_promo_code_stats(),
        blog_stats=services.blog.get_blog_stats(),
    )


######################################################################
# Promo codes
######################################################################
@ui_bp.route("/codes/add", methods=["GET", "POST"])
@admin_page
def add_codes():
    """Bulk entry form: one code per line"""
    result = None
    form = {"codes": "", "type": CODE_TYPES[0], "region": REGIONS[0]}
    if request.method == "POST":
        form = {key: request.form.get(key, "") for key in form}
        codes = parse_codes(form["codes"])
        if not codes:
            flash("Please enter at least one code.", "warning")
        else:
            result = get_services().codes.add_promo_codes(codes, form["type"], form["region"])
            if result.success:
                flash(f"Added {len(result.success)} promo code(s).", "success")
                form["codes"] = ""
    return render_template(
        "codes_add.html",
        title="Add Promo Codes",
        form=form,
        result=result,
        code_types=CODE_TYPES,
        regions=REGIONS,
    )


@ui_bp.route("/codes", methods=["GET"])
@admin_page
def list_codes():
    """Code list with type/region/status filters and a search box"""
    filters = {
        "type": request.args.get("type", ""),
        "region": request.args.get("region", ""),
        "status": request.args.get("status", ""),
        "q": request.args.get("q", "").strip(),
    }
    is_used = {"used": True, "available": False}.get(filters["status"])
    codes = get_services().codes.get_promo_codes(
        code_type=filters["type"] or None,
        region=filters["region"] or None,
        is_used=is_used,
    )
    if filters["q"]:
        needle = filters["q"].lower()
        codes = [code for code in codes if needle in code.code.lower()]
    return render_template(
        "codes_list.html",
        title="Promo Codes",
        codes=codes,
        filters=filters,
        code_types=CODE_TYPES,
        regions=REGIONS,
    )


@ui_bp.route("/codes/delete", methods=["POST"])
@admin_page
def delete_codes():
    """Deletes the checked codes"""
    ids = request.form.getlist("ids")
    if not ids:
        flash("No codes selected.", "warning")
    else:
        deleted = get_services().codes.delete_promo_codes(ids)
        flash(f"Deleted {deleted} promo code(s).", "success")
    return redirect(url_for("ui.list_codes"))


######################################################################
# Redeemed codes
######################################################################
def _redeemed_list() -> OptimisticList:
    return OptimisticList(get_services().redemptions.get_redeemed_codes).refresh()


def _render_redeemed(rows, code=status.HTTP_200_OK):
    filters = {
        "type": request.args.get("type", ""),
        "region": request.args.get("region", ""),
        "q": request.args.get("q", "").strip(),
    }
    if filters["type"]:
        rows = [row for row in rows if row["type"] == filters["type"]]
    if filters["region"]:
        rows = [row for row in rows if row["region"] == filters["region"]]
    if filters["q"]:
        needle = filters["q"].lower()
        rows = [
            row
            for row in rows
            if needle in row["code"].lower()
            or needle in (row["business_email"] or "").lower()
            or needle in (row["user_identifier"] or "").lower()
        ]
    return (
        render_template(
            "redeemed.html",
            title="Redeemed Codes",
            rows=rows,
            filters=filters,
            code_types=CODE_TYPES,
            regions=REGIONS,
        ),
        code,
    )


@ui_bp.route("/redeemed", methods=["GET"])
@admin_page
def redeemed():
    """Redeemed codes, newest first, with type/region filters and search"""
    return _render_redeemed(_redeemed_list().rows())


@ui_bp.route("/redeemed/<request_id>/verified", methods=["POST"])
@admin_page
def set_verified(request_id):
    """Flips the verified flag; on failure shows the re-fetched list"""
    verified = request.form.get("verified") == "true"
    redemptions = get_services().redemptions
    rows = _redeemed_list()
    try:
        rows.apply(
            request_id,
            {"verified": verified},
            lambda: redemptions.toggle_verified_status(request_id, verified),
        )
    except KeyError:
        flash("That redeemed code no longer exists.", "warning")
    except (DatabaseError, RecordNotFound) as error:
        flash(f"Could not update verification: {_error_message(error)}", "error")
        return _render_redeemed(rows.rows(), _ERROR_STATUS[type(error)])
    return redirect(url_for("ui.redeemed"))


@ui_bp.route("/redeemed/<request_id>/restore", methods=["POST"])
@admin_page
def restore(request_id):
    """Returns the code to the available pool; on failure shows the re-fetched list"""
    redemptions = get_services().redemptions
    rows = _redeemed_list()
    try:
        rows.remove(request_id, lambda: redemptions.restore_redeemed_code(request_id))
    except KeyError:
        flash("That redeemed code no longer exists.", "warning")
    except (DatabaseError, RecordNotFound) as error:
        flash(f"Could not restore code: {_error_message(error)}", "error")
        return _render_redeemed(rows.rows(), _ERROR_STATUS[type(error)])
    else:
        flash("Code restored to the available pool.", "success")
    return redirect(url_for("ui.redeemed"))


@ui_bp.route("/redeemed/delete", methods=["POST"])
@admin_page
def delete_redeemed():
    """Deletes the checked redemptions and their codes"""
    ids = request.form.getlist("ids")
    if not ids:
        flash("No redeemed codes selected.", "warning")
        return redirect(url_for("ui.redeemed"))
    result = get_services().redemptions.delete_redeemed_codes(ids)
    flash(f"Deleted {result.deleted_requests} redeemed code(s).", "success")
    if result.orphaned_code_ids:
        flash(
            "Some promo codes could not be removed and remain marked as used: "
            + ", ".join(result.orphaned_code_ids),
            "warning",
        )
    return redirect(url_for("ui.redeemed"))


######################################################################
# Blog
######################################################################
def _post_form_data() -> dict:
    data = {field: request.form.get(field, "") for field in BlogPost.TEXT_FIELDS}
    for field in BlogPost.FLAG_FIELDS:
        data[field] = request.form.get(field) == "on"
    return data


@ui_bp.route("/blog", methods=["GET"])
@admin_page
def blog_list():
    """All posts with statistics, a status filter and a title/author search"""
    blog = get_services().blog
    filters = {
        "status": request.args.get("status", ""),
        "q": request.args.get("q", "").strip(),
    }
    posts = blog.get_blog_posts()
    if filters["status"] in ("published", "draft"):
        wanted = filters["status"] == "published"
        posts = [post for post in posts if bool(post.published) is wanted]
    if filters["q"]:
        needle = filters["q"].lower()
        posts = [
            post
            for post in posts
            if needle in (post.title_en or "").lower() or needle in (post.author or "").lower()
        ]
    return render_template(
        "blog_list.html",
        title="Blog",
        posts=posts,
        stats=blog.get_blog_stats(),
        filters=filters,
    )


@ui_bp.route("/blog/new", methods=["GET", "POST"])
@admin_page
def blog_new():
    """Editor for a new post"""
    if request.method == "POST":
        post = get_services().blog.create_blog_post(_post_form_data())
        flash("Post created.", "success")
        return redirect(url_for("ui.blog_edit", post_id=post.id))
    return render_template(
        "blog_form.html", title="New Post", post=BlogPost().serialize(), languages=LANGUAGES
    )


@ui_bp.route("/blog/<post_id>/edit", methods=["GET", "POST"])
@admin_page
def blog_edit(post_id):
    """Editor for an existing post"""
    blog = get_services().blog
    if request.method == "POST":
        blog.update_blog_post(post_id, _post_form_data())
        flash("Post saved.", "success")
        return redirect(url_for("ui.blog_edit", post_id=post_id))
    post = blog.get_blog_post(post_id)
    if post is None:
        raise RecordNotFound(f"Blog post with id '{post_id}' was not found.")
    return render_template(
        "blog_form.html", title="Edit Post", post=post.serialize(), languages=LANGUAGES
    )


@ui_bp.route("/blog/delete", methods=["POST"])
@admin_page
def blog_delete():
    """Deletes the checked posts"""
    ids = request.form.getlist("ids")
    if ids:
        deleted = get_services().blog.delete_blog_posts(ids)
        flash(f"Deleted {deleted} post(s).", "success")
    else:
        flash("No posts selected.", "warning")
    return redirect(url_for("ui.blog_list"))
