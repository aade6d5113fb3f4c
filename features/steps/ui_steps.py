"""Step definitions for the admin UI smoke test.

All interactions go through the browser against the pages under /ui.
"""

from behave import given, then, when
from selenium.webdriver.common.by import By


@given("the admin dashboard is running")
def step_dashboard_running(context):
    """The sign-in page answers."""
    context.browser.get(context.base_url + "/ui/login")
    assert "Promo Admin" in (context.browser.title or "")


@when('I visit "{path}"')
def step_visit(context, path):
    """Open a page of the dashboard."""
    context.browser.get(context.base_url + path)


@then('I should be on the sign-in page')
def step_on_sign_in_page(context):
    """Anonymous visitors land on /ui/login."""
    assert "/ui/login" in context.browser.current_url
    context.browser.find_element(By.ID, "google-sign-in")


@then('I should see the message "{text}"')
def step_see_message(context, text):
    """A flashed message is shown."""
    assert text in context.browser.find_element(By.TAG_NAME, "main").text


@then('the page title contains "{text}"')
def step_title_contains(context, text):
    """Assert that the document.title and the page heading contain text."""
    assert text in (context.browser.title or "")
    h1 = context.browser.find_element(By.ID, "title")
    assert text in h1.text


@then('the sign-in button points to "{path}"')
def step_sign_in_target(context, path):
    """The Google button starts the OAuth flow."""
    button = context.browser.find_element(By.ID, "google-sign-in")
    assert path in button.get_attribute("href")
