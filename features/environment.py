"""Behave environment hooks for the admin UI smoke test.

Starts one headless Chrome/Chromium for the whole run and quits it at the
end. The dashboard under test must already be running (for example with
`gunicorn wsgi:app`); its address comes from, in order:

  1) env:      BASE_URL
  2) behave:   -D BASE_URL=...
  3) default:  http://localhost:8080

CHROME_BIN and CHROMEDRIVER point at non-standard browser/driver installs;
otherwise Selenium Manager resolves the driver.
"""

import os
import shutil
from typing import Optional

from selenium import webdriver
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.chrome.service import Service as ChromeService

WAIT_SECONDS = int(os.getenv("WAIT_SECONDS", "10"))


def _first_existing(*paths: Optional[str]) -> Optional[str]:
    for path in paths:
        if path and os.path.exists(path):
            return path
    return None


def _chrome_binary() -> Optional[str]:
    return _first_existing(
        os.getenv("CHROME_BIN"),
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/google-chrome",
        shutil.which("chromium") or shutil.which("google-chrome"),
    )


def _chromedriver() -> Optional[str]:
    return _first_existing(
        os.getenv("CHROMEDRIVER"),
        "/usr/bin/chromedriver",
        "/usr/lib/chromium/chromedriver",
        shutil.which("chromedriver"),
    )


def before_all(context):
    """Start a headless browser and remember the base URL."""
    context.base_url = (
        os.getenv("BASE_URL")
        or context.config.userdata.get("BASE_URL")
        or "http://localhost:8080"
    ).rstrip("/")
    context.wait_seconds = WAIT_SECONDS

    options = ChromeOptions()
    options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    binary = _chrome_binary()
    if binary:
        options.binary_location = binary

    driver = _chromedriver()
    if driver:
        context.browser = webdriver.Chrome(service=ChromeService(executable_path=driver), options=options)
    else:
        context.browser = webdriver.Chrome(options=options)
    context.browser.implicitly_wait(context.wait_seconds)
    context.browser.set_window_size(1400, 1000)


def after_all(context):
    """Shut down the browser if it was started."""
    browser = getattr(context, "browser", None)
    if browser:
        browser.quit()
