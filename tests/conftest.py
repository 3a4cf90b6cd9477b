"""
conftest.py — Shared fixtures: a fake requests session and canned explorer scripts.
"""

import sys
import threading
import time
from pathlib import Path

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

import youtube_key_finder as ykf


class FakeResponse:
    def __init__(self, text="", status_code=200, json_data=None, headers=None):
        self.text = text
        self.status_code = status_code
        self.headers = dict(headers or {})
        self.encoding = None
        self._json = json_data

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """
    Stands in for requests.Session. Routes map a URL to one of:
      str                -> 200 response with that body
      FakeResponse       -> returned as is
      Exception instance -> raised
      (delay, route)     -> sleep `delay` seconds, then handle `route`
      anything else      -> returned as is (e.g. a real requests.Response)
    Unknown URLs raise requests.ConnectionError.

    fork() gives a new session over the same routes and call log, and can
    stand in for new_session() as a session factory.
    """

    def __init__(self, routes=None, calls=None, lock=None):
        self.routes = routes if routes is not None else {}
        self.calls = calls if calls is not None else []
        self._lock = lock or threading.Lock()
        self.forks = []
        self.own_urls = []
        self.closed = False

    def fork(self, config=None):
        child = FakeSession(self.routes, self.calls, self._lock)
        with self._lock:
            self.forks.append(child)
        return child

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False

    def get(self, url, **kwargs):
        with self._lock:
            self.calls.append((url, kwargs))
            self.own_urls.append(url)
        return self._handle(self.routes.get(url), url)

    def _handle(self, route, url):
        if isinstance(route, tuple):
            delay, inner = route
            time.sleep(delay)
            return self._handle(inner, url)
        if route is None:
            raise requests.exceptions.ConnectionError(f"no route to {url}")
        if isinstance(route, Exception):
            raise route
        if isinstance(route, str):
            return FakeResponse(route)
        return route

    def urls(self):
        return [url for url, _ in self.calls]


@pytest.fixture
def config():
    """Config pointing at a stub host so nothing hits the network."""
    return ykf.FinderConfig(scheme="http", host="explorer.test", port=8080, timeout=2)


@pytest.fixture
def bootstrap_source():
    """Trimmed-down shape of the GWT bootstrap script."""
    return """
function com_google_api_explorer_Embedded() {
  var $wnd = window, $doc = document;
  function computeScriptBase() { return ''; }
  var answers = [];
  try {
    unflattenKeylistIntoAnswers(["default", "gecko1_8"], "k1");
    unflattenKeylistIntoAnswers(["default", "safari"], "k2");
  } catch (e) {
    return;
  }
  otherCall("not-a-key");
}
com_google_api_explorer_Embedded();
"""


@pytest.fixture
def session_factory():
    return FakeSession


def script_source(api_key):
    return f"""
var $gwt_version = "2.5.1";
function init() {{ return 1; }}
var API_KEY = "{api_key}", OTHER = "x";
"""


@pytest.fixture
def make_script():
    return script_source
