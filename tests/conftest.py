"""
Shared pytest setup.

utils.travis_api refuses to import without TRAVIS_API_TOKEN, so a dummy
token is seeded before any test module imports it.  No test talks to the
real Travis API; HTTP is always patched out.
"""

from __future__ import annotations

import os

os.environ["TRAVIS_API_TOKEN"] = "test-token"
os.environ["TRAVIS_API_URL"] = "https://api.travis-ci.test"
