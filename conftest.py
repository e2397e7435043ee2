import pytest


@pytest.fixture(autouse=True)
def _plain_http_in_tests(settings):
    # The test client talks plain http to "testserver"; production defaults
    # would redirect to https and refuse the session cookie.
    settings.SECURE_SSL_REDIRECT = False
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0

    # Celery tasks run inline, no broker needed
    settings.CELERY_TASK_ALWAYS_EAGER = True
