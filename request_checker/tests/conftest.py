import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


@pytest.fixture(autouse=True)
def _clear_request_checker_env():
    """Ensure configuration from the developer's environment does not leak into tests.
    A local .env may set the passkey or the Gemini key; clear before each test and
    restore afterwards so tests explicitly setting them remain deterministic.
    """
    keys = [
        'GEMINI_API_KEY', 'ADMIN_PASSKEY', 'REQUEST_CHECKER_STORE',
        'REQUEST_CHECKER_DATA_FILE', 'RANKING_LIMIT', 'RELATED_LIMIT',
        'CATALOG_SEARCH_URL_TEMPLATE', 'LOG_LEVEL', 'HTTP_HOST', 'HTTP_PORT',
    ]
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
