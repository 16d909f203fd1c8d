"""Point the application at a throwaway SQLite file before any backend module is imported."""

import os
import tempfile

# A file DB (not :memory:) so the test session and the app's request sessions share data
_test_db_file = tempfile.NamedTemporaryFile(suffix=".sqlite", delete=False)
_test_db_file.close()
os.environ["DATABASE_URL"] = f"sqlite:///{_test_db_file.name}"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"


def pytest_sessionfinish(session, exitstatus):
    try:
        os.unlink(_test_db_file.name)
    except OSError:
        pass
