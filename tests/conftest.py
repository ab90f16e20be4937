import os
import tempfile
from pathlib import Path

TEST_DB = Path(tempfile.gettempdir()) / "americano_test_app.sqlite3"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB}"
os.environ["AMERICANO_COOKIE_SECURE"] = "false"
