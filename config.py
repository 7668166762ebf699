# config.py
# Role: Environment-driven settings for BudgetView.
#       Loads a local .env file (if present) and exposes the values
#       the database bootstrap, session middleware and AI helpers need.

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base directory of the project (where this module lives)
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Default SQLite location: <project_root>/database/budgetview.db
DEFAULT_DB_PATH = os.path.join(BASE_DIR, "database", "budgetview.db")

DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite:///{DEFAULT_DB_PATH}"

# Signs the session cookie; override in any real deployment
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# AI category suggestions (see budgetview/services/auto_categorize.py)
AUTO_CATEGORIZE_AI = os.getenv("AUTO_CATEGORIZE_AI", "0")
AUTO_CATEGORIZE_MODEL = os.getenv("AUTO_CATEGORIZE_MODEL", "gpt-4.1-mini")

# Sign-in through an authenticating reverse proxy (e.g. oauth2-proxy) that
# passes the verified email in a request header
FEDERATED_AUTH = os.getenv("FEDERATED_AUTH", "0")
FEDERATED_PROVIDERS = os.getenv("FEDERATED_PROVIDERS", "google")
FEDERATED_EMAIL_HEADER = os.getenv("FEDERATED_EMAIL_HEADER", "X-Forwarded-Email")
FEDERATED_NAME_HEADER = os.getenv("FEDERATED_NAME_HEADER", "X-Forwarded-Preferred-Username")
