"""
Global pytest configuration for calcforest services.

✔ Isolates tests from external systems: no Postgres, no .env values leaking in
✔ Service modules import by bare name (pythonpath is set in pyproject.toml)
"""
import os

# === 1. Окружение до импорта сервисов ===
os.environ.update({
    "DB_HOST": "localhost",
    "DB_USER": "test",
    "DB_PASSWORD": "test",
    "DB_NAME": "test",
    "ENSURE_SCHEMA": "false",
    "ENVIRONMENT": "test",
    "LOG_LEVEL": "WARNING",
    "WRITE_RATE_LIMIT": "30/minute",
    "RATE_LIMIT": "1000/minute",
})
os.environ.pop("DATABASE_URL", None)
