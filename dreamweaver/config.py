import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEV_ENV_NAMES = {'development', 'dev', 'local', 'test'}


def safe_int_env(name, default=0, minimum=1, maximum=100000):
    raw = str(os.getenv(name, str(default)) or '').strip()
    try:
        value = int(raw)
    except Exception:
        value = int(default)
    return min(max(value, minimum), maximum)


def safe_float_env(name, default=0.0):
    raw = str(os.getenv(name, str(default)) or '').strip()
    try:
        value = float(raw)
    except Exception:
        return default
    return min(max(value, 0.0), 1.0)


def runtime_environment():
    return (
        os.getenv('SENTRY_ENVIRONMENT')
        or os.getenv('FLASK_ENV')
        or os.getenv('ENV')
        or ('production' if os.getenv('K_SERVICE') else 'development')
    ).strip().lower()


@dataclass(frozen=True)
class AppConfig:
    """Central config object, read once from the environment at startup."""

    flask_secret_key: str = field(default_factory=lambda: os.getenv('FLASK_SECRET_KEY', ''))
    log_level: str = field(default_factory=lambda: (os.getenv('LOG_LEVEL', 'INFO') or 'INFO').strip().upper())
    environment: str = field(default_factory=runtime_environment)
    sentry_dsn: str = field(default_factory=lambda: (os.getenv('SENTRY_DSN_BACKEND', '') or '').strip())
    sentry_release: str = field(default_factory=lambda: (os.getenv('SENTRY_RELEASE', 'dreamweaver') or 'dreamweaver').strip())
    sentry_traces_sample_rate: float = field(default_factory=lambda: safe_float_env('SENTRY_TRACES_SAMPLE_RATE', 0.0))
    firebase_credentials_path: str = field(default_factory=lambda: os.getenv('FIREBASE_CREDENTIALS_PATH', 'firebase-credentials.json'))
    firebase_credentials_json: str = field(default_factory=lambda: (os.getenv('FIREBASE_CREDENTIALS', '') or '').strip())
    quota_max_attempts: int = field(default_factory=lambda: safe_int_env('QUOTA_TRANSACTION_MAX_ATTEMPTS', 5, minimum=1, maximum=20))

    @property
    def is_dev_like(self):
        return self.environment in DEV_ENV_NAMES


def load_config() -> AppConfig:
    load_dotenv()
    config = AppConfig()
    if not config.is_dev_like and not config.flask_secret_key.strip():
        raise RuntimeError('FLASK_SECRET_KEY must be set in non-development environments.')
    return config
