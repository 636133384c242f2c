import os
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class Settings:
    secret_key: str
    jwt_secret_key: str
    jwt_expires_hours: int
    env: str
    database_url: str

    otp_ttl_seconds: int
    otp_echo: bool
    default_phone_prefix: str
    log_level: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    env = _getenv("ENV", "development")
    secret_key = _getenv("SECRET_KEY", "change-me")
    is_production = env.lower() in ("prod", "production")
    otp_echo_raw = _getenv("OTP_ECHO")
    return Settings(
        secret_key=secret_key,
        jwt_secret_key=_getenv("JWT_SECRET_KEY", secret_key),
        jwt_expires_hours=_getenv_int("JWT_EXPIRES_HOURS", 24),
        env=env,
        database_url=_getenv("DATABASE_URL", "sqlite:///orghub.db"),
        otp_ttl_seconds=_getenv_int("OTP_TTL_SECONDS", 300),
        otp_echo=(otp_echo_raw.lower() in ("1", "true", "yes")) if otp_echo_raw else not is_production,
        default_phone_prefix=_getenv("DEFAULT_PHONE_PREFIX", "+91"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JWT_SECRET_KEY": s.jwt_secret_key,
        "JWT_ACCESS_TOKEN_EXPIRES": timedelta(hours=s.jwt_expires_hours),
        "JWT_TOKEN_LOCATION": ["headers"],
        "OTP_TTL_SECONDS": s.otp_ttl_seconds,
        "OTP_ECHO": s.otp_echo,
        "DEFAULT_PHONE_PREFIX": s.default_phone_prefix,
        "LOG_LEVEL": s.log_level,
        # request body limit (1MB is plenty for JSON payloads)
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
