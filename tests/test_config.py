"""Settings and environment validation."""

from crux.config import Settings, get_settings, validate_environment


def _settings(**overrides):
    values = dict(
        DATABASE_URL="postgresql://db/crux",
        SECRET_KEY="a-real-secret",
        ANON_KEY="anon",
        SERVICE_ROLE_KEY="service",
        FRONTEND_URL="https://app.example.com",
        APP_NAME="Crux",
    )
    values.update(overrides)
    return Settings(**values)


def test_complete_environment():
    report = validate_environment(_settings())
    assert report.is_valid
    assert report.missing == []


def test_missing_values():
    report = validate_environment(_settings(ANON_KEY="", SERVICE_ROLE_KEY="  "))
    assert report.missing == ["ANON_KEY", "SERVICE_ROLE_KEY"]
    assert not report.is_valid


def test_placeholder_values():
    report = validate_environment(_settings(SECRET_KEY="your-secret-key", ANON_KEY="placeholder-anon"))
    assert report.placeholders == ["SECRET_KEY", "ANON_KEY"]


def test_test_environment_is_loaded():
    settings = get_settings()
    assert settings.ENVIRONMENT == "test"
    assert settings.RATE_LIMIT_ENABLED is False
    assert "*" not in settings.ALLOWED_ORIGINS
    assert settings.INVITATION_EXPIRY_DAYS == 7
