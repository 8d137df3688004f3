from core.config import Settings


def test_settings_without_jwt_secret(monkeypatch):
    monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
    monkeypatch.delenv("CHAIN_ID", raising=False)

    settings = Settings(_env_file=None, JWT_SECRET_KEY=None)

    assert settings.JWT_SECRET_KEY is None
    assert settings.chain_id == 8453
