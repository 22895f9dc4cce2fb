from config import Settings


def test_settings_read_env_case_sensitively(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://user:pw@db:5432/signseal")
    monkeypatch.setenv("secret_key", "ignorada")

    current = Settings(_env_file=None)

    assert current.DATABASE_URL == "postgresql://user:pw@db:5432/signseal"
    assert current.SECRET_KEY != "ignorada"
    assert Settings.model_config["env_file"] == ".env"
    assert Settings.model_config["case_sensitive"] is True
