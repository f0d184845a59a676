from core.config import DEFAULT_PIPED_INSTANCES, Settings


def test_defaults_without_environment(monkeypatch):
    for name in ("DISCORD_TOKEN", "PIPED_INSTANCES", "MAX_QUEUE_SIZE", "URL_SEARCH_FALLBACK", "SEARCH_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.piped_instances == DEFAULT_PIPED_INSTANCES
    assert settings.max_queue_size == 100
    assert settings.url_search_fallback is False
    assert settings.masked_token() == "None"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "abcdef0123456789xyzuvw")
    monkeypatch.setenv("PIPED_INSTANCES", "https://one.example/, https://two.example")
    monkeypatch.setenv("EXTRACTION_BACKEND", "YTDLP")
    monkeypatch.setenv("URL_SEARCH_FALLBACK", "yes")
    monkeypatch.setenv("SEARCH_TIMEOUT", "4.5")

    settings = Settings.from_env()

    assert settings.piped_instances == ("https://one.example", "https://two.example")
    assert settings.extraction_backend == "ytdlp"
    assert settings.url_search_fallback is True
    assert settings.search_timeout == 4.5
    assert settings.masked_token() == "abcdef…xyzuvw"


def test_malformed_numbers_fall_back(monkeypatch):
    monkeypatch.setenv("MAX_QUEUE_SIZE", "lots")
    monkeypatch.setenv("STREAM_TIMEOUT", "soon")

    settings = Settings.from_env()

    assert settings.max_queue_size == 100
    assert settings.stream_timeout == 15.0


def test_spotify_needs_both_credentials():
    assert not Settings(spotify_client_id="id").spotify_enabled
    assert Settings(spotify_client_id="id", spotify_client_secret="secret").spotify_enabled
