import pytest

from shotpipe.config import DEFAULT_SCHEDULE, ConfigError, PipelineConfig


def test_from_env_reads_every_setting():
    config = PipelineConfig.from_env(
        {
            "STEAM_USER_IDS": " 7656a, ,7656b ",
            "INSTAGRAM_ACCESS_TOKEN": "token",
            "INSTAGRAM_PAGE_ID": "page",
            "BATCH_SIZE": "10",
            "MAX_RETRIES": "5",
            "DATABASE_URL": "postgresql://localhost/shots",
            "ENABLE_AI_CAPTIONS": "false",
            "ENABLE_VISION_ANALYSIS": "0",
            "CAPTION_VARIETY": "MEDIUM",
            "IMGBB_API_KEY": "imgbb",
        }
    )
    assert config.source_ids == ["7656a", "7656b"]
    assert config.batch_size == 10 and config.max_retries == 5
    assert config.database_url == "postgresql://localhost/shots"
    assert not config.enable_ai_captions and not config.enable_vision_analysis
    assert config.fallback_to_static
    assert config.caption_variety == "medium"
    assert config.imgbb_api_key == "imgbb"
    assert config.schedule == DEFAULT_SCHEDULE
    config.validate()


def test_empty_values_fall_back_to_defaults():
    config = PipelineConfig.from_env({"BATCH_SIZE": "", "DATABASE_URL": ""})
    assert config.batch_size == 45
    assert config.database_url is None
    assert config.enable_ai_captions is True


def test_invalid_integer_is_a_config_error():
    with pytest.raises(ConfigError, match="BATCH_SIZE"):
        PipelineConfig.from_env({"BATCH_SIZE": "lots"})


def test_validate_reports_every_missing_value():
    with pytest.raises(ConfigError) as excinfo:
        PipelineConfig().validate()
    message = str(excinfo.value)
    assert "INSTAGRAM_ACCESS_TOKEN" in message
    assert "INSTAGRAM_PAGE_ID" in message
    assert "STEAM_USER_IDS" in message


def test_publishing_credentials_only_required_when_publishing():
    config = PipelineConfig(source_ids=["7656"])
    config.validate(require_publishing=False)
    with pytest.raises(ConfigError):
        config.validate()


def test_unknown_caption_variety_is_rejected():
    config = PipelineConfig(source_ids=["7656"], caption_variety="extreme")
    with pytest.raises(ConfigError, match="CAPTION_VARIETY"):
        config.validate(require_publishing=False)


def test_provider_selects_default_model_and_key():
    config = PipelineConfig.from_env(
        {"AI_PROVIDER": "OpenAI", "OPENAI_API_KEY": "sk", "GEMINI_API_KEY": "gk", "PORT": "8080"}
    )
    assert config.ai_provider == "openai"
    assert config.ai_model == "gpt-3.5-turbo"
    assert config.ai_api_key == "sk"
    assert config.health_port == 8080

    explicit = PipelineConfig.from_env({"AI_PROVIDER": "anthropic", "AI_MODEL": "claude-x"})
    assert explicit.ai_model == "claude-x"
    assert explicit.ai_api_key is None


def test_unknown_provider_is_rejected():
    config = PipelineConfig(source_ids=["7656"], ai_provider="llama")
    with pytest.raises(ConfigError, match="AI_PROVIDER"):
        config.validate(require_publishing=False)
