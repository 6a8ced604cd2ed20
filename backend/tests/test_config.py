from timetabler.core.config import Settings


def test_cors_origins_from_comma_list():
    settings = Settings(_env_file=None, cors_origins="http://a.test, http://b.test ,")
    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_cors_origins_from_json_list():
    settings = Settings(_env_file=None, cors_origins='["http://a.test"]')
    assert settings.cors_origins == ["http://a.test"]


def test_blank_oracle_settings_are_unset():
    settings = Settings(_env_file=None, oracle_url="  ", oracle_api_key="")
    assert settings.oracle_url is None
    assert settings.oracle_api_key is None


def test_generation_defaults():
    settings = Settings(_env_file=None)
    assert settings.resolver_max_attempts == 50
    assert settings.default_students_per_group == 25
    assert settings.section_capacity == 30
