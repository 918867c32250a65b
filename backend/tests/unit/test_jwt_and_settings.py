import time

import pytest
from jwt import InvalidTokenError

from umrahgo.infra import jwt as jwt_helper
from umrahgo.settings import Settings


def test_valid_and_expired_tokens(token_factory):
	assert jwt_helper.is_token_valid(token_factory(exp_offset=60)) is True
	assert jwt_helper.is_token_valid(token_factory(exp_offset=-10)) is False


def test_token_without_exp_is_valid(token_factory):
	token = token_factory(exp_offset=None)
	assert jwt_helper.expires_at(token) is None
	assert jwt_helper.is_token_valid(token) is True


def test_explicit_clock(token_factory):
	token = token_factory(exp_offset=100)
	exp = jwt_helper.expires_at(token)
	assert jwt_helper.is_token_valid(token, now=exp - 1) is True
	assert jwt_helper.is_token_valid(token, now=exp) is False
	assert exp == pytest.approx(time.time() + 100, abs=5)


@pytest.mark.parametrize("token", ["", None, "opaque", "a.b", "not.a.jwt"])
def test_malformed_tokens_are_invalid(token):
	assert jwt_helper.is_token_valid(token) is False


def test_decode_claims_rejects_non_jwt():
	with pytest.raises(InvalidTokenError):
		jwt_helper.decode_claims("12|sanctum")


def test_cache_assets_accept_env_formats():
	assert Settings(push_cache_assets="/a, /b ,").push_cache_assets == ("/a", "/b")
	assert Settings(push_cache_assets='["/x", "/y"]').push_cache_assets == ("/x", "/y")
	assert Settings(push_cache_assets="").push_cache_assets[0] == "/"


def test_realtime_enabled_requires_key_and_cluster():
	assert Settings(realtime_app_key="k", realtime_cluster="mt1").realtime_enabled() is True
	assert Settings(realtime_app_key=" ", realtime_cluster="mt1").realtime_enabled() is False
	assert Settings(realtime_app_key="k", realtime_cluster="").realtime_enabled() is False


def test_env_aliases(monkeypatch):
	monkeypatch.setenv("PUSHER_APP_KEY", "from-env")
	monkeypatch.setenv("LOG_LEVEL", "debug")
	monkeypatch.setenv("TYPING_EXPIRY_SECONDS", "1.5")

	configured = Settings()
	assert configured.realtime_app_key == "from-env"
	assert configured.obs_log_level == "DEBUG"
	assert configured.typing_expiry_seconds == 1.5


def test_environment_helpers():
	assert Settings(environment="Production").is_prod()
	assert Settings(environment="dev").is_dev()
