"""Mini App initData: двухступенчатый ключ WebAppData, разбор, структурная проверка."""
import json
import time
from urllib.parse import urlencode

import pytest

from conftest import BOT_TOKEN, make_init_data, mini_app_hash
from tgauth.core.crypto import hmac_sha256, sha256, to_hex
from tgauth.core.mini_app import (
    mini_app_user,
    parse_mini_app_init_data,
    validate_mini_app_shape,
    verify_mini_app_init_data,
)


NOW = 1_700_000_000


class TestVerify:
    def test_valid(self):
        assert verify_mini_app_init_data(make_init_data(), BOT_TOKEN) is True

    def test_valid_with_optional_fields(self):
        init_data = make_init_data(
            auth_date=NOW,
            extra_params={
                "chat": json.dumps({"id": -100123, "type": "supergroup", "title": "Чат"}),
                "chat_type": "supergroup",
                "chat_instance": "-8512345",
                "start_param": "ref_42",
                "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
            },
        )
        assert verify_mini_app_init_data(init_data, BOT_TOKEN, 3600, now=NOW) is True

    def test_wrong_token(self):
        assert verify_mini_app_init_data(make_init_data(), "wrong:token") is False

    def test_tampered_user(self):
        init_data = make_init_data(auth_date=NOW, user={"id": 1, "first_name": "A"})
        tampered = init_data.replace("%22id%22%3A+1", "%22id%22%3A+2")
        assert tampered != init_data
        assert verify_mini_app_init_data(tampered, BOT_TOKEN, 3600, now=NOW) is False

    def test_missing_hash(self):
        init_data = urlencode({"user": json.dumps({"id": 1}), "auth_date": str(NOW)})
        assert verify_mini_app_init_data(init_data, BOT_TOKEN, 3600, now=NOW) is False

    def test_missing_auth_date(self):
        params = {"user": json.dumps({"id": 1, "first_name": "A"})}
        params["hash"] = mini_app_hash(params)
        assert verify_mini_app_init_data(urlencode(params), BOT_TOKEN, 3600, now=NOW) is False

    def test_non_numeric_auth_date(self):
        params = {"auth_date": "yesterday"}
        params["hash"] = mini_app_hash(params)
        assert verify_mini_app_init_data(urlencode(params), BOT_TOKEN, 3600, now=NOW) is False

    def test_boundary(self):
        at_boundary = make_init_data(auth_date=NOW - 3600)
        past_boundary = make_init_data(auth_date=NOW - 3601)
        assert verify_mini_app_init_data(at_boundary, BOT_TOKEN, 3600, now=NOW) is True
        assert verify_mini_app_init_data(past_boundary, BOT_TOKEN, 3600, now=NOW) is False

    def test_expired_with_real_clock(self):
        init_data = make_init_data(auth_date=int(time.time()) - 7200)
        assert verify_mini_app_init_data(init_data, BOT_TOKEN, 3600) is False

    def test_login_widget_key_does_not_validate(self):
        # hash посчитан ключом SHA256(bot_token), как у Login Widget
        params = {"auth_date": str(NOW), "user": json.dumps({"id": 1, "first_name": "A"})}
        dcs = "\n".join(f"{k}={v}" for k, v in sorted(params.items()))
        params["hash"] = to_hex(hmac_sha256(sha256(BOT_TOKEN), dcs))
        assert verify_mini_app_init_data(urlencode(params), BOT_TOKEN, 3600, now=NOW) is False

    def test_raw_json_signed_verbatim(self):
        # Нестандартное форматирование JSON не нормализуется перед подписью
        init_data = make_init_data(auth_date=NOW, raw_user='{ "id":1,   "first_name":"A" }')
        assert verify_mini_app_init_data(init_data, BOT_TOKEN, 3600, now=NOW) is True

    @pytest.mark.parametrize("bad", ["", None, 123, "hash=", "&&&"])
    def test_garbage_is_false(self, bad):
        assert verify_mini_app_init_data(bad, BOT_TOKEN, 3600, now=NOW) is False


class TestParse:
    def test_structured_fields(self):
        init_data = make_init_data(
            auth_date=NOW,
            user={"id": 99, "first_name": "Test", "is_premium": True},
            extra_params={
                "receiver": json.dumps({"id": 5, "first_name": "R"}),
                "can_send_after": "10",
                "start_param": "abc",
            },
        )
        data = parse_mini_app_init_data(init_data)
        assert data["auth_date"] == NOW
        assert data["can_send_after"] == 10
        assert data["user"] == {"id": 99, "first_name": "Test", "is_premium": True}
        assert data["receiver"]["id"] == 5
        assert data["start_param"] == "abc"
        assert isinstance(data["hash"], str)

    def test_invalid_user_json_is_omitted(self):
        init_data = make_init_data(auth_date=NOW, raw_user="not-json")
        data = parse_mini_app_init_data(init_data)
        assert "user" not in data
        assert data["auth_date"] == NOW
        assert data["hash"]

    def test_non_numeric_int_field_omitted(self):
        data = parse_mini_app_init_data("auth_date=abc&hash=ff&query_id=q")
        assert "auth_date" not in data
        assert data["query_id"] == "q"

    def test_empty(self):
        assert parse_mini_app_init_data("") == {}


class TestShape:
    def test_valid_parsed(self):
        data = parse_mini_app_init_data(make_init_data())
        assert validate_mini_app_shape(data) is True

    def test_user_optional(self):
        assert validate_mini_app_shape({"auth_date": NOW, "hash": "ff"}) is True

    @pytest.mark.parametrize("user", [{"first_name": "A"}, {"id": "1", "first_name": "A"}, {"id": 1}, "x"])
    def test_invalid_user(self, user):
        assert validate_mini_app_shape({"auth_date": NOW, "hash": "ff", "user": user}) is False

    def test_missing_required(self):
        assert validate_mini_app_shape({"hash": "ff"}) is False
        assert validate_mini_app_shape({"auth_date": NOW}) is False
        assert validate_mini_app_shape(None) is False


def test_mini_app_user_defaults():
    user = mini_app_user({"id": 7, "first_name": "Ann", "last_name": "Lee", "username": "ann"})
    assert user == {
        "name": "Ann Lee",
        "image": None,
        "email": None,
        "telegram_id": "7",
        "telegram_username": "ann",
    }
