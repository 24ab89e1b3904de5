from codable_bff.callback import DASHBOARD_PATH, HOME_PATH, RESET_PASSWORD_PATH
from codable_bff.local_storage import PENDING_SIGNUP_KEY

from .conftest import AUTH, REST, USER, grant, make_token


def _pending(browser, email="dev@example.com"):
    browser.storage.set_json(PENDING_SIGNUP_KEY, {"email": email, "full_name": "Dev User", "password": "secret1"})


async def test_no_recognized_params_goes_home_without_calls(browser, backend):
    assert await browser.callback.handle({}) == HOME_PATH
    assert await browser.callback.handle({"type": "signup"}) == HOME_PATH
    assert backend.requests == []
    assert browser.toaster.pending() == []


async def test_signup_token_verifies_and_completes_account(browser, backend):
    backend.on("POST", f"{AUTH}/verify", json_body=grant())
    backend.on("PUT", f"{AUTH}/user", json_body=USER)
    backend.on("POST", f"{REST}/profiles", status_code=201)
    _pending(browser)

    target = await browser.callback.handle({"token": "hash-1", "type": "signup"})

    assert target == DASHBOARD_PATH
    assert backend.bodies("POST", f"{AUTH}/verify") == [{"type": "signup", "token_hash": "hash-1"}]
    assert backend.bodies("PUT", f"{AUTH}/user") == [{"password": "secret1", "data": {"full_name": "Dev User"}}]
    (profile,) = backend.bodies("POST", f"{REST}/profiles")
    assert profile == {"full_name": "Dev User", "id": "user-1"}
    assert browser.storage.get_item(PENDING_SIGNUP_KEY) is None
    assert browser.session_store.current.user_id == "user-1"


async def test_signup_token_failure_goes_home_with_error(browser, backend):
    backend.on("POST", f"{AUTH}/verify", status_code=403, json_body={"msg": "Token has expired or is invalid"})

    target = await browser.callback.handle({"token": "stale", "type": "signup"})

    assert target == HOME_PATH
    assert [t.kind for t in browser.toaster.pending()] == ["error"]
    assert browser.session_store.current is None


async def test_signup_precedes_token_pair(browser, backend):
    backend.on("POST", f"{AUTH}/verify", json_body=grant())
    params = {"token": "hash-1", "type": "signup", "access_token": make_token(), "refresh_token": "r"}
    assert await browser.callback.handle(params) == DASHBOARD_PATH
    assert backend.calls("GET", f"{AUTH}/user") == []


async def test_pending_signup_for_other_email_is_left_alone(browser, backend):
    backend.on("POST", f"{AUTH}/verify", json_body=grant())
    _pending(browser, email="someone@else.com")

    assert await browser.callback.handle({"token": "hash-1", "type": "signup"}) == DASHBOARD_PATH
    assert backend.calls("PUT", f"{AUTH}/user") == []
    assert browser.storage.get_json(PENDING_SIGNUP_KEY)["email"] == "someone@else.com"


async def test_account_setup_failure_still_lands_on_dashboard(browser, backend):
    backend.on("POST", f"{AUTH}/verify", json_body=grant())
    backend.on("PUT", f"{AUTH}/user", status_code=422, json_body={"msg": "Password should be at least 6 characters"})
    _pending(browser)

    assert await browser.callback.handle({"token": "hash-1", "type": "signup"}) == DASHBOARD_PATH
    assert "error" in [t.kind for t in browser.toaster.pending()]
    assert browser.storage.get_item(PENDING_SIGNUP_KEY) is not None


async def test_recovery_with_access_token_opens_reset(browser, backend):
    backend.on("GET", f"{AUTH}/user", json_body=USER)
    params = {"type": "recovery", "access_token": make_token(), "refresh_token": "r"}
    assert await browser.callback.handle(params) == RESET_PASSWORD_PATH
    assert browser.session_store.current.email == "dev@example.com"


async def test_recovery_with_token_hash_opens_reset(browser, backend):
    backend.on("POST", f"{AUTH}/verify", json_body=grant())
    assert await browser.callback.handle({"type": "recovery", "token": "hash-2"}) == RESET_PASSWORD_PATH
    assert backend.bodies("POST", f"{AUTH}/verify") == [{"type": "recovery", "token_hash": "hash-2"}]


async def test_token_pair_signs_in_and_goes_to_dashboard(browser, backend):
    backend.on("GET", f"{AUTH}/user", json_body=USER)
    target = await browser.callback.handle({"access_token": make_token(), "refresh_token": "r"})
    assert target == DASHBOARD_PATH
    assert browser.session_store.current.refresh_token == "r"


async def test_token_pair_rejected_goes_home(browser, backend):
    backend.on("GET", f"{AUTH}/user", status_code=401, json_body={"msg": "invalid JWT"})
    target = await browser.callback.handle({"access_token": "bad", "refresh_token": "r"})
    assert target == HOME_PATH
    assert browser.session_store.current is None
