import asyncio

import pytest

from auth.backend import AuthEvent, SignOutScope
from auth.errors import AuthenticationError, BackendError, ProfileNotFoundError
from auth.identity import Identity
from auth.roles import Role
from auth.session import SessionController


# -- bootstrap -------------------------------------------------------------


def test_fresh_visitor_only_reads_local_session(backend, run_with_controller):
    async def scenario(controller):
        await controller.bootstrap_task
        return controller.state

    state = run_with_controller(scenario)

    assert state.identity is None
    assert state.loading is False
    assert backend.calls == ["read_session"]


def test_bootstrap_restores_merchant_identity(backend, run_with_controller):
    backend.add_account("u1", "a@b.com", role="merchant", full_name="Asha", merchant_id="m1")
    backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        return controller.state

    state = run_with_controller(scenario)

    assert state.loading is False
    assert state.identity == Identity(
        id="u1",
        role=Role.MERCHANT,
        email="a@b.com",
        full_name="Asha",
        merchant_profile_id="m1",
        driver_profile_id=None,
    )


def test_dead_session_is_cleaned_up(backend, run_with_controller):
    backend.add_account("u1", "a@b.com")
    backend.persist_session_for("a@b.com")
    backend.current_user_error = BackendError("JWT expired")

    async def scenario(controller):
        await controller.bootstrap_task
        return controller.state

    state = run_with_controller(scenario)

    assert state.identity is None
    assert state.loading is False
    assert backend.persisted is None
    assert ("sign_out", SignOutScope.LOCAL) in backend.calls
    assert "clear_persisted_session" in backend.calls


def test_bootstrap_without_profile_cleans_session(backend, run_with_controller):
    backend.add_account("u1", "a@b.com")
    backend.persist_session_for("a@b.com")
    del backend.profiles["u1"]

    async def scenario(controller):
        await controller.bootstrap_task
        return controller.state

    state = run_with_controller(scenario)

    assert state.identity is None
    assert backend.persisted is None


def test_unexpected_bootstrap_error_never_escapes(backend, run_with_controller):
    backend.add_account("u1", "a@b.com")
    backend.persist_session_for("a@b.com")
    backend.profile_error = RuntimeError("connection reset")

    async def scenario(controller):
        await controller.bootstrap_task
        return controller.state

    state = run_with_controller(scenario)

    assert state.identity is None
    assert state.loading is False
    assert backend.persisted is None


def test_hung_bootstrap_releases_loading_after_timeout(backend, run_with_controller):
    backend.hang_read_session = True

    async def scenario(controller):
        assert controller.loading is True
        await asyncio.sleep(0.2)
        return controller.state, controller.wait_ready(0)

    state, ready = run_with_controller(scenario, bootstrap_timeout=0.05)

    assert state.loading is False
    assert state.identity is None
    assert ready is True


def test_loading_turns_false_exactly_once(backend, run_with_controller):
    seen = []

    async def scenario(controller):
        controller.subscribe(seen.append)
        await controller.bootstrap_task
        await asyncio.sleep(0.1)

    run_with_controller(scenario, bootstrap_timeout=0.05)

    assert [s.loading for s in seen] == [False]


def test_slow_bootstrap_still_applies_identity_after_timeout(backend, run_with_controller):
    backend.add_account("u1", "a@b.com", role="customer")
    backend.persist_session_for("a@b.com")

    async def scenario(controller):
        backend.profile_gate = asyncio.Event()
        await asyncio.sleep(0.1)
        released = controller.state
        backend.profile_gate.set()
        await controller.bootstrap_task
        return released, controller.state

    released, final = run_with_controller(scenario, bootstrap_timeout=0.05)

    assert released.loading is False
    assert released.identity is None
    assert final.identity is not None
    assert final.identity.role is Role.CUSTOMER


# -- login -----------------------------------------------------------------


def test_login_sets_identity(backend, run_with_controller):
    backend.add_account("u1", "a@b.com", "secret", role="driver", phone="111", driver_id="d1")

    async def scenario(controller):
        await controller.bootstrap_task
        result = await controller.login("a@b.com", "secret")
        return result, controller.identity

    result, identity = run_with_controller(scenario)

    assert identity is result.identity
    assert identity.role is Role.DRIVER
    assert identity.driver_profile_id == "d1"
    assert identity.merchant_profile_id is None
    assert result.session.user.id == "u1"
    assert ("sign_out", SignOutScope.GLOBAL) not in backend.calls


def test_login_signs_out_existing_session_globally_first(backend, run_with_controller, settle):
    backend.add_account("u0", "old@b.com", role="customer")
    backend.add_account("u1", "a@b.com", "secret", role="merchant", merchant_id="m1")
    backend.persist_session_for("old@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        assert controller.identity.id == "u0"
        await controller.login("a@b.com", "secret")
        await settle()
        return controller.identity

    identity = run_with_controller(scenario)

    calls = backend.calls
    assert calls.index(("sign_out", SignOutScope.GLOBAL)) < calls.index("sign_in")
    # The SIGNED_OUT / SIGNED_IN events caused by login itself change nothing
    assert identity.id == "u1"
    assert identity.merchant_profile_id == "m1"


def test_failed_login_leaves_clean_state(backend, run_with_controller):
    backend.add_account("u1", "a@b.com", "secret")
    backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        with pytest.raises(AuthenticationError) as excinfo:
            await controller.login("a@b.com", "wrong")
        return excinfo.value, controller.identity

    error, identity = run_with_controller(scenario)

    assert error.message == "Invalid login credentials"
    assert identity is None
    assert backend.persisted is None


def test_login_without_profile_raises_profile_not_found(backend, run_with_controller):
    backend.add_account("u1", "a@b.com", "secret")
    del backend.profiles["u1"]

    async def scenario(controller):
        await controller.bootstrap_task
        with pytest.raises(ProfileNotFoundError) as excinfo:
            await controller.login("a@b.com", "secret")
        return str(excinfo.value), controller.identity

    message, identity = run_with_controller(scenario)

    assert message == "Profile not found. Please sign up first."
    assert identity is None
    assert backend.persisted is None


def test_foreign_signed_out_during_login_is_not_swallowed(backend, run_with_controller, settle):
    backend.add_account("u1", "a@b.com", "secret", role="merchant", merchant_id="m1")

    async def scenario(controller):
        await controller.bootstrap_task
        backend.sign_in_gate = asyncio.Event()
        task = asyncio.create_task(controller.login("a@b.com", "secret"))
        while "sign_in" not in backend.calls:
            await asyncio.sleep(0)
        # Pushed by the backend on its own, not caused by the sign-in call
        backend.emit(AuthEvent.SIGNED_OUT)
        await settle()
        backend.sign_in_gate.set()
        with pytest.raises(AuthenticationError) as excinfo:
            await task
        return excinfo.value, controller.identity

    error, identity = run_with_controller(scenario)

    assert error.message == "Sign-in was interrupted. Please try again."
    assert identity is None


def test_unconsumed_sign_out_expectation_does_not_outlive_the_call(
    backend, run_with_controller, settle
):
    backend.add_account("u1", "a@b.com", "secret", role="customer")
    backend.persist_session_for("a@b.com")
    backend.sign_out_fails = True

    async def scenario(controller):
        await controller.bootstrap_task
        # Failing sign-out emits nothing
        await controller.logout()
        backend.sign_out_fails = False
        await controller.login("a@b.com", "secret")
        signed_in = controller.identity
        backend.emit(AuthEvent.SIGNED_OUT)
        await settle()
        return signed_in, controller.identity

    signed_in, identity = run_with_controller(scenario)

    assert signed_in.id == "u1"
    assert identity is None


# -- sign-up ---------------------------------------------------------------


def test_sign_up_loads_provisioned_profile(backend, run_with_controller):
    backend.profiles["new-1"] = {"id": "new-1", "email": "shop@b.com", "role": "merchant"}
    backend.merchant_profiles["new-1"] = {"id": "m9", "user_id": "new-1"}

    async def scenario(controller):
        await controller.bootstrap_task
        result = await controller.sign_up(
            "shop@b.com", "secret1", {"role": Role.MERCHANT, "business_name": "Shop"}
        )
        return result, controller.identity

    result, identity = run_with_controller(scenario)

    assert ("sign_up", {"role": "merchant", "business_name": "Shop"}) in backend.calls
    assert result.identity == identity
    assert identity.merchant_profile_id == "m9"


def test_sign_up_requiring_confirmation_leaves_identity_absent(backend, run_with_controller):
    backend.confirm_email = True

    async def scenario(controller):
        await controller.bootstrap_task
        return await controller.sign_up("c@b.com", "secret1", {"role": "customer"}), controller.identity

    result, identity = run_with_controller(scenario)

    assert result.session is None
    assert result.identity is None
    assert identity is None
    assert not [c for c in backend.calls if isinstance(c, tuple) and c[0] == "fetch_profile"]


def test_sign_up_without_provisioned_profile_is_not_fatal(backend, run_with_controller):
    async def scenario(controller):
        await controller.bootstrap_task
        return await controller.sign_up("c@b.com", "secret1", {"role": "customer"}), controller.identity

    result, identity = run_with_controller(scenario)

    assert result.session is not None
    assert result.identity is None
    assert identity is None


def test_sign_up_error_propagates_backend_message(backend, run_with_controller):
    backend.sign_up_error = BackendError("User already registered")

    async def scenario(controller):
        await controller.bootstrap_task
        with pytest.raises(AuthenticationError) as excinfo:
            await controller.sign_up("c@b.com", "secret1", {"role": "customer"})
        return excinfo.value

    assert run_with_controller(scenario).message == "User already registered"


def test_sign_up_with_unknown_role_is_rejected_before_the_backend(backend, run_with_controller):
    async def scenario(controller):
        await controller.bootstrap_task
        with pytest.raises(AuthenticationError) as excinfo:
            await controller.sign_up("c@b.com", "secret1", {"role": "admin"})
        return excinfo.value

    error = run_with_controller(scenario)

    assert error.message == "Unknown role: admin"
    assert not [c for c in backend.calls if isinstance(c, tuple) and c[0] == "sign_up"]


def test_sign_up_superseded_by_logout_returns_no_identity(backend, run_with_controller):
    backend.profiles["new-1"] = {"id": "new-1", "email": "c@b.com", "role": "customer"}

    async def scenario(controller):
        await controller.bootstrap_task
        backend.profile_gate = asyncio.Event()
        task = asyncio.create_task(controller.sign_up("c@b.com", "secret1", {"role": "customer"}))
        while ("fetch_profile", "new-1") not in backend.calls:
            await asyncio.sleep(0)
        await controller.logout()
        backend.profile_gate.set()
        return await task, controller.identity

    result, identity = run_with_controller(scenario)

    assert result.session is not None
    assert result.identity is None
    assert identity is None


# -- logout ----------------------------------------------------------------


def test_logout_when_logged_out_is_a_no_op(backend, run_with_controller):
    async def scenario(controller):
        await controller.bootstrap_task
        await controller.logout()
        await controller.logout()
        return controller.identity

    assert run_with_controller(scenario) is None


def test_logout_swallows_backend_failure(backend, run_with_controller):
    backend.add_account("u1", "a@b.com")
    backend.persist_session_for("a@b.com")
    backend.sign_out_fails = True

    async def scenario(controller):
        await controller.bootstrap_task
        await controller.logout()
        return controller.identity

    assert run_with_controller(scenario) is None
    assert backend.persisted is None
    assert ("sign_out", SignOutScope.GLOBAL) in backend.calls


def test_logout_clears_identity_before_network(backend, run_with_controller):
    backend.add_account("u1", "a@b.com")
    backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        backend.sign_out_gate = asyncio.Event()
        task = asyncio.create_task(controller.logout())
        await asyncio.sleep(0)
        during = (controller.identity, backend.persisted)
        backend.sign_out_gate.set()
        await task
        return during

    identity_during, persisted_during = run_with_controller(scenario)

    assert identity_during is None
    assert persisted_during is not None
    assert backend.persisted is None


# -- pushed events ---------------------------------------------------------


def test_initial_session_event_changes_nothing(backend, run_with_controller, settle):
    backend.add_account("u1", "a@b.com")
    backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        before = controller.identity
        calls = len(backend.calls)
        backend.emit(AuthEvent.INITIAL_SESSION, backend.persisted)
        await settle()
        await controller.handle_auth_event(AuthEvent.INITIAL_SESSION, None)
        return before, controller.identity, len(backend.calls) - calls

    before, after, new_calls = run_with_controller(scenario)

    assert before is not None
    assert after is before
    assert new_calls == 0


def test_signed_out_event_clears_identity(backend, run_with_controller, settle):
    backend.add_account("u1", "a@b.com")
    backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        backend.emit(AuthEvent.SIGNED_OUT, None)
        await settle()
        return controller.identity

    assert run_with_controller(scenario) is None


def test_token_refresh_replaces_identity_wholesale(backend, run_with_controller, settle):
    backend.add_account("u1", "d@b.com", role="driver", phone="111", full_name="Dev", driver_id="d1")
    backend.persist_session_for("d@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        before = controller.identity
        backend.profiles["u1"]["phone"] = "222"
        backend.emit(AuthEvent.TOKEN_REFRESHED, backend.persisted)
        await settle()
        return before, controller.identity

    before, after = run_with_controller(scenario)

    assert before.phone == "111"
    assert after is not before
    assert after == Identity(
        id="u1", role=Role.DRIVER, email="d@b.com", full_name="Dev", phone="222", driver_profile_id="d1"
    )


def test_token_refresh_without_profile_cleans_session(backend, run_with_controller, settle):
    backend.add_account("u1", "a@b.com")
    backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        del backend.profiles["u1"]
        backend.emit(AuthEvent.TOKEN_REFRESHED, backend.persisted)
        await settle()
        return controller.identity

    assert run_with_controller(scenario) is None
    assert backend.persisted is None


def test_token_refresh_error_cleans_session(backend, run_with_controller, settle):
    backend.add_account("u1", "a@b.com")
    session = backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        backend.profile_error = RuntimeError("boom")
        await controller.handle_auth_event(AuthEvent.TOKEN_REFRESHED, session)
        return controller.identity

    assert run_with_controller(scenario) is None
    assert backend.persisted is None


def test_refresh_completing_after_stop_is_discarded(backend, run_with_controller, settle):
    backend.add_account("u1", "a@b.com", phone="111")
    session = backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        before = controller.identity
        backend.profile_gate = asyncio.Event()
        task = asyncio.create_task(controller.handle_auth_event(AuthEvent.TOKEN_REFRESHED, session))
        await settle()
        backend.profiles["u1"]["phone"] = "222"
        controller.stop()
        backend.profile_gate.set()
        await task
        return before, controller.identity

    before, after = run_with_controller(scenario)

    assert after is before
    assert after.phone == "111"


def test_refresh_superseded_by_logout_is_discarded(backend, run_with_controller, settle):
    backend.add_account("u1", "a@b.com")
    session = backend.persist_session_for("a@b.com")

    async def scenario(controller):
        await controller.bootstrap_task
        backend.profile_gate = asyncio.Event()
        task = asyncio.create_task(controller.handle_auth_event(AuthEvent.TOKEN_REFRESHED, session))
        await settle()
        await controller.logout()
        backend.profile_gate.set()
        await task
        return controller.identity

    assert run_with_controller(scenario) is None
    assert backend.persisted is None


# -- lifecycle -------------------------------------------------------------


def test_start_twice_raises(backend, run_with_controller):
    async def scenario(controller):
        with pytest.raises(RuntimeError):
            await controller.start()

    run_with_controller(scenario)


def test_stop_detaches_from_backend(backend, run_with_controller):
    async def scenario(controller):
        await controller.bootstrap_task
        assert len(backend.handlers) == 1

    run_with_controller(scenario)

    assert backend.handlers == []


def test_unsubscribed_listener_gets_no_updates(backend):
    seen = []

    async def main():
        controller = SessionController(backend, bootstrap_timeout=1.0)
        dispose = controller.subscribe(seen.append)
        dispose()
        await controller.start()
        await controller.bootstrap_task
        controller.stop()

    asyncio.run(main())

    assert seen == []
