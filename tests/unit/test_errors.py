"""Error taxonomy and result-to-status mapping."""

from riyaz.errors import (
    InfrastructureError,
    NotFoundError,
    RateLimitError,
    StateConflictError,
    ValidationError,
    status_for_result,
)


class TestToResult:
    def test_carries_code_message_and_extra_fields(self):
        err = RateLimitError("DAILY_MINUTES_EXCEEDED", "Too much today", remainingMinutes=15)
        assert err.to_result() == {
            "ok": False,
            "code": "DAILY_MINUTES_EXCEEDED",
            "message": "Too much today",
            "remainingMinutes": 15,
        }

    def test_message_defaults_to_code(self):
        assert NotFoundError("NOT_FOUND").to_result()["message"] == "NOT_FOUND"

    def test_infrastructure_error_is_opaque(self):
        result = InfrastructureError().to_result()
        assert result["code"] == "INTERNAL_ERROR"
        assert result["ok"] is False


class TestStatusForResult:
    def test_success(self):
        assert status_for_result({"ok": True}) == 200

    def test_soft_league_lock_is_still_success(self):
        assert status_for_result({"ok": True, "code": "LEAGUE_LOCKED", "leagueUpdateSkipped": True}) == 200

    def test_codes(self):
        assert status_for_result(ValidationError("MIN_DURATION").to_result()) == 400
        assert status_for_result(RateLimitError("DAILY_LIMIT_REACHED").to_result()) == 429
        assert status_for_result(StateConflictError("NOT_COMPLETED").to_result()) == 409
        assert status_for_result(NotFoundError("NOT_FOUND").to_result()) == 404
        assert status_for_result({"ok": False, "code": "PREMIUM_REQUIRED"}) == 403
        assert status_for_result(InfrastructureError().to_result()) == 503

    def test_unknown_code_is_bad_request(self):
        assert status_for_result({"ok": False, "code": "SOMETHING_ELSE"}) == 400
