"""Tests for the explicit session handle."""

from services.session_context import DEFAULT_TIMEOUT_SECONDS, SessionContext


class FakeClock:
    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class TestSessionContext:
    def test_generates_id(self):
        assert SessionContext().session_id
        assert SessionContext().session_id != SessionContext().session_id

    def test_default_timeout(self):
        assert SessionContext().timeout_seconds == DEFAULT_TIMEOUT_SECONDS == 1800

    def test_current_id_stable_while_active(self):
        clock = FakeClock()
        session = SessionContext("abc", timeout_seconds=60, clock=clock)
        clock.now += 59_000
        assert session.current_id() == "abc"
        clock.now += 59_000
        assert session.current_id() == "abc"

    def test_rotates_after_idle_timeout(self):
        clock = FakeClock()
        session = SessionContext("abc", timeout_seconds=60, page_views=3, clock=clock)
        clock.now += 60_001
        assert session.is_expired() is True
        new_id = session.current_id()
        assert new_id != "abc"
        assert session.started_at == clock.now
        assert session.page_views == 0
        assert session.is_expired() is False

    def test_record_page_view(self):
        session = SessionContext("abc")
        assert session.record_page_view() == 1
        assert session.record_page_view() == 2

    def test_dict_round_trip(self):
        clock = FakeClock()
        session = SessionContext("abc", page_views=4, timeout_seconds=120, clock=clock)
        restored = SessionContext.from_dict(session.to_dict(), clock=clock)
        assert restored.to_dict() == session.to_dict()
