"""Full flows: register, study, get paid, buy a break."""
from conftest import register
from timer import IDLE, BreakCountdown, StudyTimer


class Tick:
    """Monotonic stand-in for time.monotonic."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FlaskRecorder:
    """Timer recorder that talks to the Flask test client instead of requests."""

    def __init__(self, client):
        self.client = client

    def create_session(self, user_id, duration, coins_earned, idempotency_key=None):
        resp = self.client.post("/api/sessions", json={
            "userId": user_id, "duration": duration, "coinsEarned": coins_earned,
            "idempotencyKey": idempotency_key,
        })
        assert resp.status_code == 201
        return resp.get_json()

    def update_streak(self):
        return self.client.post("/api/update-streak").get_json()

    def purchase_break(self, break_id):
        resp = self.client.post(f"/api/breaks/{break_id}/purchase")
        assert resp.status_code == 200
        return resp.get_json()


def test_alice_scenario(client):
    alice = register(client, "alice", "pw")
    uid = alice["id"]
    assert client.get(f"/api/stats/{uid}").get_json()["currency"] == 100

    resp = client.post("/api/sessions", json={"userId": uid, "duration": 125, "coinsEarned": 10})
    assert resp.status_code == 201

    stats = client.get(f"/api/stats/{uid}").get_json()
    assert stats["currency"] == 110
    assert stats["totalSessions"] == 1
    assert stats["totalStudyTime"] == 125


def test_timer_session_reaches_ledger(client):
    alice = register(client, "alice", "pw")
    uid = alice["id"]
    tick = Tick()
    timer = StudyTimer(FlaskRecorder(client), uid, earn_rate=10, clock=tick)

    timer.start()
    tick.now += 125
    timer.tick()
    assert timer.pending_coins == 20
    result = timer.stop()

    assert timer.state == IDLE
    assert result.duration == 125
    assert result.coins_earned == 20
    assert result.session["duration"] == 125

    stats = client.get(f"/api/stats/{uid}").get_json()
    assert stats["currency"] == 120
    assert stats["streakDays"] == 1  # refreshed when the timer started
    assert len(client.get(f"/api/sessions/{uid}").get_json()) == 1


def test_study_then_buy_break(client):
    alice = register(client, "alice", "pw")
    uid = alice["id"]
    tick = Tick()
    recorder = FlaskRecorder(client)
    timer = StudyTimer(recorder, uid, earn_rate=10, clock=tick)

    timer.start()
    tick.now += 15 * 60
    timer.stop()
    assert client.get(f"/api/stats/{uid}").get_json()["currency"] == 250

    timer.start()
    countdown = BreakCountdown(clock=tick)
    option = client.get("/api/breaks").get_json()[0]
    purchase = timer.take_break(option, countdown)

    assert purchase["stats"]["currency"] == 0
    assert timer.state == "paused"
    assert countdown.remaining == 300
