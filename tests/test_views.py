import msgspec

from firework_race.engine.views import RoundEndedPayload, build_snapshot, encode_event, snapshot, winner_history
from firework_race.simulation.config import GameConfig


def test_idle_snapshot_before_the_first_round(scenario):
    s = scenario(["a", "b"])

    state = build_snapshot(s.engine)

    assert state.phase == "idle"
    assert state.round is None
    assert state.racers == []
    assert state.countdown == s.config.round_duration
    assert state.claim_status == "idle"


def test_snapshot_uses_camel_case_keys_and_hides_addresses(scenario):
    s = scenario(["a", "b", "c"])
    s.start(reward=2.5)
    s.tick(3)

    message = encode_event("gameState", build_snapshot(s.engine, "claimed"))
    envelope = msgspec.json.decode(message)

    assert envelope["event"] == "gameState"
    data = envelope["data"]
    assert set(data) == {
        "round",
        "countdown",
        "breakRemaining",
        "reward",
        "totalDistributed",
        "phase",
        "racers",
        "winner",
        "winners",
        "cameraHeight",
        "leaderId",
        "claimStatus",
    }
    assert data["reward"] == 2.5
    assert data["claimStatus"] == "claimed"
    assert set(data["racers"][0]) == {"id", "handle", "x", "progress", "exploded", "heightM"}
    assert b"address-of" not in message


def test_snapshot_reports_the_winner_once_declared(scenario):
    s = scenario(["a", "b"])
    s.start()
    s.engine.expire()

    state = build_snapshot(s.engine)

    assert state.phase == "ended"
    assert state.winner == snapshot(s.round.winner)
    assert state.break_remaining == s.config.break_duration
    assert state.winners[0].round == s.round.number


def test_broadcast_history_is_capped_but_stats_keep_more(scenario):
    s = scenario(["a", "b"], config=GameConfig(broadcast_history=2, winner_retention=5, launch_delay_max=0.0))
    for _ in range(4):
        s.start()
        s.engine.expire()
        while s.engine.break_tick():
            pass

    assert [w.round for w in build_snapshot(s.engine).winners] == [4, 3]
    assert len(winner_history(s.engine)) == 4


def test_round_ended_payload_shape(scenario):
    s = scenario(["a", "b"])
    s.start(reward=0.75)
    s.engine.expire()

    payload = RoundEndedPayload(round=s.round.number, winner=snapshot(s.round.winner), reward=0.75)
    data = msgspec.json.decode(encode_event("roundEnded", payload))["data"]

    assert data["round"] == 1
    assert data["reward"] == 0.75
    assert data["winner"]["handle"] == "a"
