from conftest import NOW, hours


def _headers(pid):
    return {"X-Player-Id": pid}


def _create_players(client, *ids):
    for pid in ids:
        resp = client.post("/api/v0/players", json={"id": pid, "name": f"Player {pid}"})
        assert resp.status_code == 200, resp.text


def _create_match(client, player_ids, start, end=None, is_public=False, creator=None):
    body = {"playerIds": player_ids, "startTime": start.isoformat(), "isPublic": is_public}
    if end is not None:
        body["endTime"] = end.isoformat()
    resp = client.post(
        "/api/v0/matches", json=body, headers=_headers(creator or player_ids[0])
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_healthz(api_client):
    client, _ = api_client
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/api/healthz").json() == {"status": "ok"}


def test_player_endpoints(api_client):
    client, _ = api_client
    _create_players(client, "p1")
    data = client.get("/api/v0/players/p1").json()
    assert data["rating"] == 1500
    assert data["tier"] == "Advanced"

    dup = client.post("/api/v0/players", json={"id": "p1", "name": "Again"})
    assert dup.status_code == 400
    assert dup.json()["code"] == "player_exists"

    missing = client.get("/api/v0/players/ghost")
    assert missing.status_code == 404
    assert missing.headers["content-type"].startswith("application/problem+json")
    assert missing.json()["code"] == "player_not_found"


def test_match_state_depends_on_viewer(api_client):
    client, _ = api_client
    _create_players(client, "p1", "p2", "p3")
    match = _create_match(client, ["p1", "p2"], NOW + hours(24), is_public=True)
    assert match["status"] == "recruiting"
    assert match["state"]["phase"] == "upcoming"
    assert match["state"]["isCreator"] is True
    assert match["state"]["canCancel"] is True

    outsider = client.get(f"/api/v0/matches/{match['id']}", headers=_headers("p3")).json()
    assert outsider["state"]["canJoin"] is True
    assert outsider["state"]["userParticipating"] is False

    anonymous = client.get(f"/api/v0/matches/{match['id']}").json()
    assert anonymous["state"]["userTeam"] is None

    joined = client.post(
        f"/api/v0/matches/{match['id']}/join", json={"team": 2}, headers=_headers("p3")
    )
    assert joined.status_code == 200, joined.text
    assert joined.json()["playerIds"] == ["p1", "p2", "p3", None]
    assert joined.json()["state"]["userTeam"] == 2


def test_create_requires_creator_in_slot_one(api_client):
    client, _ = api_client
    _create_players(client, "p1", "p2")
    resp = client.post(
        "/api/v0/matches",
        json={"playerIds": ["p1", "p2"], "startTime": NOW.isoformat()},
        headers=_headers("p2"),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "match_forbidden"

    no_viewer = client.post(
        "/api/v0/matches", json={"playerIds": ["p1"], "startTime": NOW.isoformat()}
    )
    assert no_viewer.status_code == 401


def test_naive_start_time_rejected(api_client):
    client, _ = api_client
    _create_players(client, "p1")
    resp = client.post(
        "/api/v0/matches",
        json={"playerIds": ["p1"], "startTime": "2026-05-01T12:00:00"},
        headers=_headers("p1"),
    )
    assert resp.status_code == 422


def test_score_and_confirmation_flow(api_client):
    client, clock = api_client
    _create_players(client, "p1", "p2", "p3", "p4")
    match = _create_match(client, ["p1", "p2", "p3", "p4"], NOW - hours(3), NOW - hours(1))
    mid = match["id"]
    assert match["state"]["needsScores"] is True
    assert match["state"]["canEnterScores"] is True

    bad = client.post(
        f"/api/v0/matches/{mid}/sets", json={"sets": [[6, 6]]}, headers=_headers("p1")
    )
    assert bad.status_code == 422
    assert bad.json()["code"] == "match_validation_error"
    assert "Set 1" in bad.json()["detail"]

    forbidden = client.post(
        f"/api/v0/matches/{mid}/sets", json={"sets": [[6, 4], [6, 2]]}, headers=_headers("p2")
    )
    assert forbidden.status_code == 403

    scored = client.post(
        f"/api/v0/matches/{mid}/sets",
        json={"sets": [{"team1": 6, "team2": 4}, {"team1": 3, "team2": 6}, [7, 5]]},
        headers=_headers("p1"),
    )
    assert scored.status_code == 200, scored.text
    body = scored.json()
    assert body["status"] == "needs_confirmation"
    assert body["validationStatus"] == "pending"
    assert body["winnerTeam"] == 1
    assert body["state"]["phase"] == "completed"
    assert body["state"]["userWon"] is True

    summary = client.get(f"/api/v0/matches/{mid}/confirmations").json()
    assert summary["outstandingCount"] == 4
    assert summary["window"]["statusText"] == "24 hours to respond"

    for pid in ("p1", "p2", "p3"):
        vote = client.post(
            f"/api/v0/matches/{mid}/confirmations",
            json={"approve": True},
            headers=_headers(pid),
        )
        assert vote.status_code == 200, vote.text
        assert vote.json()["validationStatus"] == "pending"

    clock["now"] = NOW + hours(2)
    last = client.post(
        f"/api/v0/matches/{mid}/confirmations", json={"approve": True}, headers=_headers("p4")
    ).json()
    assert last["validationStatus"] == "confirmed"
    assert last["allConfirmed"] is True
    assert last["ratingsApplied"] is True

    # 3-set win: narrow margin, equal teams
    assert client.get("/api/v0/players/p1").json()["rating"] == 1515
    assert client.get("/api/v0/players/p4").json()["rating"] == 1485

    again = client.post(
        f"/api/v0/matches/{mid}/confirmations", json={"approve": False}, headers=_headers("p4")
    )
    assert again.status_code == 409
    assert again.json()["code"] == "match_state_conflict"

    stats = client.get("/api/v0/players/p1/stats").json()
    assert stats["wins"] == 1
    assert stats["winRate"] == 100


def test_process_confirmations_endpoint(api_client):
    client, clock = api_client
    _create_players(client, "p1", "p2", "p3", "p4")
    match = _create_match(client, ["p1", "p2", "p3", "p4"], NOW - hours(3), NOW - hours(1))
    client.post(
        f"/api/v0/matches/{match['id']}/sets",
        json={"sets": [[2, 6], [1, 6]]},
        headers=_headers("p1"),
    )

    clock["now"] = NOW + hours(30)
    result = client.post("/api/v0/matches/process-confirmations").json()
    assert result == {"processed": 1, "confirmedApplied": 0, "expiredApplied": 1, "errors": []}

    detail = client.get(f"/api/v0/matches/{match['id']}").json()
    assert detail["status"] == "completed"
    assert detail["allConfirmed"] is False
    assert detail["ratingApplied"] is True
    assert client.get("/api/v0/players/p3").json()["rating"] == 1515


def test_cancel_match(api_client):
    client, _ = api_client
    _create_players(client, "p1", "p2")
    match = _create_match(client, ["p1", "p2"], NOW + hours(4))

    denied = client.delete(f"/api/v0/matches/{match['id']}", headers=_headers("p2"))
    assert denied.status_code == 403

    resp = client.delete(f"/api/v0/matches/{match['id']}", headers=_headers("p1"))
    assert resp.status_code == 204
    detail = client.get(f"/api/v0/matches/{match['id']}", headers=_headers("p1")).json()
    assert detail["status"] == "cancelled"
    assert detail["state"]["phase"] == "cancelled"
    assert detail["state"]["canCancel"] is False


def test_unknown_match(api_client):
    client, _ = api_client
    resp = client.get("/api/v0/matches/nope")
    assert resp.status_code == 404
    assert resp.json()["code"] == "match_not_found"
    assert resp.json()["instance"] == "/api/v0/matches/nope"
