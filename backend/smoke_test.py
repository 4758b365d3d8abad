import os
import sys
import time
import random
import requests

BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:8000").rstrip("/")
CAPTAINS = int(os.getenv("CAPTAINS", "3"))
ROUNDS = int(os.getenv("ROUNDS", "2"))
SEED = int(os.getenv("SEED", "42"))  # deterministic player choice

# If you already created these usernames before, change the prefix
USER_PREFIX = os.getenv("USER_PREFIX", "smoke")


def req(method: str, path: str, token: str | None = None, captain_token: str | None = None, **kwargs):
    url = f"{BASE_URL}{path}"
    headers = kwargs.pop("headers", {})
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if captain_token:
        headers["X-Captain-Token"] = captain_token
    r = requests.request(method, url, headers=headers, timeout=20, **kwargs)
    if r.status_code >= 400:
        try:
            body = r.json()
        except ValueError:
            body = r.text
        raise RuntimeError(f"{method} {path} -> {r.status_code}: {body}")
    return r


def register_or_login(username: str, password: str) -> str:
    try:
        r = req("POST", "/auth/register", json={"username": username, "password": password})
        return r.json()["access_token"]
    except RuntimeError as e:
        if "409" not in str(e):
            raise
        r = req("POST", "/auth/login-json", json={"username": username, "password": password})
        return r.json()["access_token"]


def draft_state(league_id: str) -> dict:
    return req("GET", f"/draft/state?league_id={league_id}").json()


def expect_status(e: RuntimeError, code: int) -> None:
    if f"-> {code}:" not in str(e):
        raise e


def main() -> None:
    rng = random.Random(SEED)
    stamp = int(time.time())

    print(f"Base URL: {BASE_URL}")
    req("GET", "/health")

    token = register_or_login(f"{USER_PREFIX}_manager", "password123")
    league = req(
        "POST",
        "/leagues/create",
        token=token,
        json={"name": f"Smoke {stamp}", "draft_rounds": ROUNDS, "time_limit_seconds": 60},
    ).json()
    league_id = league["id"]
    print(f"League: {league['name']} ({league_id})")

    players = [{"name": f"Player {i:02d}", "rank": i} for i in range(1, CAPTAINS * ROUNDS + 4)]
    req("POST", f"/leagues/{league_id}/players", token=token, json={"players": players})

    captains = {}
    for i in range(1, CAPTAINS + 1):
        c = req("POST", f"/leagues/{league_id}/captains", token=token, json={"name": f"Captain {i}"}).json()
        captains[c["id"]] = c["access_token"]
    print(f"Captains: {len(captains)}")

    req("POST", f"/leagues/{league_id}/start", token=token)

    # Wrong captain must be turned away
    state = draft_state(league_id)
    on_clock = state["turn"]["captain_id"]
    other = next(cid for cid in captains if cid != on_clock)
    try:
        req(
            "POST",
            "/draft/pick",
            captain_token=captains[other],
            json={"league_id": league_id, "player_id": state["available"][0]["id"]},
        )
        raise SystemExit("❌ Out-of-turn pick was accepted")
    except RuntimeError as e:
        expect_status(e, 409)
    print("✅ Out-of-turn pick rejected")

    picks_made = 0
    while True:
        state = draft_state(league_id)
        turn = state["turn"]
        if turn["status"] == "completed":
            break

        captain_id = turn["captain_id"]
        player = rng.choice(state["available"])
        out = req(
            "POST",
            "/draft/pick",
            captain_token=captains[captain_id],
            json={"league_id": league_id, "player_id": player["id"], "expected_pick_index": turn["pick_index"]},
        ).json()
        picks_made += 1
        print(f"Pick {out['pick_number']}: {player['name']} -> captain {captain_id[:8]}")

    if picks_made != CAPTAINS * ROUNDS:
        raise SystemExit(f"❌ Expected {CAPTAINS * ROUNDS} picks, made {picks_made}")

    undo = req("POST", f"/leagues/{league_id}/undo", token=token).json()
    if undo["turn"]["status"] != "in_progress":
        raise SystemExit("❌ Undo did not reopen the draft")
    print(f"✅ Undid pick {undo['undone_pick']}")

    audit = req("GET", f"/leagues/{league_id}/audit", token=token).json()
    actions = {e["action"] for e in audit["entries"]}
    for required in ("draft_started", "pick_made", "pick_rejected", "pick_undone"):
        if required not in actions:
            raise SystemExit(f"❌ Missing audit action {required}")

    print(f"✅ Smoke test passed ({picks_made} picks, {len(audit['entries'])} audit entries)")


if __name__ == "__main__":
    try:
        main()
    except RuntimeError as e:
        print(f"❌ {e}")
        sys.exit(1)
