import pytest

import ladder.storage as storage
from ladder.services import ladders as ladder_service
from ladder.services.exceptions import ServiceError


def _ids_by_rank(ladder_id):
    return [(m["user_id"], m["rank"]) for m in ladder_service.standings(ladder_id)["members"]]


def test_join_appends_at_bottom(league):
    assert _ids_by_rank(league.ladder_id) == [("p1", 1), ("p2", 2), ("p3", 3), ("p4", 4)]
    member = league.members["p1"]
    assert member.score == 100
    assert member.winning_streak == 0
    assert member.trend == "none"


def test_join_twice_conflicts(league):
    with pytest.raises(ServiceError) as exc:
        ladder_service.join_ladder(league.ladder_id, "p2")
    assert exc.value.status_code == 409


def test_preview_does_not_persist(league):
    table = ladder_service.standings(league.ladder_id)
    order = [m["membership_id"] for m in table["members"]]

    preview = ladder_service.preview_reorder(league.ladder_id, order, order[3], 0, league.admin)

    assert preview == [order[3], order[0], order[1], order[2]]
    assert ladder_service.standings(league.ladder_id) == table


def test_commit_round_trip(league):
    table = ladder_service.standings(league.ladder_id)
    order = [m["membership_id"] for m in table["members"]]
    new_order = ladder_service.preview_reorder(league.ladder_id, order, order[0], 2, league.admin)

    version = ladder_service.commit_ranks(
        league.ladder_id, new_order, league.admin, version=table["version"]
    )

    after = ladder_service.standings(league.ladder_id)
    assert after["version"] == version != table["version"]
    assert [m["membership_id"] for m in after["members"]] == new_order
    assert [m["rank"] for m in after["members"]] == [1, 2, 3, 4]
    assert _ids_by_rank(league.ladder_id)[2] == ("p1", 3)


def test_commit_rejects_non_permutation(league):
    order = [m["membership_id"] for m in ladder_service.standings(league.ladder_id)["members"]]
    before = _ids_by_rank(league.ladder_id)

    for bad in (order[:3], order + [999], [order[0]] * 4):
        with pytest.raises(ServiceError) as exc:
            ladder_service.commit_ranks(league.ladder_id, bad, league.admin)
        assert exc.value.status_code == 400
    assert _ids_by_rank(league.ladder_id) == before


def test_commit_stale_version_conflicts(league):
    table = ladder_service.standings(league.ladder_id)
    order = [m["membership_id"] for m in table["members"]]

    ladder_service.commit_ranks(league.ladder_id, list(reversed(order)), league.admin,
                                version=table["version"])
    with pytest.raises(ServiceError) as exc:
        ladder_service.commit_ranks(league.ladder_id, order, league.admin, version=table["version"])
    assert exc.value.status_code == 409
    assert [uid for uid, _ in _ids_by_rank(league.ladder_id)] == ["p4", "p3", "p2", "p1"]


def test_commit_requires_admin(league):
    order = [m["membership_id"] for m in ladder_service.standings(league.ladder_id)["members"]]
    with pytest.raises(ServiceError) as exc:
        ladder_service.commit_ranks(league.ladder_id, order, "p1")
    assert exc.value.status_code == 403
    with pytest.raises(ServiceError) as exc:
        ladder_service.preview_reorder(league.ladder_id, order, order[0], 9, league.admin)
    assert exc.value.status_code == 400


def test_deactivated_member_leaves_ordering(league):
    ladder_service.deactivate_membership(league.ladder_id, "p2", league.admin)
    table = ladder_service.standings(league.ladder_id)
    assert [m["user_id"] for m in table["members"]] == ["p1", "p3", "p4"]

    order = [m["membership_id"] for m in table["members"]]
    ladder_service.commit_ranks(league.ladder_id, order, league.admin, version=table["version"])
    assert _ids_by_rank(league.ladder_id) == [("p1", 1), ("p3", 2), ("p4", 3)]

    # the inactive row keeps its results and old rank
    p2 = storage.get_membership(league.ladder_id, "p2")
    assert not p2.is_active
    assert p2.current_rank == 2


def test_rejoin_reactivates_at_bottom(league):
    ladder_service.deactivate_membership(league.ladder_id, "p1", league.admin)
    old_id = league.members["p1"].id

    member = ladder_service.join_ladder(league.ladder_id, "p1")

    assert member.id == old_id
    assert member.is_active
    assert member.current_rank == 5
    assert [uid for uid, _ in _ids_by_rank(league.ladder_id)] == ["p2", "p3", "p4", "p1"]
    assert len(storage.list_user_memberships("p1")) == 1


def test_standings_cache_invalidated_after_commit(league):
    key = storage._standings_key(league.ladder_id)
    table = ladder_service.standings(league.ladder_id)
    assert storage._redis.get(key) is not None

    order = [m["membership_id"] for m in table["members"]]
    ladder_service.commit_ranks(league.ladder_id, list(reversed(order)), league.admin)

    assert storage._redis.get(key) is None
    assert ladder_service.standings(league.ladder_id)["members"][0]["user_id"] == "p4"


def test_load_racing_a_commit_is_not_cached(league, monkeypatch):
    real_load = storage.load_active_memberships
    order = [m.id for m in ladder_service.load_active_memberships(league.ladder_id)]
    committed = {}

    def load_then_commit(ladder_id, conn=None):
        rows = real_load(ladder_id, conn=conn)
        if conn is None and not committed:
            committed["version"] = ladder_service.commit_ranks(
                ladder_id, list(reversed(order)), league.admin
            )
        return rows

    monkeypatch.setattr(storage, "load_active_memberships", load_then_commit)

    stale = ladder_service.standings(league.ladder_id)
    assert stale["members"][0]["user_id"] == "p1"
    assert storage._redis.get(storage._standings_key(league.ladder_id)) is None

    fresh = ladder_service.standings(league.ladder_id)
    assert fresh["members"][0]["user_id"] == "p4"
    assert fresh["version"] == committed["version"]
    assert storage._redis.get(storage._standings_key(league.ladder_id)) is not None

    with pytest.raises(ServiceError) as exc:
        ladder_service.commit_ranks(league.ladder_id, order, league.admin, version=stale["version"])
    assert exc.value.status_code == 409
    ladder_service.commit_ranks(league.ladder_id, order, league.admin, version=fresh["version"])
    assert ladder_service.standings(league.ladder_id)["members"][0]["user_id"] == "p1"


def test_failed_commit_keeps_cache(league):
    key = storage._standings_key(league.ladder_id)
    ladder_service.standings(league.ladder_id)

    with pytest.raises(ServiceError):
        ladder_service.commit_ranks(league.ladder_id, [1], league.admin)

    assert storage._redis.get(key) is not None
    assert not storage._pending_ladders


def test_create_and_list_ladders(league):
    lid = ladder_service.create_ladder(league.admin, "Women's Night", type="women", fee=40.0)
    assert lid == "women-s-night"

    with pytest.raises(ServiceError):
        ladder_service.create_ladder(league.admin, "Women's Night")
    with pytest.raises(ServiceError):
        ladder_service.create_ladder(league.admin, "Bad", type="mixed")
    with pytest.raises(ServiceError) as exc:
        ladder_service.create_ladder("p1", "Other")
    assert exc.value.status_code == 403

    ladders = {entry["ladder_id"]: entry for entry in ladder_service.list_all_ladders()}
    assert ladders["summer"]["members"] == 4
    assert ladders[lid]["members"] == 0
    assert ladders[lid]["type"] == "women"


def test_user_memberships(league):
    memberships = ladder_service.user_memberships("p3")
    assert memberships == [
        {
            "membership_id": league.members["p3"].id,
            "user_id": "p3",
            "rank": 3,
            "score": 100,
            "winning_streak": 0,
            "trend": "none",
            "join_date": league.members["p3"].join_date.isoformat(),
            "ladder_id": "summer",
            "is_active": True,
        }
    ]
