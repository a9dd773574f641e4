from datetime import datetime, timezone
from decimal import Decimal

import pytest

import ranking_engine
from models import RANKING_LAST_RUN_KEY, Feedback, StallRanking, StallVisit, SystemConfig
from ranking_engine import (
    StallScore,
    compute_stall_score,
    rank_stall_scores,
    recompute_rankings,
    round_half_away_from_zero,
)
from stall_queries import get_last_ranking_run, get_leaderboard


def _add_feedback(db, make_student, stall, ratings):
    for rating in ratings:
        student = make_student(inside=True)
        db.add(Feedback(student_id=student.id, stall_id=stall.id, rating=rating))
    db.commit()


def _add_visits(db, make_student, stall, count):
    student = make_student(inside=True)
    db.add_all([StallVisit(student_id=student.id, stall_id=stall.id) for _ in range(count)])
    db.commit()


def _snapshot(db):
    db.expire_all()
    return [
        (r.stall_id, r.rank, r.score, r.avg_rating, r.total_feedback, r.total_visits, r.computed_at)
        for r in db.query(StallRanking).order_by(StallRanking.rank.asc()).all()
    ]


@pytest.mark.parametrize(
    "value,expected",
    [("2.345", "2.35"), ("2.344", "2.34"), ("1.005", "1.01"), ("-1.005", "-1.01"), ("3.5", "3.50")],
)
def test_round_half_away_from_zero(value, expected):
    assert round_half_away_from_zero(Decimal(value)) == Decimal(expected)


def test_compute_stall_score_formula():
    assert compute_stall_score(1, 15, 3, 0).score == 3.5
    assert compute_stall_score(2, 3, 3, 60).score == 1.6
    # Visit contribution is capped at 5 points.
    assert compute_stall_score(3, 0, 0, 1000).score == 1.5
    assert compute_stall_score(4, 10, 3, 0).avg_rating == 3.33
    assert compute_stall_score(5, 14, 3, 7).score == 3.37


def test_rank_ties_keep_input_order():
    scores = [
        StallScore(stall_id=1, score=2.0, avg_rating=2.0, total_feedback=1, total_visits=0),
        StallScore(stall_id=2, score=4.0, avg_rating=4.0, total_feedback=1, total_visits=0),
        StallScore(stall_id=3, score=2.0, avg_rating=2.0, total_feedback=1, total_visits=0),
        StallScore(stall_id=4, score=2.0, avg_rating=2.0, total_feedback=1, total_visits=0),
    ]
    ranked = rank_stall_scores(scores)
    assert [r.stall_id for r in ranked] == [2, 1, 3, 4]
    assert [r.rank for r in ranked] == [1, 2, 3, 4]


def test_recompute_worked_example(db, make_student, make_stall):
    stall_a = make_stall(stall_name="Stall A")
    stall_b = make_stall(stall_name="Stall B")
    stall_c = make_stall(stall_name="Stall C")
    _add_feedback(db, make_student, stall_a, [5, 5, 5])
    _add_feedback(db, make_student, stall_b, [1, 1, 1])
    _add_visits(db, make_student, stall_b, 60)

    result = recompute_rankings(db)

    assert result.changed is True
    assert result.total_stalls == 2
    board = get_leaderboard(db)
    assert [(e.stall_id, e.rank, e.score) for e in board] == [
        (stall_a.id, 1, 3.5),
        (stall_b.id, 2, 1.6),
    ]
    assert stall_c.id not in {e.stall_id for e in board}
    assert board[1].total_visits == 60
    assert board[1].total_feedback == 3


def test_visits_only_stall_is_ranked(db, make_student, make_stall):
    stall = make_stall()
    _add_visits(db, make_student, stall, 20)
    recompute_rankings(db)
    board = get_leaderboard(db)
    assert [(e.stall_id, e.score, e.avg_rating) for e in board] == [(stall.id, 0.3, 0.0)]


def test_recompute_is_idempotent(db, make_student, make_stall):
    stall_a, stall_b = make_stall(), make_stall()
    _add_feedback(db, make_student, stall_a, [4, 5])
    _add_feedback(db, make_student, stall_b, [3])

    recompute_rankings(db)
    first = _snapshot(db)
    second_run = recompute_rankings(db)

    assert second_run.changed is False
    assert _snapshot(db) == first


def test_recompute_replaces_whole_set(db, make_student, make_stall):
    stall_a, stall_b = make_stall(), make_stall()
    _add_feedback(db, make_student, stall_a, [3])
    _add_feedback(db, make_student, stall_b, [2])
    recompute_rankings(db)
    assert [row[0] for row in _snapshot(db)] == [stall_a.id, stall_b.id]

    _add_feedback(db, make_student, stall_b, [5, 5, 5, 5])
    result = recompute_rankings(db)

    assert result.changed is True
    snapshot = _snapshot(db)
    assert [row[0] for row in snapshot] == [stall_b.id, stall_a.id]
    assert len({row[6] for row in snapshot}) == 1


def test_failed_recompute_keeps_previous_rankings(db, make_student, make_stall, monkeypatch):
    stall_a, stall_b = make_stall(), make_stall()
    _add_feedback(db, make_student, stall_a, [5])
    _add_feedback(db, make_student, stall_b, [2])
    recompute_rankings(db)
    before = _snapshot(db)

    _add_feedback(db, make_student, stall_b, [5, 5, 5])

    def _explode(*args, **kwargs):
        raise RuntimeError("writer crashed")

    monkeypatch.setattr(ranking_engine, "_build_ranking_rows", _explode)
    with pytest.raises(RuntimeError):
        recompute_rankings(db)

    assert _snapshot(db) == before


def test_recompute_with_no_signals(db, make_stall):
    make_stall()
    result = recompute_rankings(db)
    assert result.total_stalls == 0
    assert result.rankings == []
    assert result.changed is False


def test_unchanged_run_still_stamps_last_run(db, make_student, make_stall, monkeypatch):
    stall = make_stall()
    _add_feedback(db, make_student, stall, [4])
    stamps = iter([
        datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 14, 10, 5, tzinfo=timezone.utc),
    ])
    monkeypatch.setattr(ranking_engine, "now_tz", lambda: next(stamps))

    assert recompute_rankings(db).changed is True
    before = _snapshot(db)
    assert recompute_rankings(db).changed is False

    assert _snapshot(db) == before
    rows = db.query(SystemConfig).filter(SystemConfig.key == RANKING_LAST_RUN_KEY).all()
    assert [row.value for row in rows] == ["2026-03-14T10:05:00+00:00"]
    assert get_last_ranking_run(db) == datetime(2026, 3, 14, 10, 5, tzinfo=timezone.utc)
