import pytest

from admission_state import check_in
from engine_errors import RankingNotFound, StudentNotFound, UnknownStall
from feedback_ledger import record_stall_visit, submit_feedback
from models import FEEDBACK_LIMIT_PER_STUDENT, StaffRole
from ranking_engine import recompute_rankings
from stall_queries import get_event_stats, get_leaderboard, get_rank_for_stall, get_visit_history, list_stalls


def test_leaderboard_empty_before_first_recompute(db, make_stall):
    make_stall()
    assert get_leaderboard(db) == []


def test_leaderboard_limit_and_metadata(db, make_student, make_stall):
    stalls = [make_stall() for _ in range(3)]
    for rating, stall in zip([5, 3, 4], stalls):
        student = make_student(inside=True)
        submit_feedback(db, student.id, stall.id, rating)
    recompute_rankings(db)

    board = get_leaderboard(db)
    assert [e.stall_id for e in board] == [stalls[0].id, stalls[2].id, stalls[1].id]
    assert board[0].school_name == "School of Computer Science & Engineering"
    assert board[0].stall_number == stalls[0].stall_number

    top = get_leaderboard(db, limit=2)
    assert [e.rank for e in top] == [1, 2]


def test_rank_for_stall(db, make_student, make_stall):
    ranked, unranked = make_stall(), make_stall()
    student = make_student(inside=True)
    submit_feedback(db, student.id, ranked.id, 5)
    recompute_rankings(db)

    entry = get_rank_for_stall(db, ranked.id)
    assert entry.rank == 1
    assert entry.score == 3.5

    with pytest.raises(RankingNotFound):
        get_rank_for_stall(db, unranked.id)
    with pytest.raises(UnknownStall):
        get_rank_for_stall(db, 4242)


def test_visit_history(db, make_student, make_stall):
    student = make_student(inside=True)
    first, second = make_stall(), make_stall()
    submit_feedback(db, student.id, first.id, 5, "First")
    submit_feedback(db, student.id, second.id, 2)

    history = get_visit_history(db, student.id)
    assert history.total_visits == 2
    assert history.remaining_feedbacks == FEEDBACK_LIMIT_PER_STUDENT - 2
    assert {v.stall_id for v in history.visits} == {first.id, second.id}
    assert history.visits[0].stall_id == second.id


def test_visit_history_unknown_student(db):
    with pytest.raises(StudentNotFound):
        get_visit_history(db, 4242)


def test_list_stalls_ordered_by_number(db, make_stall):
    make_stall(stall_number="ME-001")
    make_stall(stall_number="BM-001")
    assert [s.stall_number for s in list_stalls(db)] == ["BM-001", "ME-001"]


def test_event_stats(db, make_student, make_stall, make_staff):
    volunteer = make_staff()
    make_staff(role=StaffRole.ADMIN)
    make_staff(is_active=False)
    inside = make_student()
    make_student()
    stall = make_stall()
    check_in(db, inside.id)
    submit_feedback(db, inside.id, stall.id, 4)
    record_stall_visit(db, inside.qr_code_token, stall.qr_code_token, recorded_by=volunteer.id)

    stats = get_event_stats(db)
    assert stats.total_students == 2
    assert stats.total_volunteers == 1
    assert stats.total_stalls == 1
    assert stats.active_check_ins == 1
    assert stats.total_feedbacks == 1
    assert stats.total_visits == 1
    assert stats.ranked_stalls == 0
    assert stats.last_ranking_at is None

    recompute_rankings(db)
    stats = get_event_stats(db)
    assert stats.ranked_stalls == 1
    assert stats.last_ranking_at is not None


def test_last_ranking_at_reflects_run_without_rankings(db, make_stall):
    make_stall()
    recompute_rankings(db)

    stats = get_event_stats(db)
    assert stats.ranked_stalls == 0
    assert stats.last_ranking_at is not None
