import pytest

import feedback_ledger
from admission_state import check_in, check_out
from engine_errors import (
    DuplicateFeedback,
    InvalidRating,
    InvalidToken,
    LimitExceeded,
    NotEligible,
    StudentNotFound,
    UnknownStall,
)
from feedback_ledger import record_stall_visit, scan_stall, submit_feedback
from models import FEEDBACK_LIMIT_PER_STUDENT, Feedback, Stall, StallVisit, Student
from token_codec import issue_stall_token


def _feedback_count(db):
    return db.query(Feedback).count()


def _student_count(db, student_id):
    db.expire_all()
    return db.query(Student).filter(Student.id == student_id).one().feedback_count


def _stall_count(db, stall_id):
    db.expire_all()
    return db.query(Stall).filter(Stall.id == stall_id).one().total_feedback_count


def test_check_in_then_submit_succeeds(db, make_student, make_stall):
    student = make_student()
    stall = make_stall(stall_name="Computer Science Innovations")
    check_in(db, student.id)

    result = submit_feedback(db, student.id, stall.id, 4, "Great demo")

    assert result.feedback.rating == 4
    assert result.feedback.comment == "Great demo"
    assert result.feedback.stall_name == "Computer Science Innovations"
    assert result.feedback.stall_number == stall.stall_number
    assert result.total_feedbacks_given == 1
    assert result.remaining_feedbacks == FEEDBACK_LIMIT_PER_STUDENT - 1
    assert _feedback_count(db) == 1
    assert _student_count(db, student.id) == 1
    assert _stall_count(db, stall.id) == 1


def test_submit_without_check_in_not_eligible(db, make_student, make_stall):
    student = make_student()
    stall = make_stall()
    with pytest.raises(NotEligible):
        submit_feedback(db, student.id, stall.id, 5)
    assert _feedback_count(db) == 0


def test_submit_after_check_out_not_eligible(db, make_student, make_stall):
    student = make_student()
    stall = make_stall()
    check_in(db, student.id)
    check_out(db, student.id)
    with pytest.raises(NotEligible):
        submit_feedback(db, student.id, stall.id, 5)
    assert _student_count(db, student.id) == 0


@pytest.mark.parametrize("rating", [0, 6, -1, 100, None, "5", 4.5, True])
def test_invalid_rating_creates_nothing(db, make_student, make_stall, rating):
    student = make_student(inside=True)
    stall = make_stall()
    with pytest.raises(InvalidRating):
        submit_feedback(db, student.id, stall.id, rating)
    assert _feedback_count(db) == 0
    assert _student_count(db, student.id) == 0
    assert _stall_count(db, stall.id) == 0


def test_limit_exceeded_regardless_of_stall(db, make_student, make_stall):
    student = make_student(inside=True, feedback_count=FEEDBACK_LIMIT_PER_STUDENT)
    first, second = make_stall(), make_stall()
    for stall in (first, second):
        with pytest.raises(LimitExceeded):
            submit_feedback(db, student.id, stall.id, 5)
    assert _feedback_count(db) == 0
    assert _student_count(db, student.id) == FEEDBACK_LIMIT_PER_STUDENT


def test_last_slot_can_be_used(db, make_student, make_stall):
    student = make_student(inside=True, feedback_count=FEEDBACK_LIMIT_PER_STUDENT - 1)
    stall = make_stall()
    result = submit_feedback(db, student.id, stall.id, 3)
    assert result.total_feedbacks_given == FEEDBACK_LIMIT_PER_STUDENT
    assert result.remaining_feedbacks == 0


def test_unknown_stall(db, make_student):
    student = make_student(inside=True)
    with pytest.raises(UnknownStall):
        submit_feedback(db, student.id, 4242, 5)


def test_unknown_student(db, make_stall):
    stall = make_stall()
    with pytest.raises(StudentNotFound):
        submit_feedback(db, 4242, stall.id, 5)


def test_duplicate_feedback_rejected(db, make_student, make_stall):
    student = make_student(inside=True)
    stall = make_stall()
    submit_feedback(db, student.id, stall.id, 5)
    with pytest.raises(DuplicateFeedback):
        submit_feedback(db, student.id, stall.id, 2)
    assert _feedback_count(db) == 1


def test_duplicate_race_resolved_by_unique_index(db, make_student, make_stall, monkeypatch):
    student = make_student(inside=True)
    stall = make_stall()
    submit_feedback(db, student.id, stall.id, 5)

    # A concurrent request that passed the lookup before the first insert committed.
    monkeypatch.setattr(feedback_ledger, "_find_existing_feedback", lambda *args: None)
    with pytest.raises(DuplicateFeedback):
        submit_feedback(db, student.id, stall.id, 1)

    assert _feedback_count(db) == 1
    assert _student_count(db, student.id) == 1
    assert _stall_count(db, stall.id) == 1


def test_error_order_eligibility_before_rating(db, make_student):
    student = make_student()
    with pytest.raises(NotEligible):
        submit_feedback(db, student.id, 4242, 99)


def test_error_order_limit_before_unknown_stall(db, make_student):
    student = make_student(inside=True, feedback_count=FEEDBACK_LIMIT_PER_STUDENT)
    with pytest.raises(LimitExceeded):
        submit_feedback(db, student.id, 4242, 99)


def test_error_order_duplicate_before_rating(db, make_student, make_stall):
    student = make_student(inside=True)
    stall = make_stall()
    submit_feedback(db, student.id, stall.id, 5)
    with pytest.raises(DuplicateFeedback):
        submit_feedback(db, student.id, stall.id, 99)


def test_scan_stall_reports_existing_feedback(db, make_student, make_stall):
    student = make_student(inside=True)
    stall = make_stall(stall_name="AI & Machine Learning Lab")

    before = scan_stall(db, student.id, stall.qr_code_token)
    assert before.stall.id == stall.id
    assert before.stall.stall_name == "AI & Machine Learning Lab"
    assert before.stall.school_name == "School of Computer Science & Engineering"
    assert before.already_reviewed is False
    assert before.existing_feedback is None

    submit_feedback(db, student.id, stall.id, 4, "Nice")
    after = scan_stall(db, student.id, stall.qr_code_token)
    assert after.already_reviewed is True
    assert after.existing_feedback.rating == 4
    assert after.existing_feedback.comment == "Nice"


def test_scan_stall_is_read_only_and_repeatable(db, make_student, make_stall):
    student = make_student(inside=True)
    stall = make_stall()
    first = scan_stall(db, student.id, stall.qr_code_token)
    second = scan_stall(db, student.id, stall.qr_code_token)
    assert first == second
    assert _feedback_count(db) == 0
    assert db.query(StallVisit).count() == 0


@pytest.mark.parametrize("token", ["", "junk", "STALL_CS-001_1_abc", "STUDENT_2024SGTU1_1700000000000_abcdef12"])
def test_scan_stall_invalid_token(db, make_student, token):
    student = make_student(inside=True)
    with pytest.raises(InvalidToken):
        scan_stall(db, student.id, token)


def test_scan_stall_unbound_token_is_uniform(db, make_student, make_stall):
    student = make_student(inside=True)
    make_stall(stall_number="CS-001")
    with pytest.raises(InvalidToken) as unbound:
        scan_stall(db, student.id, issue_stall_token("CS-001"))
    with pytest.raises(InvalidToken) as malformed:
        scan_stall(db, student.id, "junk")
    assert unbound.value.message == malformed.value.message


def test_scan_stall_requires_check_in(db, make_student, make_stall):
    student = make_student()
    stall = make_stall()
    with pytest.raises(NotEligible):
        scan_stall(db, student.id, stall.qr_code_token)


def test_record_stall_visit(db, make_student, make_stall, make_staff):
    student = make_student(inside=True)
    stall = make_stall()
    volunteer = make_staff()

    result = record_stall_visit(db, student.qr_code_token, stall.qr_code_token, recorded_by=volunteer.id)
    assert result.student_id == student.id
    assert result.stall_id == stall.id
    assert result.stall_number == stall.stall_number

    # Visits may repeat; each scan is one signal.
    record_stall_visit(db, student.qr_code_token, stall.qr_code_token, recorded_by=volunteer.id)
    assert db.query(StallVisit).filter(StallVisit.stall_id == stall.id).count() == 2


def test_record_stall_visit_requires_check_in(db, make_student, make_stall):
    student = make_student()
    stall = make_stall()
    with pytest.raises(NotEligible):
        record_stall_visit(db, student.qr_code_token, stall.qr_code_token)
    assert db.query(StallVisit).count() == 0


def test_check_in_does_not_count_as_visit(db, make_student):
    student = make_student()
    check_in(db, student.id)
    assert db.query(StallVisit).count() == 0
