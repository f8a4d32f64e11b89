from conftest import make_config, make_problem
from mathleague_prep.models import SessionPhase
from mathleague_prep.rounds import RoundType, ScoringSystem
from mathleague_prep.services.session_engine import (
    AnswerJudged,
    AnswerSubmitted,
    CancelRequested,
    Finalize,
    HintRequested,
    ProblemsSupplied,
    RequestTopUp,
    SessionClosed,
    SessionStarted,
    StartFailed,
    SubmitAnswer,
    Tick,
    initial_state,
    reduce,
)


def started(question_count=30, loaded=8, duration_seconds=600, scoring_system=ScoringSystem.PENALTY, now=0.0):
    config = make_config(duration_seconds=duration_seconds, question_count=question_count, scoring_system=scoring_system)
    state = initial_state(RoundType.SPRINT, config, top_up_threshold=3, top_up_batch_size=10)
    problems = tuple(make_problem(i) for i in range(loaded))
    return reduce(state, SessionStarted(session_id="s1", problems=problems, now=now)).state


def of_type(effects, kind):
    return [e for e in effects if isinstance(e, kind)]


def test_start_with_problems_becomes_active():
    state = started()
    assert state.phase == SessionPhase.ACTIVE
    assert state.active
    assert state.current_index == 0
    assert state.time_remaining_seconds == 600
    assert state.current_problem.id == "remote-sprint-0"


def test_start_without_problems_is_cancelled():
    state = initial_state(RoundType.SPRINT, make_config())
    transition = reduce(state, SessionStarted(session_id="s1", problems=(), now=0.0))
    assert transition.state.phase == SessionPhase.CANCELLED
    assert of_type(transition.effects, SessionClosed)[0].reason == "no_problems_available"


def test_start_failure_is_cancelled():
    transition = reduce(initial_state(RoundType.TEAM), StartFailed(reason="session_create_failed"))
    assert transition.state.phase == SessionPhase.CANCELLED
    assert transition.state.results is None


def test_ticks_count_down_then_complete_once():
    state = started(duration_seconds=600)
    finalizations = 0
    for n in range(600):
        transition = reduce(state, Tick(now=float(n + 1)))
        state = transition.state
        finalizations += len(of_type(transition.effects, Finalize))
    assert state.phase == SessionPhase.COMPLETED
    assert state.finalized
    assert state.time_remaining_seconds == 0
    assert finalizations == 1

    again = reduce(state, Tick(now=601.0))
    assert again.state is state
    assert again.effects == ()


def test_answer_records_and_advances():
    state = started()
    transition = reduce(state, AnswerSubmitted(answer=" 7/8 ", now=12.4))
    state = transition.state
    assert state.answers == {0: " 7/8 "}
    assert state.verdicts == {0: True}
    assert state.current_index == 1
    assert state.problem_started_at == 12.4
    submit = of_type(transition.effects, SubmitAnswer)[0]
    assert (submit.index, submit.problem_id, submit.time_spent, submit.hints_used) == (0, "remote-sprint-0", 12, 0)


def test_top_up_requested_once_when_running_low():
    state = started(question_count=30, loaded=8)
    requests = []
    for index in range(7):
        transition = reduce(state, AnswerSubmitted(answer="7/8", now=float(index)))
        state = transition.state
        for effect in of_type(transition.effects, RequestTopUp):
            requests.append((index, effect))
    assert len(requests) == 1
    index, effect = requests[0]
    assert index == 5
    assert (effect.count, effect.start) == (10, 8)
    assert state.top_up_pending


def test_no_top_up_once_question_count_is_loaded():
    state = started(question_count=8, loaded=8)
    for index in range(8):
        transition = reduce(state, AnswerSubmitted(answer="7/8", now=float(index)))
        state = transition.state
        assert not of_type(transition.effects, RequestTopUp)
    assert state.phase == SessionPhase.COMPLETED
    assert state.current_index == 8


def test_top_up_count_is_capped_by_question_count():
    state = started(question_count=8, loaded=3)
    transition = reduce(state, AnswerSubmitted(answer="7/8", now=1.0))
    effect = of_type(transition.effects, RequestTopUp)[0]
    assert (effect.count, effect.start) == (5, 3)


def test_supplied_problems_are_appended_and_capped():
    state = started(question_count=8, loaded=3)
    state = reduce(state, AnswerSubmitted(answer="7/8", now=1.0)).state
    extra = tuple(make_problem(i) for i in range(3, 10))
    state = reduce(state, ProblemsSupplied(problems=extra)).state
    assert len(state.problems) == 8
    assert not state.top_up_pending


def test_empty_top_up_clears_pending_without_crashing():
    state = started(question_count=30, loaded=3)
    state = reduce(state, AnswerSubmitted(answer="7/8", now=1.0)).state
    assert state.top_up_pending
    state = reduce(state, ProblemsSupplied(problems=())).state
    assert not state.top_up_pending
    assert len(state.problems) == 3
    assert state.active


def test_running_out_of_loaded_problems_completes():
    state = started(question_count=30, loaded=2)
    state = reduce(state, AnswerSubmitted(answer="7/8", now=1.0)).state
    transition = reduce(state, AnswerSubmitted(answer="7/8", now=2.0))
    assert transition.state.phase == SessionPhase.COMPLETED
    assert len(of_type(transition.effects, Finalize)) == 1
    assert not of_type(transition.effects, RequestTopUp)


def test_last_answer_and_timer_expiry_finalize_once():
    for order in ("answer_first", "tick_first"):
        state = started(question_count=1, loaded=1, duration_seconds=1)
        events = [AnswerSubmitted(answer="7/8", now=1.0), Tick(now=1.0)]
        if order == "tick_first":
            events.reverse()
        emitted = []
        for event in events:
            transition = reduce(state, event)
            state = transition.state
            emitted.extend(of_type(transition.effects, Finalize))
        assert len(emitted) == 1, order
        assert state.finalized


def test_penalty_results():
    state = started(question_count=3, loaded=3, now=100.0)
    for now, answer in ((110.0, "7/8"), (120.0, "1/2"), (130.4, "5/8")):
        transition = reduce(state, AnswerSubmitted(answer=answer, now=now))
        state = transition.state
    results = of_type(transition.effects, Finalize)[0].results
    assert results == state.results
    assert results.correct_count == 1
    assert results.answered_count == 3
    assert results.score == 0
    assert results.total_questions == 3
    assert results.time_spent_seconds == 30
    assert round(results.accuracy_percent, 2) == 33.33


def test_server_verdict_overrides_local_verdict():
    state = started(scoring_system=ScoringSystem.STANDARD)
    state = reduce(state, AnswerSubmitted(answer="0.875", now=1.0)).state
    assert state.verdicts == {0: False}
    state = reduce(state, AnswerJudged(index=0, is_correct=True)).state
    assert state.correct_count == 1


def test_timeout_with_nothing_answered_has_zero_accuracy():
    state = started(duration_seconds=1)
    results = reduce(state, Tick(now=1.0)).state.results
    assert results.answered_count == 0
    assert results.accuracy_percent == 0.0
    assert results.score == 0


def test_hints_count_without_advancing():
    state = started()
    state = reduce(state, HintRequested()).state
    state = reduce(state, HintRequested()).state
    assert state.hints_used == {0: 2}
    assert state.current_index == 0
    transition = reduce(state, AnswerSubmitted(answer="7/8", now=5.0))
    assert of_type(transition.effects, SubmitAnswer)[0].hints_used == 2


def test_cancel_discards_late_top_up():
    state = started(question_count=30, loaded=3)
    state = reduce(state, AnswerSubmitted(answer="7/8", now=1.0)).state
    transition = reduce(state, CancelRequested())
    state = transition.state
    assert state.phase == SessionPhase.CANCELLED
    assert state.results is None
    assert of_type(transition.effects, SessionClosed)[0].reason == "cancelled"

    late = reduce(state, ProblemsSupplied(problems=(make_problem(10),)))
    assert late.state is state
    assert len(state.problems) == 3


def test_completed_session_ignores_further_events():
    state = started(question_count=1, loaded=1)
    state = reduce(state, AnswerSubmitted(answer="7/8", now=1.0)).state
    for event in (AnswerSubmitted(answer="x", now=2.0), HintRequested(), CancelRequested(), AnswerJudged(index=0, is_correct=False)):
        assert reduce(state, event).state is state
