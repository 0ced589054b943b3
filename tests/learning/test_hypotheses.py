"""Tests for hypothesis generation guards and the testing state machine."""

from datetime import timedelta

import pytest

from cli.config_models import LearningConfig
from learning.hypotheses import HypothesisEngine, find_common_context
from learning.interaction_log import InteractionLog
from learning.models import Interaction, new_id
from learning.notifications import NotificationQueue
from learning.patterns import PatternStore
from observability import metrics
from shared_types import HypothesisStatus, NotificationType, SuggestionType

from conftest import BASE_TIME, make_context


def _override(suggestion_type="gap_fill", ago=timedelta(0), **context) -> Interaction:
    return Interaction(
        id=new_id(),
        timestamp=BASE_TIME - ago,
        suggestion_type=suggestion_type,
        suggestion_text="suggestion",
        user_response="rejected",
        context=make_context(**context),
    )


@pytest.fixture
def parts():
    config = LearningConfig()
    log = InteractionLog()
    notifications = NotificationQueue()
    patterns = PatternStore(config, notifications)
    engine = HypothesisEngine(log, patterns, notifications, config)
    return {"log": log, "notifications": notifications, "patterns": patterns, "engine": engine}


def _feed(parts, interactions):
    """Append and consider each interaction; returns what the last one generated."""
    result = None
    for i in interactions:
        parts["log"].append(i)
        result = parts["engine"].consider(i, i.timestamp)
    return result


class TestFindCommonContext:
    def test_keeps_values_at_ratio(self):
        items = [
            _override(energy_indicator="post_focus_dip"),
            _override(energy_indicator="post_focus_dip"),
            _override(energy_indicator="post_focus_dip", time_of_day="morning"),
        ]
        common = find_common_context(items)
        # afternoon is 2/3, under 0.7
        assert common.to_dict() == {
            "day_type": "weekday",
            "energy_indicator": "post_focus_dip",
        }

    def test_below_ratio_dropped(self):
        items = [
            _override(),
            _override(day_type="weekend"),
            _override(energy_indicator="low"),
        ]
        # 2/3 < 0.7 for day_type and energy
        assert find_common_context(items).to_dict() == {"time_of_day": "afternoon"}

    def test_none_values_not_counted(self):
        items = [_override(energy_indicator=None) for _ in range(3)]
        assert "energy_indicator" not in find_common_context(items)

    def test_empty(self):
        assert len(find_common_context([])) == 0


class TestGeneration:
    def test_below_threshold_generates_nothing(self, parts):
        assert _feed(parts, [_override(), _override()]) is None
        assert parts["engine"].active() == []

    def test_third_similar_override_generates(self, parts):
        h = _feed(parts, [_override(), _override(), _override()])
        assert h is not None
        assert h.status == HypothesisStatus.TESTING
        assert len(h.trigger_interaction_ids) == 3
        assert h.trigger_condition.suggestion_type == SuggestionType.GAP_FILL
        assert h.confidence_required == 2
        assert h.observation.startswith("User rejected gap_fill suggestions 3x")
        assert metrics.get("hypotheses_created") == 1

    def test_accepted_interactions_ignored(self, parts):
        accepted = Interaction(
            id=new_id(), timestamp=BASE_TIME, suggestion_type="gap_fill",
            suggestion_text="", user_response="accepted", context=make_context(),
        )
        assert parts["engine"].consider(accepted, BASE_TIME) is None

    def test_dissimilar_overrides_do_not_cluster(self, parts):
        h = _feed(parts, [
            _override(time_of_day="morning", current_load="light"),
            _override(time_of_day="night", current_load="heavy"),
            _override(),
        ])
        assert h is None

    def test_duplicate_suppressed(self, parts):
        _feed(parts, [_override(), _override(), _override()])
        assert _feed(parts, [_override()]) is None
        assert len(parts["engine"].active()) == 1

    def test_active_cap(self, parts):
        kinds = [
            "gap_fill", "buffer_add", "time_estimate", "priority_order",
            "notification_hold", "morning_routine",
        ]
        for kind in kinds:
            _feed(parts, [_override(kind), _override(kind), _override(kind)])
        active = parts["engine"].active()
        assert len(active) == 5
        assert all(h.trigger_condition.suggestion_type != "morning_routine" for h in active)

    def test_resolved_hypothesis_frees_slot(self, parts):
        first = _feed(parts, [_override(), _override(), _override()])
        parts["engine"].record_test(first.id, False, BASE_TIME)
        parts["engine"].record_test(first.id, False, BASE_TIME)
        assert first.status == HypothesisStatus.REJECTED
        second = _feed(parts, [_override()])
        assert second is not None
        assert second.id != first.id

    def test_old_overrides_outside_window(self, parts):
        h = _feed(parts, [
            _override(ago=timedelta(days=20)),
            _override(ago=timedelta(days=15)),
            _override(),
        ])
        assert h is None


class TestRecordTest:
    def _hypothesis(self, parts):
        return _feed(parts, [_override(), _override(), _override()])

    def test_confirm_promotes(self, parts):
        h = self._hypothesis(parts)
        parts["engine"].record_test(h.id, True, BASE_TIME)
        assert h.status == HypothesisStatus.TESTING
        parts["engine"].record_test(h.id, True, BASE_TIME)
        assert h.status == HypothesisStatus.CONFIRMED
        assert h.resolved_at == BASE_TIME
        pattern = parts["patterns"].get(h.resulting_pattern_id)
        assert pattern is not None
        assert pattern.source_hypothesis_id == h.id
        learned = parts["notifications"].pending()
        assert learned[0].type == NotificationType.LEARNED
        assert learned[0].message == f"Learned: {pattern.description}"

    def test_reject(self, parts):
        h = self._hypothesis(parts)
        parts["engine"].record_test(h.id, False, BASE_TIME)
        parts["engine"].record_test(h.id, False, BASE_TIME)
        assert h.status == HypothesisStatus.REJECTED
        assert len(parts["patterns"]) == 0
        assert metrics.get("hypotheses_rejected") == 1

    def test_stale_after_max_tests(self, parts):
        parts["engine"].config = LearningConfig(confirmation_required=10, max_tests_before_stale=4)
        h = self._hypothesis(parts)
        for accepted in (True, False, True, False):
            parts["engine"].record_test(h.id, accepted, BASE_TIME)
        assert h.status == HypothesisStatus.STALE
        assert h.tests_run == 4

    def test_confirmation_on_last_test_is_not_stale(self, parts):
        parts["engine"].config = LearningConfig(confirmation_required=2, max_tests_before_stale=3)
        h = self._hypothesis(parts)
        for accepted in (True, False, True):
            parts["engine"].record_test(h.id, accepted, BASE_TIME)
        assert h.status == HypothesisStatus.CONFIRMED

    def test_terminal_state_ignores_tests(self, parts):
        h = self._hypothesis(parts)
        parts["engine"].record_test(h.id, False, BASE_TIME)
        parts["engine"].record_test(h.id, False, BASE_TIME)
        assert parts["engine"].record_test(h.id, True, BASE_TIME) is None
        assert h.tests_run == 2
        assert h.status == HypothesisStatus.REJECTED

    def test_unknown_id(self, parts):
        assert parts["engine"].record_test("missing", True, BASE_TIME) is None

    def test_no_learned_notification_when_disabled(self, parts):
        parts["engine"].config = LearningConfig(notify_on_new_pattern=False)
        h = self._hypothesis(parts)
        parts["engine"].record_test(h.id, True, BASE_TIME)
        parts["engine"].record_test(h.id, True, BASE_TIME)
        assert h.status == HypothesisStatus.CONFIRMED
        assert parts["notifications"].pending() == []


class TestFindActiveFor:
    def test_matches_type_and_context(self, parts):
        h = _feed(parts, [_override(), _override(), _override()])
        engine = parts["engine"]
        assert engine.find_active_for(SuggestionType.GAP_FILL) is h
        assert engine.find_active_for(SuggestionType.GAP_FILL, make_context()) is h
        assert engine.find_active_for(SuggestionType.BUFFER_ADD) is None
        assert engine.find_active_for(SuggestionType.GAP_FILL, make_context(time_of_day="night")) is None
