"""End-to-end tests for LearningEngine: learning lifecycle, persistence, snapshots."""

import threading
import time

import pytest

from cli.config_models import LearningConfig, RetryConfig
from learning.engine import LearningEngine
from learning.repository import InMemoryRepository, SQLiteRepository
from observability import metrics
from shared_types import ActionType, HypothesisStatus, NotificationType, SuggestionType

from conftest import FakeClock, make_context

# Three similar afternoon contexts whose only shared dimension (at 70%) is time of day
CTX_MAIN = make_context()
CTX_WEEKEND = make_context(day_of_week=5, day_type="weekend")
CTX_LOW = make_context(energy_indicator="low")


class BrokenRepository(InMemoryRepository):
    def __init__(self):
        super().__init__()
        self.broken = True
        self.attempted = threading.Event()

    def bulk_put(self, collection, records):
        self.attempted.set()
        if self.broken:
            raise OSError("database is locked")
        super().bulk_put(collection, records)


def _reject(engine, clock, context, kind="gap_fill"):
    clock.advance(hours=1)
    engine.log_interaction(kind, "Fill the gap with email", "rejected", context)


def _scenario_a(engine, clock):
    for ctx in (CTX_WEEKEND, CTX_LOW, CTX_MAIN):
        _reject(engine, clock, ctx)
    return engine.get_active_hypotheses()


def _scenario_b(engine, clock, hypothesis_id):
    for _ in range(2):
        clock.advance(hours=1)
        engine.log_interaction(
            "gap_fill", "Fill the gap with email", "accepted", CTX_MAIN, hypothesis_id=hypothesis_id
        )


@pytest.fixture
def learned(engine, clock):
    """Engine that has completed scenarios A and B; returns (engine, pattern)."""
    (hypothesis,) = _scenario_a(engine, clock)
    _scenario_b(engine, clock, hypothesis.id)
    (pattern,) = engine.get_confirmed_patterns()
    return engine, pattern


class TestScenarios:
    def test_a_three_rejections_create_hypothesis(self, engine, clock):
        active = _scenario_a(engine, clock)
        assert len(active) == 1
        h = active[0]
        assert h.status == HypothesisStatus.TESTING
        assert h.trigger_condition.suggestion_type == SuggestionType.GAP_FILL
        assert h.trigger_condition.context_matchers.to_dict() == {"time_of_day": "afternoon"}
        assert h.hypothesis == "User prefers to protect small gaps rather than fill them"

    def test_b_two_acceptances_confirm(self, engine, clock):
        (h,) = _scenario_a(engine, clock)
        _scenario_b(engine, clock, h.id)

        assert engine.get_active_hypotheses() == []
        resolved = [x for x in engine.snapshot().hypotheses if x.id == h.id][0]
        assert resolved.status == HypothesisStatus.CONFIRMED

        patterns = engine.get_confirmed_patterns()
        assert len(patterns) == 1
        assert patterns[0].confidence == 0.7
        assert resolved.resulting_pattern_id == patterns[0].id

        learned = [n for n in engine.get_pending_notifications() if n.type == NotificationType.LEARNED]
        assert len(learned) == 1
        assert engine.get_user_learnings() == [
            "User prefers to protect small gaps rather than fill them"
        ]

    def test_c_application_boosts(self, learned):
        engine, pattern = learned
        actions = engine.get_pattern_modifications(make_context(energy_indicator=None))
        assert [a.type for a in actions] == [ActionType.SKIP_SUGGESTION]
        (after,) = engine.get_confirmed_patterns()
        assert after.application_count == 1
        assert after.confidence == pytest.approx(0.75)

    def test_d_repeated_overrides_decay(self, learned, clock):
        engine, pattern = learned
        engine.get_pattern_modifications(CTX_MAIN)
        for _ in range(5):
            _reject(engine, clock, CTX_MAIN)

        after = [p for p in engine.snapshot().patterns if p.id == pattern.id][0]
        assert after.confidence == pytest.approx(0.25)
        assert after.overrides_since_confirm == 5
        assert after.decay_warning_issued
        warnings = [
            n for n in engine.get_pending_notifications() if n.type == NotificationType.DECAY_WARNING
        ]
        assert len(warnings) == 1
        assert warnings[0].pattern_id == pattern.id

        # decayed below the trust threshold: kept for audit, not applied
        assert engine.get_confirmed_patterns() == []
        assert engine.get_stats()["decayed_patterns"] == 1

    def test_e_removed_pattern_no_longer_applies(self, learned):
        engine, pattern = learned
        assert engine.remove_pattern(pattern.id) is True
        assert engine.get_confirmed_patterns() == []
        assert engine.get_pattern_modifications(CTX_MAIN) == []
        assert engine.remove_pattern(pattern.id) is False


class TestDecisions:
    def test_should_skip_suggestion(self, learned):
        engine, _ = learned
        assert engine.should_skip_suggestion("gap_fill", CTX_MAIN) is True
        assert engine.should_skip_suggestion("buffer_add", CTX_MAIN) is False
        assert engine.should_skip_suggestion("gap_fill", make_context(time_of_day="morning")) is False

    @pytest.mark.parametrize("kind", ["buffer_add", "goal_nudge", "recovery_suggest"])
    def test_learned_rule_substitutes_rather_than_hides(self, engine, clock, kind):
        for ctx in (CTX_WEEKEND, CTX_LOW, CTX_MAIN):
            _reject(engine, clock, ctx, kind)
        (h,) = engine.get_active_hypotheses()
        for _ in range(2):
            engine.log_interaction(kind, "suggestion", "accepted", CTX_MAIN, hypothesis_id=h.id)

        (action,) = engine.get_pattern_modifications(CTX_MAIN, kind)
        assert action.type == ActionType.SUGGEST_ALTERNATIVE
        assert engine.should_skip_suggestion(kind, CTX_MAIN) is False

    def test_non_matching_apply_is_idempotent(self, learned):
        engine, pattern = learned
        morning = make_context(time_of_day="morning")
        assert engine.get_pattern_modifications(morning) == []
        assert engine.get_pattern_modifications(morning) == []
        (after,) = engine.get_confirmed_patterns()
        assert after.application_count == 0
        assert after.confidence == pattern.confidence

    def test_track_suggestion_tags_active_hypothesis(self, engine, clock):
        (h,) = _scenario_a(engine, clock)
        assert engine.is_testing_hypothesis("gap_fill", CTX_MAIN).id == h.id

        engine.track_suggestion("gap_fill", "Fill gap", "accepted", CTX_MAIN)
        engine.track_suggestion("gap_fill", "Fill gap", "accepted", CTX_MAIN)

        assert engine.is_testing_hypothesis("gap_fill") is None
        assert len(engine.get_confirmed_patterns()) == 1
        tagged = engine.get_recent_interactions(2)
        assert all(i.hypothesis_id == h.id for i in tagged)

    def test_track_suggestion_without_hypothesis(self, engine):
        engine.track_suggestion("buffer_add", "Add 10m buffer", "accepted", CTX_MAIN)
        (logged,) = engine.get_recent_interactions(1)
        assert logged.hypothesis_id is None

    def test_unknown_hypothesis_tag_is_ignored(self, engine):
        engine.log_interaction("gap_fill", "x", "accepted", CTX_MAIN, hypothesis_id="missing")
        assert len(engine.get_recent_interactions()) == 1

    def test_invalid_values_raise(self, engine):
        with pytest.raises(ValueError):
            engine.log_interaction("teleport", "x", "accepted", CTX_MAIN)
        with pytest.raises(ValueError):
            engine.log_interaction("gap_fill", "x", "shrugged", CTX_MAIN)
        assert engine.get_recent_interactions() == []


class TestNotifications:
    def test_auto_action(self, engine):
        n = engine.notify_auto_action("Moved standup prep to 9:30")
        assert n.type == NotificationType.AUTO_ACTION
        assert engine.get_pending_notifications()[0].message == "Moved standup prep to 9:30"

    def test_auto_action_disabled(self, repository, clock):
        engine = LearningEngine(LearningConfig(notify_on_auto_action=False), repository, clock=clock)
        assert engine.notify_auto_action("x") is None
        assert engine.get_pending_notifications() == []

    def test_dismiss_clear_prune(self, engine):
        a = engine.notify_auto_action("a")
        engine.notify_auto_action("b")
        assert engine.dismiss_notification(a.id) is True
        assert engine.dismiss_notification("missing") is False
        assert len(engine.get_pending_notifications()) == 1
        assert engine.prune_notifications() == 1
        assert engine.clear_notifications() == 1
        assert engine.get_pending_notifications() == []


class TestRetention:
    def test_cap_prunes_memory_and_repository(self, repository, clock):
        engine = LearningEngine(LearningConfig(max_interactions=3), repository, clock=clock)
        for _ in range(5):
            clock.advance(minutes=5)
            engine.log_interaction("buffer_add", "x", "accepted", CTX_MAIN)
        assert engine.get_stats()["interactions"] == 3
        assert repository.count("interactions") == 3


class TestSnapshots:
    def test_snapshot_is_isolated(self, learned):
        engine, pattern = learned
        snap = engine.snapshot()
        snap.patterns[0].confidence = 0.0
        snap.hypotheses[0].status = HypothesisStatus.STALE
        assert engine.get_confirmed_patterns()[0].confidence == 0.7
        assert engine.snapshot().hypotheses[0].status == HypothesisStatus.CONFIRMED

    def test_is_testing_hypothesis_returns_copy(self, engine, clock):
        _scenario_a(engine, clock)
        copy = engine.is_testing_hypothesis("gap_fill")
        copy.confirmations = 99
        assert engine.get_active_hypotheses()[0].confirmations == 0

    def test_concurrent_logging(self, engine):
        def worker():
            for _ in range(50):
                engine.log_interaction("buffer_add", "x", "accepted", CTX_MAIN)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert engine.get_stats()["interactions"] == 200


class TestPersistence:
    def test_every_mutation_is_flushed(self, learned, repository):
        engine, pattern = learned
        assert engine.pending_writes == 0
        assert repository.get("patterns", pattern.id)["confidence"] == 0.7
        assert repository.count("interactions") == 5
        assert repository.count("hypotheses") == 1
        assert repository.count("notifications") == 1

    def test_storage_failure_never_blocks_learning(self, clock):
        repo = BrokenRepository()
        engine = LearningEngine(
            repository=repo, clock=clock, retry_config=RetryConfig(max_attempts=2, min_wait=0, max_wait=0)
        )
        _scenario_a(engine, clock)

        assert len(engine.get_active_hypotheses()) == 1
        assert engine.pending_writes == 4
        assert metrics.get("persistence_failures") == 3
        assert engine.sync() is False

        repo.broken = False
        assert engine.sync() is True
        assert engine.pending_writes == 0
        assert repo.count("interactions") == 3
        assert repo.count("hypotheses") == 1

    def test_mutations_proceed_while_sync_retries(self, clock):
        repo = BrokenRepository()
        engine = LearningEngine(
            repository=repo, clock=clock, retry_config=RetryConfig(max_attempts=3, min_wait=1.0, max_wait=1.0)
        )
        engine.log_interaction("gap_fill", "Fill the gap with email", "rejected", CTX_MAIN)
        repo.attempted.clear()

        results = []
        syncing = threading.Thread(target=lambda: results.append(engine.sync()))
        syncing.start()
        assert repo.attempted.wait(timeout=5)

        started = time.monotonic()
        engine.log_interaction("gap_fill", "Fill the gap with email", "accepted", CTX_MAIN)
        assert engine.get_stats()["interactions"] == 2
        assert time.monotonic() - started < 0.5

        syncing.join()
        assert results == [False]
        assert engine.pending_writes == 2

    def test_load_round_trip(self, tmp_path):
        clock = FakeClock()
        repo = SQLiteRepository(tmp_path / "learning.db")
        first = LearningEngine(repository=repo, clock=clock)
        (h,) = _scenario_a(first, clock)
        _scenario_b(first, clock, h.id)
        dismissed = first.notify_auto_action("dismiss me")
        first.dismiss_notification(dismissed.id)

        second = LearningEngine(repository=SQLiteRepository(tmp_path / "learning.db"), clock=clock)
        counts = second.load()

        assert counts == {"interactions": 5, "hypotheses": 1, "patterns": 1, "notifications": 1}
        assert second.get_user_learnings() == first.get_user_learnings()
        assert [n.type for n in second.get_pending_notifications()] == [NotificationType.LEARNED]
        assert second.should_skip_suggestion("gap_fill", CTX_MAIN) is True

    def test_load_limits_interactions(self, repository, clock):
        engine = LearningEngine(repository=repository, clock=clock)
        for _ in range(6):
            clock.advance(minutes=1)
            engine.log_interaction("buffer_add", "x", "accepted", CTX_MAIN)
        newest = engine.get_recent_interactions(1)[0]

        reloaded = LearningEngine(LearningConfig(load_interaction_limit=4), repository, clock=clock)
        assert reloaded.load()["interactions"] == 4
        assert reloaded.get_recent_interactions(1)[0].id == newest.id

    def test_load_skips_corrupt_records(self, repository, clock):
        repository.put("patterns", {"id": "broken", "confirmed_at": "2024-03-06T14:00:00"})
        engine = LearningEngine(repository=repository, clock=clock)
        assert engine.load()["patterns"] == 0
