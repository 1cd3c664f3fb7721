"""
Tests for InteractionMemory: the capped interaction log, preference summary
and the conversation buffer.
"""

from dealscout.memory import InteractionMemory
from dealscout.models import Action, EntityType, FeatureSnapshot
from dealscout.store import InMemory


def fintech(tags=()):
    return FeatureSnapshot(industry="Fintech", seniority="Founder", region="Europe", tags=list(tags))


class TestInteractionLog:
    def test_record_prepends(self, memory):
        memory.record("per_1", EntityType.PERSON, Action.VIEW)
        memory.record("per_2", "person", "like")
        assert [r.entity_id for r in memory.records()] == ["per_2", "per_1"]
        assert memory.records()[0].action == Action.LIKE

    def test_capacity_evicts_oldest(self):
        memory = InteractionMemory(store=InMemory(), capacity=3)
        for i in range(5):
            memory.record(f"per_{i}", EntityType.PERSON, Action.VIEW)
        assert [r.entity_id for r in memory.records()] == ["per_4", "per_3", "per_2"]

    def test_records_are_persisted_and_reloaded(self):
        store = InMemory()
        first = InteractionMemory(store=store)
        first.record("per_1", EntityType.PERSON, Action.LIKE, fintech())
        first.record("com_1", EntityType.COMPANY, Action.DISLIKE)

        second = InteractionMemory(store=store)
        assert [r.entity_id for r in second.records()] == ["com_1", "per_1"]
        assert second.records()[1].features.industry == "Fintech"

    def test_latest_verdict_wins(self, memory):
        memory.record("per_1", EntityType.PERSON, Action.LIKE)
        memory.record("per_1", EntityType.PERSON, Action.VIEW)
        assert memory.is_liked("per_1")
        memory.record("per_1", EntityType.PERSON, Action.DISLIKE)
        assert memory.is_disliked("per_1")
        assert not memory.is_liked("per_1")
        assert memory.liked_entity_ids() == []

    def test_stats(self, memory):
        memory.record("a", EntityType.PERSON, Action.LIKE)
        memory.record("b", EntityType.PERSON, Action.LIKE)
        memory.record("c", EntityType.PERSON, Action.DISLIKE)
        memory.record("d", EntityType.PERSON, Action.VIEW)
        memory.add_turn("user", "hi")
        assert memory.stats() == {
            "interactions": 4,
            "likes": 2,
            "dislikes": 1,
            "views": 1,
            "conversation_turns": 1,
        }


class TestPreferenceSummary:
    def test_empty_log_gives_empty_summary(self, memory):
        assert memory.preference_summary() == ""

    def test_views_alone_are_not_preferences(self, memory):
        memory.record("per_1", EntityType.PERSON, Action.VIEW, fintech(["prior_exit"]))
        assert memory.preference_summary() == ""

    def test_prefers_and_avoids(self, memory):
        memory.record("per_1", EntityType.PERSON, Action.LIKE, fintech(["prior_exit"]))
        memory.record("per_2", EntityType.PERSON, Action.LIKE, fintech(["prior_exit"]))
        memory.record(
            "per_3",
            EntityType.PERSON,
            Action.DISLIKE,
            FeatureSnapshot(industry="Crypto", tags=["career_gap"]),
        )
        summary = memory.preference_summary()
        lines = summary.splitlines()
        assert lines[0].startswith("User actively prefers: ")
        assert "Fintech" in lines[0]
        assert "prior_exit" in lines[0]
        assert lines[1] == "User tends to avoid: Crypto, career_gap"

    def test_mixed_signals_are_not_decisive(self, memory):
        memory.record("a", EntityType.PERSON, Action.LIKE, FeatureSnapshot(industry="SaaS"))
        memory.record("b", EntityType.PERSON, Action.DISLIKE, FeatureSnapshot(industry="SaaS"))
        assert memory.preference_summary() == ""

    def test_summary_keeps_top_five(self, memory):
        tags = [f"tag_{i}" for i in range(8)]
        memory.record("a", EntityType.PERSON, Action.LIKE, FeatureSnapshot(tags=tags))
        preferred = memory.preference_summary().removeprefix("User actively prefers: ")
        assert len(preferred.split(", ")) == 5


class TestConversation:
    def test_turns_are_ordered_and_capped(self):
        memory = InteractionMemory(store=InMemory(), conversation_capacity=3)
        for i in range(5):
            memory.add_turn("user", f"q{i}")
        assert [t.content for t in memory.conversation_turns()] == ["q2", "q3", "q4"]

    def test_turns_separate_from_interaction_log(self, memory):
        memory.add_turn("user", "hello")
        assert memory.records() == []

    def test_turns_filtered_by_entity(self, memory):
        memory.add_turn("user", "about a", entity_id="a")
        memory.add_turn("user", "about b", entity_id="b")
        assert [t.content for t in memory.conversation_turns("a")] == ["about a"]

    def test_current_entity_tags_new_turns(self, memory):
        memory.set_current_entity("per_9")
        turn = memory.add_turn("assistant", "answer")
        assert turn.entity_id == "per_9"

    def test_recent_conversation_truncates_tool_turns(self, memory):
        memory.add_turn("user", "Who is this?")
        memory.add_turn("tool", "x" * 500, tool_name="get_person")
        memory.add_turn("assistant", "A founder.")
        text = memory.recent_conversation()
        lines = text.splitlines()
        assert lines[0] == "USER: Who is this?"
        assert lines[1] == "[Tool: get_person] " + "x" * 200 + "..."
        assert lines[2] == "ASSISTANT: A founder."

    def test_recent_conversation_limits_turns(self, memory):
        for i in range(8):
            memory.add_turn("user", f"q{i}")
        assert memory.recent_conversation(max_turns=2) == "USER: q6\nUSER: q7"

    def test_clear_conversation(self, memory):
        memory.set_current_entity("per_1")
        memory.add_turn("user", "hi")
        memory.clear_conversation()
        assert memory.conversation_turns() == []
        assert memory.current_entity_id is None
        assert memory.recent_conversation() == ""
