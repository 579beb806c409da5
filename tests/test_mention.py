"""Tests for @mention extraction and formatting."""

from types import SimpleNamespace

from botbridge.forwarding.mention import (
    MentionExtractor,
    MentionSource,
    MentionTarget,
    extract_mention_targets,
    extract_message_body,
    format_mention_for_card,
    name_pattern,
)
from botbridge.forwarding.registry import IdentityRegistry


class TestNameScan:

    def test_plain_at_name(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("@Reviewer please check this", "manager") == {"reviewer"}

    def test_case_insensitive(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("hey @reviewer, look", "manager") == {"reviewer"}
        assert extractor.extract("hey @REVIEWER", "manager") == {"reviewer"}

    def test_no_trailing_boundary_does_not_match(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("@ReviewerExtra please check", "manager") == set()
        assert extractor.extract("@Reviewer2 please check", "manager") == set()

    def test_punctuation_is_a_boundary(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("thanks @Reviewer!", "manager") == {"reviewer"}
        assert extractor.extract("(@Reviewer)", "manager") == {"reviewer"}

    def test_shorter_name_does_not_match_inside_longer(self):
        reg = IdentityRegistry()
        reg.register("sender", "ou_s", [], display_name="Sender")
        reg.register("review", "ou_1", [], display_name="Review")
        reg.register("reviewer", "ou_2", [], display_name="Reviewer")
        extractor = MentionExtractor(reg)

        assert extractor.extract("@Reviewer go", "sender") == {"reviewer"}
        assert extractor.extract("@Review go", "sender") == {"review"}

    def test_sender_own_name_excluded(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("@Manager here, summary follows", "manager") == set()

    def test_name_with_regex_characters(self):
        reg = IdentityRegistry()
        reg.register("a", "ou_a", [], display_name="A")
        reg.register("cpp", "ou_c", [], display_name="C++ Bot")
        extractor = MentionExtractor(reg)
        assert extractor.extract("ask @C++ Bot about it", "a") == {"cpp"}

    def test_cjk_display_name(self):
        reg = IdentityRegistry()
        reg.register("a", "ou_a", [], display_name="拓思员")
        reg.register("b", "ou_b", [], display_name="落地员")
        extractor = MentionExtractor(reg)
        assert extractor.extract("@落地员 请评估一下", "a") == {"b"}

    def test_name_candidates_are_tagged(self, registry):
        extractor = MentionExtractor(registry)
        candidates = extractor.scan_names("@Reviewer hi", "manager")
        assert len(candidates) == 1
        assert candidates[0].source is MentionSource.NAME
        assert candidates[0].source == "name"
        assert str(MentionSource.MARKUP) == "markup"
        assert candidates[0].account_id == "reviewer"
        assert candidates[0].identifier == "ou_r"
        assert candidates[0].token == "@Reviewer"

    def test_disabled_account_not_targeted(self):
        reg = IdentityRegistry()
        reg.register("a", "ou_a", [], display_name="Alpha")
        reg.register("b", "ou_b", [], display_name="Beta", enabled=False)
        extractor = MentionExtractor(reg)
        assert extractor.extract("@Beta and <at id=ou_b></at>", "a") == set()


class TestMarkupScan:

    def test_card_markup(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("<at id=ou_r></at> please review", "manager") == {"reviewer"}

    def test_quoted_user_id_markup(self, registry):
        extractor = MentionExtractor(registry)
        text = '<at user_id="ou_r">someone</at> please review'
        assert extractor.extract(text, "manager") == {"reviewer"}

    def test_alternate_identifier_resolves(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("<at user_id='u_r'>x</at>", "manager") == {"reviewer"}

    def test_json_like_fragment(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract('{"user_id": "ou_r"}', "manager") == {"reviewer"}

    def test_identifier_match_is_case_sensitive(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("<at id=OU_R></at>", "manager") == set()

    def test_unregistered_identifier_discarded(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("<at id=ou_human></at> hello", "manager") == set()

    def test_self_markup_excluded(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("<at id=ou_m></at> note to self", "manager") == set()

    def test_collects_across_patterns(self, registry):
        candidates = MentionExtractor.scan_markup(
            '<at id=ou_a></at> <at user_id="ou_b">B</at> {"id": "ou_c"}'
        )
        ids = [c.identifier for c in candidates]
        assert ids == ["ou_a", "ou_b", "ou_c"]
        assert all(c.source is MentionSource.MARKUP for c in candidates)


class TestPipeline:

    def test_union_and_dedup(self):
        reg = IdentityRegistry()
        reg.register("a", "ou_a", [], display_name="Alpha")
        reg.register("b", "ou_b", [], display_name="Beta")
        reg.register("c", "ou_c", [], display_name="Gamma")
        extractor = MentionExtractor(reg)

        text = "@Beta and <at id=ou_b></at> and <at id=ou_c></at>"
        assert extractor.extract(text, "a") == {"b", "c"}

    def test_name_stage_takes_precedence(self, registry):
        extractor = MentionExtractor(registry)
        targets = extractor.resolve("<at id=u_r></at> @Reviewer", "manager")
        assert targets == {
            "reviewer": MentionTarget(open_id="ou_r", name="Reviewer", key="@Reviewer")
        }

    def test_markup_target_uses_display_name(self, registry):
        extractor = MentionExtractor(registry)
        targets = extractor.resolve("<at id=on_r></at> hi", "manager")
        assert targets["reviewer"].open_id == "on_r"
        assert targets["reviewer"].name == "Reviewer"
        assert targets["reviewer"].key == "<at id=on_r>"

    def test_name_hit_without_identifiers_still_resolves(self):
        reg = IdentityRegistry()
        reg.register("a", "ou_a", [], display_name="Alpha")
        reg.register("b", "", [], display_name="Beta")  # identity probe failed
        extractor = MentionExtractor(reg)
        targets = extractor.resolve("@Beta ping", "a")
        assert list(targets) == ["b"]
        assert targets["b"].open_id == "b"

    def test_empty_text(self, registry):
        extractor = MentionExtractor(registry)
        assert extractor.extract("", "manager") == set()


class TestPlatformMentions:

    def test_targets_from_dict_entries(self):
        mentions = [
            {"key": "@_user_1", "name": "Manager", "id": {"user_id": "u_m"}},
            {"key": "@_user_2", "name": "Reviewer", "id": {"open_id": "ou_r", "user_id": "u_r"}},
            {"key": "@_user_3", "name": "Ghost", "id": {}},
        ]
        assert extract_mention_targets(mentions) == [
            MentionTarget(open_id="u_m", name="Manager", key="@_user_1"),
            MentionTarget(open_id="ou_r", name="Reviewer", key="@_user_2"),
        ]

    def test_targets_from_sdk_objects(self):
        mention = SimpleNamespace(
            key="@_user_1",
            name="Reviewer",
            id=SimpleNamespace(open_id="ou_r", user_id=None, union_id=None),
        )
        assert extract_mention_targets([mention]) == [
            MentionTarget(open_id="ou_r", name="Reviewer", key="@_user_1")
        ]
        assert extract_mention_targets(None) == []

    def test_extract_message_body(self):
        text = "@_user_1  please   review @_user_2"
        assert extract_message_body(text, ["@_user_1", "@_user_2"]) == "please review"


class TestFormatting:

    def test_card_mention(self):
        target = MentionTarget(open_id="ou_r", name="Reviewer", key="@Reviewer")
        assert format_mention_for_card(target) == "<at id=ou_r></at>"

    def test_card_mention_round_trips_through_markup_scan(self, registry):
        extractor = MentionExtractor(registry)
        markup = format_mention_for_card(MentionTarget(open_id="u_r", name="", key=""))
        assert extractor.extract(f"{markup} please review", "manager") == {"reviewer"}

    def test_name_pattern_is_whole_word(self):
        pattern = name_pattern("Review")
        assert pattern.search("@review this")
        assert not pattern.search("@Reviewer this")
