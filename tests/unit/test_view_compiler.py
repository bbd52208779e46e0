"""Unit tests for the rendered-view compiler."""

from entity_memory.core.enums import ConcernSeverity
from entity_memory.core.schemas import Profile, ProfileData
from entity_memory.memory.view_compiler import ELLIPSIS, SectionTitles, render, truncate


class TestTruncate:
    def test_short_text_unchanged(self):
        assert truncate("hello", 100) == "hello"

    def test_exactly_at_limit_unchanged(self):
        text = "x" * 100
        assert truncate(text, 100) == text

    def test_long_text_cut_with_ellipsis(self):
        result = truncate("y" * 150, 100)
        assert result == "y" * 100 + ELLIPSIS


class TestRender:
    def test_nothing_to_render(self):
        assert render(None, [], []) is None

    def test_empty_profile_counts_as_absent(self):
        profile = Profile(tenant_id="t1", version=2, data=ProfileData(medical_facts=[]))
        assert render(profile, [], []) is None

    def test_blank_snapshot_values_count_as_absent(self):
        profile = Profile(
            tenant_id="t1",
            version=1,
            data=ProfileData(baby_snapshot={"name": ""}, feeding_profile={"notes": None}),
        )
        assert render(profile, [], []) is None

    def test_fact_without_text_renders_other_keys(self):
        profile = Profile(
            tenant_id="t1",
            version=1,
            data=ProfileData(next_actions=[{"action": "Book 6-month checkup", "due": "May"}]),
        )
        text = render(profile, [], [])
        assert text == (
            "# Memory Profile\n\n"
            "## Next Actions\n"
            '- {"action":"Book 6-month checkup","due":"May"}\n'
        )

    def test_blank_fact_entries_skipped(self):
        profile = Profile(
            tenant_id="t1",
            version=1,
            data=ProfileData(next_actions=[{"fact": ""}, "Call GP"]),
        )
        text = render(profile, [], [])
        assert "- \n" not in text
        assert "- Call GP" in text

    def test_full_document(self, sample_profile, sample_concern, sample_episode):
        text = render(sample_profile, [sample_concern], [sample_episode])
        assert text == (
            "# Memory Profile\n"
            "\n"
            "## Medical Facts\n"
            "- Born at 36 weeks\n"
            "- Allergic to peanuts\n"
            "\n"
            "## Baby Snapshot\n"
            "- name: Mia\n"
            "- age_months: 4\n"
            "\n"
            "## Feeding Profile\n"
            "- method: bottle\n"
            "\n"
            "## Next Actions\n"
            "- Book 6-month checkup\n"
            "\n"
            "## Active Concerns\n"
            "- [!] Reflux after feeds (high, mentioned 3x, last seen: 2026-03-14)\n"
            "\n"
            "## Recent Episodes\n"
            "- [2026-03-15 whatsapp] Parent asked about night feeds\n"
        )

    def test_low_severity_has_no_alert_marker(self, sample_concern):
        concern = sample_concern.model_copy(update={"severity": ConcernSeverity.LOW})
        text = render(None, [concern], [])
        assert "- Reflux after feeds (low," in text
        assert "[!]" not in text

    def test_long_episode_truncated(self, sample_episode):
        episode = sample_episode.model_copy(update={"content": "z" * 250})
        text = render(None, [], [episode])
        line = next(ln for ln in text.splitlines() if ln.startswith("- [2026-03-15"))
        body = line.split("] ", 1)[1]
        assert body.endswith(ELLIPSIS)
        assert len(body) == 100 + len(ELLIPSIS)

    def test_truncate_chars_configurable(self, sample_episode):
        text = render(None, [], [sample_episode], truncate_chars=6)
        assert "] Parent..." in text

    def test_empty_sections_omitted(self, sample_episode):
        text = render(None, [], [sample_episode])
        assert "## Medical Facts" not in text
        assert "## Active Concerns" not in text
        assert "## Recent Episodes" in text

    def test_deterministic(self, sample_profile, sample_concern, sample_episode):
        args = (sample_profile, [sample_concern], [sample_episode])
        assert render(*args) == render(*args)

    def test_custom_titles(self, sample_episode):
        titles = SectionTitles(document="# Memoria", episodes="## Episodios")
        text = render(None, [], [sample_episode], titles=titles)
        assert text.startswith("# Memoria\n")
        assert "## Episodios" in text
