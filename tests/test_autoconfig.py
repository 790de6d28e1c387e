"""Tests for flowrag.retrieval.autoconfig — corpus-driven retrieval settings."""

from __future__ import annotations

from flowrag.config import AutoConfigConfig
from flowrag.retrieval import (
    AutoConfigurator,
    RetrievalSettings,
    auto_configure,
    profile_corpus,
    recommend,
)

from tests.helpers import make_vectorized

DEFAULTS = RetrievalSettings(top_k=5, similarity_threshold=0.3)


def _code_corpus(chunks: int = 12):
    return [
        make_vectorized("main.py", [[1.0, 0.0]] * (chunks // 2)),
        make_vectorized("util.py", [[0.0, 1.0]] * (chunks - chunks // 2)),
    ]


def _prose_corpus(chunks: int = 12):
    return [
        make_vectorized("guide.md", [[1.0, 0.0]] * (chunks // 2)),
        make_vectorized("notes.txt", [[0.0, 1.0]] * (chunks - chunks // 2)),
    ]


class TestProfile:
    def test_counts_code_files(self):
        corpus = [*_code_corpus(), make_vectorized("README.md", [[1.0, 1.0]])]
        profile = profile_corpus(corpus)
        assert profile.file_count == 3
        assert profile.code_files == 2
        assert profile.chunk_count == 13
        assert profile.code_ratio == 2 / 3

    def test_parser_tag_overrides_extension(self):
        corpus = [make_vectorized("script", [[1.0]], parser="python")]
        assert profile_corpus(corpus).code_files == 1

    def test_fingerprint_tracks_content(self):
        code = profile_corpus(_code_corpus()).fingerprint
        assert profile_corpus(_code_corpus()).fingerprint == code
        assert profile_corpus(_prose_corpus()).fingerprint != code

    def test_empty_corpus(self):
        profile = profile_corpus([])
        assert profile.file_count == 0
        assert profile.code_ratio == 0.0


class TestRecommend:
    def test_code_gets_fewer_results_lower_threshold(self):
        settings = recommend(profile_corpus(_code_corpus()), AutoConfigConfig())
        assert settings == RetrievalSettings(3, 0.2)

    def test_prose_gets_more_results_higher_threshold(self):
        settings = recommend(profile_corpus(_prose_corpus()), AutoConfigConfig())
        assert settings == RetrievalSettings(8, 0.4)

    def test_small_corpus_gets_floor_threshold(self):
        settings = recommend(profile_corpus(_prose_corpus(chunks=4)), AutoConfigConfig())
        assert settings == RetrievalSettings(8, 0.1)

    def test_policy_is_configurable(self):
        policy = AutoConfigConfig(code_top_k=1, code_threshold=0.05)
        assert recommend(profile_corpus(_code_corpus()), policy) == RetrievalSettings(1, 0.05)


class TestAutoConfigure:
    def test_defaults_are_replaced(self):
        profile = profile_corpus(_code_corpus())
        assert auto_configure(profile, DEFAULTS, DEFAULTS, AutoConfigConfig()) == RetrievalSettings(
            3, 0.2
        )

    def test_user_override_is_kept(self):
        profile = profile_corpus(_code_corpus())
        current = RetrievalSettings(7, 0.3)
        assert auto_configure(profile, current, DEFAULTS, AutoConfigConfig()) is None

    def test_previously_applied_values_are_not_an_override(self):
        profile = profile_corpus(_prose_corpus())
        last = RetrievalSettings(3, 0.2)
        settings = auto_configure(profile, last, DEFAULTS, AutoConfigConfig(), last)
        assert settings == RetrievalSettings(8, 0.4)


class TestAutoConfigurator:
    def test_applies_once_per_corpus(self):
        configurator = AutoConfigurator(AutoConfigConfig(), DEFAULTS)
        corpus = _code_corpus()
        first = configurator.apply(corpus, DEFAULTS)
        assert first == RetrievalSettings(3, 0.2)
        assert configurator.last_applied == first
        # unchanged corpus keeps the applied settings
        assert configurator.apply(corpus, DEFAULTS) == first
        assert configurator.apply(corpus, first) == first

    def test_reconfigures_when_corpus_changes(self):
        configurator = AutoConfigurator(AutoConfigConfig(), DEFAULTS)
        applied = configurator.apply(_code_corpus(), DEFAULTS)
        assert configurator.apply(_prose_corpus(), applied) == RetrievalSettings(8, 0.4)

    def test_user_override_survives_corpus_change(self):
        configurator = AutoConfigurator(AutoConfigConfig(), DEFAULTS)
        configurator.apply(_code_corpus(), DEFAULTS)
        user = RetrievalSettings(10, 0.5)
        assert configurator.apply(_prose_corpus(), user) == user
        assert configurator.apply(_prose_corpus(), user) == user
