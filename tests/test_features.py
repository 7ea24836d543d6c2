import pytest

from shiftreduce.features import (
    FEATURE_FACTORIES,
    CombinationFeatureFactory,
    build_feature_factory,
    register_feature_factory,
)
from shiftreduce.tagging import HistoryFeatureFactory, TagState, TagTransition, WordFeatureFactory


@register_feature_factory("test_constant")
class ConstantFeatureFactory:
    def __init__(self, value: str = "x"):
        self.value = value

    def featurize(self, state):
        return [f"CONST={self.value}"]


def _state() -> TagState:
    return TagState(("the", "big", "dog"), 1, (TagTransition("D"),))


def test_word_and_history_factories_are_registered() -> None:
    assert FEATURE_FACTORIES["word"] is WordFeatureFactory
    assert FEATURE_FACTORIES["history"] is HistoryFeatureFactory


def test_single_spec_builds_the_factory_itself() -> None:
    factory = build_feature_factory("word(2)")

    assert isinstance(factory, WordFeatureFactory)
    assert factory.window == 2


def test_combined_spec_concatenates_features_in_order() -> None:
    factory = build_feature_factory("test_constant(a); history(1)")

    assert isinstance(factory, CombinationFeatureFactory)
    assert factory.featurize(_state()) == ["CONST=a", "H1=D", "T-1W0=D|big"]


def test_word_features_look_around_the_next_word() -> None:
    features = WordFeatureFactory("1").featurize(_state())

    assert features == ["BIAS", "W0=big", "W0S3=big", "W0P1=b", "W-1=the", "W+1=dog"]


def test_history_features_pad_with_start_symbol() -> None:
    features = HistoryFeatureFactory("2").featurize(_state())

    assert features == ["H1=D", "H2=<s>|D", "T-1W0=D|big"]


@pytest.mark.parametrize("spec", ["", " ; ", "word(", "no_such_factory", "2word"])
def test_bad_specs_are_rejected(spec) -> None:
    with pytest.raises(ValueError):
        build_feature_factory(spec)


def test_duplicate_registration_is_rejected() -> None:
    with pytest.raises(ValueError):
        register_feature_factory("word")(ConstantFeatureFactory)
