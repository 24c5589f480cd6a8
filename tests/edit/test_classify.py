"""Tests for classification of objects."""

import pytest

from cluster_mirror.config import ClassifierConfig
from cluster_mirror.edit.classify import Classifier, OriginStore
from cluster_mirror.manifest import Classification, NamedResource

RESOURCE = NamedResource("Interface", "eda", "eth1")


@pytest.fixture
def classifier() -> Classifier:
    return Classifier(ClassifierConfig())


@pytest.mark.parametrize(
    ("api_version", "expected"),
    [
        ("interfaces.eda.nokia.com/v1alpha1", Classification.DECLARATIVE),
        ("core.eda.nokia.com/v1", Classification.RAW),
        ("artifacts.eda.nokia.com/v1", Classification.RAW),
        ("apps/v1", Classification.RAW),
        ("v1", Classification.RAW),
        (None, Classification.RAW),
    ],
)
def test_group_heuristic(
    classifier: Classifier, api_version: str | None, expected: Classification
) -> None:
    assert classifier.classify(RESOURCE, api_version) == expected


def test_explicit_origin_wins(classifier: Classifier) -> None:
    assert (
        classifier.classify(
            RESOURCE, "interfaces.eda.nokia.com/v1alpha1", Classification.RAW
        )
        == Classification.RAW
    )


def test_stored_origin(classifier: Classifier) -> None:
    """An origin recorded earlier is used when no explicit origin is given."""
    classifier.classify(RESOURCE, "apps/v1", Classification.DECLARATIVE)
    assert classifier.classify(RESOURCE, "apps/v1") == Classification.DECLARATIVE
    assert classifier.origins.get(RESOURCE) == Classification.DECLARATIVE

    other = NamedResource("Interface", "eda", "eth2")
    assert classifier.classify(other, "apps/v1") == Classification.RAW


def test_shared_origin_store() -> None:
    origins = OriginStore()
    origins.set(RESOURCE, Classification.DECLARATIVE)
    classifier = Classifier(origins=origins)
    assert classifier.classify(RESOURCE, "v1") == Classification.DECLARATIVE
    assert len(origins) == 1


def test_custom_suffix() -> None:
    classifier = Classifier(
        ClassifierConfig(declarative_group_suffix=".example.com", raw_groups=())
    )
    assert classifier.is_declarative_group("widgets.example.com")
    assert not classifier.is_declarative_group("interfaces.eda.nokia.com")
