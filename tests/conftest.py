"""Shared test fixtures for hashlearn tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from hashlearn.models import Document

# Each category has distinctive vocabulary to make classification feasible
HOCKEY_DOCS = [
    "The goalie stopped every puck in the third period and the hockey team won.",
    "Penguins forward scored twice on the power play, hockey fans cheered the goalie.",
    "A slapshot from the blue line beat the goalie; the hockey playoffs continue.",
    "Coach praised the defense and the goalie after the overtime hockey win on ice.",
    "The rink was loud as the captain lifted the cup after a hockey season on ice.",
]

GRAPHICS_DOCS = [
    "Rendering the polygon mesh with shaders needs a faster graphics card.",
    "Convert the bitmap image to a vector format before rendering the graphics.",
    "The raytracer computes shading for every pixel of the rendered image.",
    "Texture mapping and polygon clipping are core graphics rendering steps.",
    "Which image viewer supports graphics formats like bitmap and vector files?",
]

POLITICS_DOCS = [
    "The senate debated the legislation on taxes before the election vote.",
    "Voters asked the senator about government spending and new legislation.",
    "The election campaign focused on taxes, government reform and voters.",
    "Congress passed legislation after the senate vote on government budgets.",
    "A senator proposed reform of election rules for voters and government.",
]


@pytest.fixture
def corpus() -> tuple[list[str], list[str]]:
    """Full synthetic corpus with documents and labels."""
    docs = HOCKEY_DOCS + GRAPHICS_DOCS + POLITICS_DOCS
    labels = (
        ["rec.sport.hockey"] * len(HOCKEY_DOCS)
        + ["comp.graphics"] * len(GRAPHICS_DOCS)
        + ["talk.politics"] * len(POLITICS_DOCS)
    )
    return docs, labels


@pytest.fixture
def documents(corpus) -> list[Document]:
    docs, labels = corpus
    return [Document(f"train/{label}/{i}", text) for i, (text, label) in enumerate(zip(docs, labels))]


@pytest.fixture
def small_pipeline_kwargs() -> dict:
    """Keep every token and use a small hash space for fast tests."""
    return {"num_features": 2 ** 12, "min_token_count": 1}


@pytest.fixture
def corpus_dir(tmp_path: Path, corpus) -> Path:
    """Write the corpus as ``<split>/<category>/<file>`` for train and test."""
    docs, labels = corpus
    for split in ("news-train", "news-test"):
        for i, (text, label) in enumerate(zip(docs, labels)):
            category = tmp_path / split / label
            category.mkdir(parents=True, exist_ok=True)
            (category / f"{i:05d}").write_text(text, encoding="utf-8")
    return tmp_path


@pytest.fixture
def hockey_docs() -> list[str]:
    return list(HOCKEY_DOCS)


@pytest.fixture
def graphics_docs() -> list[str]:
    return list(GRAPHICS_DOCS)
