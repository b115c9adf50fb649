from __future__ import annotations

import pytest

from chupgrade.core.errors import PlanLookupError
from chupgrade.core.plan import PlanBuilder, PlanEntry, Site, StageDefinition, splice

SITES = (Site("a.example"), Site("b.example"))
STAGES = (
    StageDefinition("S1", per_site=True),
    StageDefinition("S2", per_site=True),
    StageDefinition("S3", per_site=False),
)


def test_build_crosses_per_site_stages_with_every_site() -> None:
    plan = PlanBuilder().build(STAGES, SITES)

    a, b = SITES
    assert list(plan) == [
        PlanEntry(0, "S1", a),
        PlanEntry(1, "S1", b),
        PlanEntry(2, "S2", a),
        PlanEntry(3, "S2", b),
        PlanEntry(4, "S3", None),
    ]
    assert len(plan) == 5


def test_build_is_deterministic() -> None:
    builder = PlanBuilder()

    first = builder.build(STAGES, SITES)
    second = builder.build(list(STAGES), list(SITES))

    assert first == second
    assert first.fingerprint() == second.fingerprint()


def test_fingerprint_follows_site_order() -> None:
    builder = PlanBuilder()

    forward = builder.build(STAGES, SITES)
    reverse = builder.build(STAGES, tuple(reversed(SITES)))

    assert forward.fingerprint() != reverse.fingerprint()


def test_index_of_resolves_stage_and_site() -> None:
    plan = PlanBuilder().build(STAGES, SITES)

    assert plan.index_of("S2", Site("b.example")) == 3
    assert plan.index_of("S3") == 4


@pytest.mark.parametrize(
    ("stage", "site"),
    [
        ("S1", None),
        ("S3", Site("a.example")),
        ("S1", Site("c.example")),
        ("S9", None),
    ],
)
def test_index_of_rejects_pairs_outside_the_plan(stage: str, site: Site | None) -> None:
    plan = PlanBuilder().build(STAGES, SITES)

    with pytest.raises(PlanLookupError):
        plan.index_of(stage, site)


def test_splice_inserts_at_position_without_touching_input() -> None:
    extra = StageDefinition("X", per_site=True)

    spliced = splice(STAGES, extra, 2)

    assert [stage.name for stage in spliced] == ["S1", "S2", "X", "S3"]
    assert [stage.name for stage in STAGES] == ["S1", "S2", "S3"]


def test_splice_rejects_out_of_range_position() -> None:
    with pytest.raises(ValueError):
        splice(STAGES, StageDefinition("X", per_site=False), 7)


def test_build_rejects_duplicate_stage_names() -> None:
    with pytest.raises(ValueError, match="Duplicate stage names: S1"):
        PlanBuilder().build((*STAGES, StageDefinition("S1", per_site=False)), SITES)


def test_build_without_sites_keeps_singleton_stages() -> None:
    plan = PlanBuilder().build(STAGES, ())

    assert [entry.stage_name for entry in plan] == ["S3"]
