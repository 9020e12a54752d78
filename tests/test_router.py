import pytest

from hatloop.errors import AmbiguousRoutingError
from hatloop.hats import HatDefinition
from hatloop.router import GlobMatcher, is_match


def hats(**triggers: list[str]) -> dict[str, HatDefinition]:
    return {hat_id: HatDefinition(id=hat_id, triggers=tuple(t)) for hat_id, t in triggers.items()}


# ---------------------------------------------------------------------------
# is_match
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "pattern, topic, expected",
    [
        ("build.done", "build.done", True),
        ("build.done", "build.started", False),
        ("build.*", "build.done", True),
        ("build.*", "build", True),
        ("build.*", "build.x.y", True),
        ("build.*", "buildx.done", False),
        ("*.done", "build.done", True),
        ("*.done", "x.done", True),
        ("*.done", "done", False),
        ("*.done", "build.undone", False),
        ("*", "anything", True),
        ("*.*.done", "a.b.done", False),
        ("*.*.done", "*.*.done", True),
        ("bu*ld", "build", False),
    ],
)
def test_is_match(pattern, topic, expected):
    assert is_match(pattern, topic) is expected


# ---------------------------------------------------------------------------
# GlobMatcher tiers
# ---------------------------------------------------------------------------

def test_exact_tier_wins_over_wildcards():
    matcher = GlobMatcher(hats(A=["x.*"], B=["x.done"], C=["*"]))
    assert matcher.match("x.done") == ["B"]


def test_prefix_wildcard_when_no_exact():
    matcher = GlobMatcher(hats(A=["x.*"], B=["x.done"]))
    assert matcher.match("x.start") == ["A"]


def test_suffix_wildcard():
    matcher = GlobMatcher(hats(A=["x.*"], B=["x.done"], C=["*.done"]))
    assert matcher.match("y.done") == ["C"]


def test_multiple_wildcard_matches_all_returned():
    matcher = GlobMatcher(hats(A=["build.*"], B=["*.done"], C=["*"]))
    assert matcher.match("build.done") == ["A", "B"]


def test_ambiguous_exact_match_raises():
    matcher = GlobMatcher(hats(A=["build.done"], B=["build.done", "other"], C=["*"]))

    with pytest.raises(AmbiguousRoutingError) as exc:
        matcher.match("build.done")

    assert exc.value.topic == "build.done"
    assert exc.value.matched_hats == ["A", "B"]


def test_global_wildcard_fallback_is_never_ambiguous():
    matcher = GlobMatcher(hats(A=["*"], B=["*"], C=["task.start"]))
    assert matcher.match("review.done") == ["A", "B"]


def test_no_match_returns_empty():
    matcher = GlobMatcher(hats(A=["build.*"], B=["task.start"]))
    assert matcher.match("deploy.done") == []


def test_hat_counted_once_per_tier():
    matcher = GlobMatcher(hats(A=["build.*", "*.done"]))
    assert matcher.match("build.done") == ["A"]


def test_unsupported_shape_is_literal():
    matcher = GlobMatcher(hats(A=["*.*.done"], B=["*"]))
    assert matcher.match("a.b.done") == ["B"]
    assert matcher.match("*.*.done") == ["A"]
