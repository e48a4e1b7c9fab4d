import sys
from pathlib import Path

import pytest

pytest.importorskip("hypothesis")

from hypothesis import given
from hypothesis import strategies as st

# Ensure project root is in sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import winning_chances as wc  # noqa: E402


_BUCKETS = st.integers(min_value=0, max_value=40).map(lambda n: n * wc.RATING_STEP)
_OUTCOMES = st.sampled_from([wc.GameResult.WIN, wc.GameResult.DRAW, wc.GameResult.LOSS])


@st.composite
def accumulators(draw):
    """An accumulator built the way the scanner builds one: game by game."""
    acc = wc.WDLAccumulator()
    for bucket, result in draw(st.lists(st.tuples(_BUCKETS, _OUTCOMES), max_size=30)):
        acc.record(bucket, result)
    return acc


@given(accumulators(), accumulators(), accumulators())
def test_merge_is_associative(a, b, c):
    assert a.merge(b).merge(c) == a.merge(b.merge(c))


@given(accumulators(), accumulators())
def test_merge_is_commutative(a, b):
    assert a.merge(b) == b.merge(a)


@given(accumulators())
def test_merge_with_empty_is_identity(a):
    assert a.merge(wc.WDLAccumulator()) == a
    assert wc.WDLAccumulator().merge(a) == a


@given(accumulators(), accumulators())
def test_merge_keeps_totals_aligned(a, b):
    m = a.merge(b)
    assert set(m.wins) == set(m.draws) == set(m.losses)
    for k in m.wins:
        assert m.wins[k].total == m.draws[k].total == m.losses[k].total
        assert m.wins[k].successes + m.draws[k].successes + m.losses[k].successes == m.wins[k].total
    assert m.games() == a.games() + b.games()
