from __future__ import annotations

import pytest

from tradeloop.indicators.alignment import AlignedIndicatorResult, AlignmentError, IndicatorAligner


def test_large_series_offset():
    values = [float(i) for i in range(121176)]
    aligned = IndicatorAligner.align(121201, values)

    assert aligned.offset == 25
    assert aligned.get(24) is None
    assert aligned.get(25) == values[0]
    assert aligned.get(121200) == values[-1]


@pytest.mark.parametrize("total, computed", [(10, 10), (10, 7), (10, 0), (1, 1), (30, 1)])
def test_get_matches_computed_values(total, computed):
    values = [i * 1.5 for i in range(computed)]
    aligned = IndicatorAligner.align(total, values)

    assert aligned.offset == total - computed
    for i in range(total):
        if i < aligned.offset:
            assert aligned.get(i) is None
            assert not aligned.has_value(i)
        else:
            assert aligned.get(i) == values[i - aligned.offset]
            assert aligned.has_value(i)


def test_more_values_than_inputs_is_an_error():
    with pytest.raises(AlignmentError, match="exceeds input length"):
        IndicatorAligner.align(5, [1.0] * 6)


def test_alignment_error_is_a_value_error():
    assert issubclass(AlignmentError, ValueError)


def test_out_of_range_index_raises():
    aligned = IndicatorAligner.align(3, [1.0, 2.0])

    with pytest.raises(IndexError):
        aligned.get(3)
    with pytest.raises(IndexError):
        aligned.get(-1)


def test_helpers():
    aligned = IndicatorAligner.align(6, [1.0, 2.0, 3.0, 4.0])

    assert aligned.latest == 4.0
    assert aligned.tail(2) == (3.0, 4.0)
    assert aligned.tail(0) == ()
    assert list(aligned.items()) == [(2, 1.0), (3, 2.0), (4, 3.0), (5, 4.0)]
    assert len(aligned) == 6


def test_empty_result():
    aligned = AlignedIndicatorResult(values=(), offset=4, total_length=4)

    assert aligned.latest is None
    assert aligned.get(3) is None
