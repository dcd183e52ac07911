"""
Property tests for the windowed sequence sampler.
"""

from hypothesis import given, settings, strategies as st
import numpy as np

from aqforecast.data.sampler import WindowedSequenceSampler


@st.composite
def sampler_settings(draw):
    lookback = draw(st.integers(min_value=1, max_value=20))
    delay = draw(st.integers(min_value=0, max_value=5))
    n_rows = draw(st.integers(min_value=lookback + delay + 2, max_value=120))
    batch_size = draw(st.integers(min_value=1, max_value=40))
    step = draw(st.integers(min_value=1, max_value=4))
    return n_rows, lookback, delay, batch_size, step


@given(sampler_settings())
@settings(max_examples=50, deadline=None)
def test_epoch_visits_every_row_once(params):
    n_rows, lookback, delay, batch_size, step = params
    data = np.arange(n_rows * 2, dtype=float).reshape(n_rows, 2)
    sampler = WindowedSequenceSampler(
        data, lookback=lookback, delay=delay, step=step, batch_size=batch_size
    )

    rows = np.concatenate([sampler.next_rows() for _ in range(sampler.steps_per_epoch)])
    first_pass = rows[: sampler.usable_rows]
    expected = np.arange(sampler.first_row, sampler.max_index + 1)
    np.testing.assert_array_equal(np.sort(first_pass), expected)


@given(sampler_settings())
@settings(max_examples=50, deadline=None)
def test_batches_are_full_and_causal(params):
    n_rows, lookback, delay, batch_size, step = params
    data = np.arange(n_rows, dtype=float).reshape(n_rows, 1)
    sampler = WindowedSequenceSampler(
        data, lookback=lookback, delay=delay, step=step, batch_size=batch_size
    )
    samples, targets = sampler.next_batch()

    assert samples.shape == (batch_size, sampler.window_length, 1)
    assert targets.shape == (batch_size,)
    # Every window ends strictly before its target
    assert np.all(samples[:, -1, 0] < targets)


@given(sampler_settings(), st.integers(min_value=0, max_value=2**16))
@settings(max_examples=30, deadline=None)
def test_shuffled_rows_stay_in_range(params, seed):
    n_rows, lookback, delay, batch_size, step = params
    data = np.zeros((n_rows, 3))
    sampler = WindowedSequenceSampler(
        data, lookback=lookback, delay=delay, step=step, batch_size=batch_size,
        shuffle=True, rng=np.random.default_rng(seed),
    )
    rows = sampler.next_rows()
    assert rows.min() >= sampler.first_row
    assert rows.max() <= sampler.max_index
