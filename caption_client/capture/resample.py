"""Linear-interpolation sample-rate conversion for capture blocks."""

import math

import numpy as np


def resample_linear(samples, input_rate: int, target_rate: int) -> np.ndarray:
    """Resample ``samples`` from ``input_rate`` to ``target_rate``.

    Output length is ``floor(len / (input_rate / target_rate))``. Output
    sample ``i`` interpolates between source indices ``floor(i * r)`` and the
    next one; past the last source sample the lower sample is used as is.
    """
    data = np.asarray(samples, dtype=np.float32)
    if input_rate == target_rate:
        return data
    ratio = input_rate / target_rate
    output_length = int(math.floor(len(data) / ratio))
    if output_length <= 0:
        return np.zeros(0, dtype=np.float32)

    positions = np.arange(output_length, dtype=np.float64) * ratio
    lower = np.floor(positions).astype(np.int64)
    fraction = positions - lower
    upper = lower + 1
    in_range = upper < len(data)

    output = data[lower].astype(np.float64)
    output[in_range] = (
        data[lower[in_range]] * (1.0 - fraction[in_range])
        + data[upper[in_range]] * fraction[in_range]
    )
    return output.astype(np.float32)


__all__ = ["resample_linear"]
