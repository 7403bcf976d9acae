"""
Spectral (DCT-II) fractal dimension of a 2-D point sequence.

The orthonormal DCT-II of each centred coordinate series gives a power
spectrum P(k) = X_k^2 + Y_k^2, which does not depend on the orientation
of the axes. For a path whose coordinates scale with Hurst exponent H the
spectrum falls off as k^-(2H + 1), and the path has dimension
D = min(2, 1/H): a straight line gives D = 1, a random walk D = 2.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import matplotlib.pyplot as plt
from scipy.fft import dct
from scipy.stats import linregress

from .errors import InsufficientDataError

logger = logging.getLogger(__name__)

MIN_FRACTAL_SAMPLES = 16
MIN_LAGS = 3

# Frequencies whose power is below this fraction of the peak are numerical zeros
_POWER_FLOOR = 1e-20

Lags = Union[str, int]


@dataclass
class FractalResult:
    """Fractal dimension estimate and the log-log data it was fitted on."""
    dimension: float
    hurst: float
    slope: float
    n_samples: int
    n_lags: int
    log_freq: np.ndarray
    log_power: np.ndarray
    figure: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dimension": round(self.dimension, 4),
            "hurst": round(self.hurst, 4),
            "slope": round(self.slope, 4),
            "n_samples": self.n_samples,
            "n_lags": self.n_lags,
        }


def resolve_lags(n_samples: int, lags: Lags = "auto") -> int:
    """
    Number of DCT frequencies used in the fit.

    "auto" uses the lowest quarter of the spectrum.
    """
    if isinstance(lags, str):
        if lags.strip().lower() != "auto":
            try:
                lags = int(lags)
            except ValueError:
                raise ValueError(f"lags must be 'auto' or an integer, got {lags!r}")
        else:
            return min(n_samples - 1, max(MIN_LAGS, n_samples // 4))

    lags = int(lags)
    if not MIN_LAGS <= lags <= n_samples - 1:
        raise ValueError(f"lags must be in [{MIN_LAGS}, {n_samples - 1}], got {lags}")
    return lags


def dct_power(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    DCT-II power spectrum of a 2-D point sequence.

    Returns:
        Tuple of (frequencies 1..n-1, power)
    """
    centered = points - points.mean(axis=0)
    coeffs = dct(centered, type=2, norm='ortho', axis=0)
    power = np.sum(coeffs[1:] ** 2, axis=1)
    return np.arange(1, len(points)), power


def _check_points(points) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(f"Expected an Nx2 array of points, got shape {points.shape}")
    if not np.all(np.isfinite(points)):
        raise ValueError("Points contain NaN or infinite coordinates")
    if len(points) < MIN_FRACTAL_SAMPLES:
        raise InsufficientDataError(
            f"Fractal estimation needs at least {MIN_FRACTAL_SAMPLES} samples, got {len(points)}"
        )
    return points


def estimate_fractal_dimension(
    points,
    lags: Lags = "auto",
    plot: bool = False,
    title: Optional[str] = None
) -> FractalResult:
    """
    Estimate the fractal dimension of a point sequence.

    Args:
        points: Nx2 sequence of coordinates (meters), in time order
        lags: "auto" or the number of low frequencies to fit
        plot: Also draw the log-log diagnostic figure
        title: Figure title prefix

    Returns:
        FractalResult (figure set when plot=True)

    Raises:
        InsufficientDataError: too few samples or no usable spectral power
    """
    points = _check_points(points)
    n_lags = resolve_lags(len(points), lags)

    freq, power = dct_power(points)
    freq, power = freq[:n_lags], power[:n_lags]

    peak = power.max() if len(power) else 0.0
    usable = power > peak * _POWER_FLOOR if peak > 0 else np.zeros(len(power), dtype=bool)
    if usable.sum() < MIN_LAGS:
        raise InsufficientDataError(
            f"Only {int(usable.sum())} frequencies carry power (need {MIN_LAGS}); "
            f"points may be identical"
        )

    log_freq = np.log(freq[usable])
    log_power = np.log(power[usable])
    fit = linregress(log_freq, log_power)

    beta = -fit.slope
    hurst = float(np.clip((beta - 1.0) / 2.0, 0.0, 1.0))
    dimension = 2.0 if hurst <= 0.5 else 1.0 / hurst

    result = FractalResult(
        dimension=float(dimension),
        hurst=hurst,
        slope=float(fit.slope),
        n_samples=len(points),
        n_lags=int(usable.sum()),
        log_freq=log_freq,
        log_power=log_power
    )
    logger.info(f"Fractal dimension D={result.dimension:.3f} "
                f"(H={hurst:.3f}, slope={fit.slope:.3f}, {result.n_lags} lags, n={len(points)})")

    if plot:
        result.figure = plot_loglog(result, fit.intercept, title=title)
    return result


def plot_loglog(result: FractalResult, intercept: float, title: Optional[str] = None):
    """Log-log diagnostic: spectral power vs frequency with the fitted line."""
    fig, ax = plt.subplots(figsize=(6, 4.5))
    ax.scatter(result.log_freq, result.log_power, s=10, alpha=0.6, label="DCT-II power")
    ax.plot(
        result.log_freq,
        intercept + result.slope * result.log_freq,
        color="crimson",
        label=f"fit (slope = {result.slope:.2f})"
    )
    ax.set_xlabel("log(frequency)")
    ax.set_ylabel("log(power)")
    heading = f"D = {result.dimension:.3f}"
    ax.set_title(f"{title}: {heading}" if title else heading)
    ax.legend()
    fig.tight_layout()
    return fig


def fractal_plot(points, lags: Lags = "auto", title: Optional[str] = None) -> FractalResult:
    """Estimate the fractal dimension and draw the log-log diagnostic plot."""
    return estimate_fractal_dimension(points, lags=lags, plot=True, title=title)
