import logging
import numpy as np
import statsmodels.api as sm
from typing import Sequence, Tuple, Union

from ladderfuels.classes import Breakpoint
from ladderfuels.errors import ChangepointFitError

log = logging.getLogger(__name__)


def _broken_line_design(x, psi):
    # Continuous two-segment line with slope change at psi
    return np.column_stack([np.ones_like(x), x, np.clip(x - psi, 0, None)])


def _segmented_design(x, psi):
    # Muggeo (2003) linearization: slope change term U and breakpoint shift term V
    u = np.clip(x - psi, 0, None)
    v = -(x > psi).astype(np.float64)
    return np.column_stack([np.ones_like(x), x, u, v])


def _broken_line_rss(x, y, psi):
    return sm.OLS(y, _broken_line_design(x, psi)).fit().ssr


def initial_breakpoint(x:np.ndarray, y:np.ndarray) -> float:
    """Interior value of x that minimizes the residual sum of squares of a two-segment fit"""
    candidates = x[1:-1]
    rss = [_broken_line_rss(x, y, psi) for psi in candidates]
    return float(candidates[int(np.argmin(rss))])


def fit_segmented(x:Sequence[float],
                  y:Sequence[float],
                  psi:Union[float,None]=None,
                  min_samples:int=5,
                  max_iter:int=30,
                  tol:float=1e-4,
                  max_halving:int=10) -> Tuple[float, float]:
    """Fit a two-segment linear regression of y on x and return the breakpoint

    Starts from a linear fit of y on x, seeds the breakpoint with initial_breakpoint() unless psi is given, then
    iterates Muggeo's segmented regression. Each update psi + h * gamma / beta starts with h = 1 and halves h until
    the residual sum of squares does not increase, so the breakpoint cannot oscillate between two sample heights.
    Iteration stops when the breakpoint moves less than tol, the relative RSS improvement is below tol, or no
    step improves the fit.

    Args:
        x: independent variable, increasing
        y: dependent variable
        psi: starting breakpoint
        min_samples: minimum number of distinct x values
        max_iter: maximum number of refinement iterations
        tol: convergence tolerance on the breakpoint and on the relative RSS change
        max_halving: maximum number of step halvings per iteration

    Returns: (breakpoint, residual sum of squares of the segmented fit)

    Raises: ChangepointFitError
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.size != y.size:
        raise ChangepointFitError(f'x and y must have equal length ({x.size} vs {y.size})')
    if np.unique(x).size < max(min_samples, 3):
        raise ChangepointFitError(f'At least {max(min_samples, 3)} distinct heights are required, got {np.unique(x).size}')

    linear = sm.OLS(y, sm.add_constant(x)).fit()
    if np.allclose(y, y[0]):
        raise ChangepointFitError('Cumulative values are constant')

    if psi is None:
        psi = initial_breakpoint(x, y)
    if not x[0] < psi < x[-1]:
        raise ChangepointFitError(f'Breakpoint {psi:.3f} outside of data range [{x[0]}, {x[-1]}]')
    rss = _broken_line_rss(x, y, psi)

    for _ in range(max_iter):
        params = sm.OLS(y, _segmented_design(x, psi)).fit().params
        beta, gamma = params[2], params[3]
        if not np.isfinite(beta) or abs(beta) < 1e-12:
            raise ChangepointFitError('No slope change between segments')

        step = gamma / beta
        for _ in range(max_halving + 1):
            psi_new = psi + step
            if x[0] < psi_new < x[-1]:
                rss_new = _broken_line_rss(x, y, psi_new)
                if rss_new <= rss:
                    break
            step /= 2
        else:
            # No step along the update direction improves the fit
            break

        improvement = rss - rss_new
        psi, rss = psi_new, rss_new
        if abs(step) < tol or improvement <= tol * rss:
            break
    else:
        raise ChangepointFitError(f'Segmented regression did not converge after {max_iter} iterations')

    log.debug('Segmented fit: breakpoint=%.3f rss=%.5g (linear rss=%.5g)', psi, rss, linear.ssr)
    return float(psi), float(rss)


def estimate_breakpoint(heights:Sequence[float],
                        cumulative_lad:Sequence[float],
                        total_lad:Union[float,None]=None,
                        top_height:Union[float,None]=None,
                        tree_id=None,
                        **kwargs) -> Union[Breakpoint, None]:
    """Estimate the height where the slope of cumulative LAD changes

    Args:
        heights: sample heights, increasing
        cumulative_lad: LAD accumulated below each height
        total_lad: total LAD of the profile. Defaults to the last cumulative value.
        top_height: top of the canopy layer reported with the breakpoint. Defaults to the last height.
        tree_id: used in log messages
        **kwargs: passed to fit_segmented()

    Returns: Breakpoint with height rounded to 0.1 m and percentage of total LAD below and above it, or None if the
        regression could not be fit.
    """
    from scipy import interpolate

    x = np.asarray(heights, dtype=np.float64)
    y = np.asarray(cumulative_lad, dtype=np.float64)
    try:
        psi, rss = fit_segmented(x, y, **kwargs)
    except (ChangepointFitError, np.linalg.LinAlgError) as error:
        log.warning('No breakpoint for tree %s: %s', tree_id, error)
        return None

    if total_lad is None:
        total_lad = y[-1]
    if top_height is None:
        top_height = x[-1]

    interpolator = interpolate.interp1d(x, y, bounds_error=False, fill_value=(y[0], y[-1]), assume_sorted=True)
    below = 100 * float(interpolator(psi)) / total_lad if total_lad > 0 else np.nan
    return Breakpoint(height=round(psi, 1),
                      below_pct=below,
                      above_pct=100 - below,
                      top_height=float(top_height),
                      rss=rss)
