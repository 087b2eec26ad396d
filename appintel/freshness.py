"""
Freshness rules — should we reuse what's cached, or fetch it again?

Every function here is pure: give it timestamps, counts and a policy, get a
yes/no back. No database access, no clock reads (the caller passes `now`),
and no exceptions, so the rules can be tested exhaustively without fixtures.

Two kinds of staleness:
    - Age: the cached artifact is older than its TTL.
    - Drift: the data it was built from has changed too much since
      (review counts for textual analyses, competitor count for ASO).
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from appintel.config import CachePolicy
from appintel.models import AsoAnalysis, KIND_COMPREHENSIVE


def is_stale(timestamp: Optional[datetime], now: datetime, ttl: timedelta) -> bool:
    """Stale when missing, or not strictly newer than now - ttl."""
    if timestamp is None:
        return True
    return timestamp <= now - ttl


def drift_percent(stored: Optional[int], current: int) -> float:
    """
    Percentage change from the stored count to the current one.
    A missing or zero baseline counts as 100% drift.
    """
    if not stored or stored <= 0:
        return 100.0
    return abs(current - stored) / stored * 100


def app_list_is_stale(created_ats: Iterable[Optional[datetime]], limit: int,
                      now: datetime, ttl: timedelta) -> bool:
    """
    The cached app list for a keyword is usable only if at least `limit`
    app records were created inside the TTL window.
    """
    recent = sum(1 for ts in created_ats if not is_stale(ts, now, ttl))
    return recent < limit


def reviews_are_stale(last_fetched: Optional[datetime], now: datetime,
                      ttl: timedelta) -> bool:
    """Refetch an app's reviews when its feed was last walked longer ago than the TTL."""
    return is_stale(last_fetched, now, ttl)


def screenshot_analysis_is_stale(latest_created_at: Optional[datetime], now: datetime,
                                 ttl: timedelta) -> bool:
    """Age only."""
    return is_stale(latest_created_at, now, ttl)


def analysis_is_stale(analysis, now: datetime, policy: CachePolicy,
                      low_count: int, high_count: int = 0,
                      kind: str = KIND_COMPREHENSIVE) -> bool:
    """
    Decide whether a stored textual analysis can be shown instead of asking
    the LLM again.

    Comprehensive analyses compare low- and high-band counts separately.
    Simple analyses compare one blended total. An analysis of the other kind
    is never a substitute.
    """
    if analysis is None or analysis.kind != kind:
        return True
    if is_stale(analysis.created_at, now, policy.analysis_ttl):
        return True

    threshold = policy.analysis_drift_pct
    if kind == KIND_COMPREHENSIVE:
        low_drift = drift_percent(analysis.total_low_reviews_analyzed, low_count)
        high_drift = drift_percent(analysis.total_high_reviews_analyzed, high_count)
        return low_drift > threshold or high_drift > threshold

    blended = drift_percent(analysis.total_reviews_analyzed, low_count + high_count)
    return blended > threshold


def aso_analysis_is_stale(analysis: Optional[AsoAnalysis], now: datetime,
                          policy: CachePolicy, competitor_count: int) -> bool:
    """
    ASO recommendations go stale with age or when the competitor set grows or
    shrinks by more than the allowed drift. A stored count of zero gives
    nothing to compare against, so such a record is reused as long as it's young.
    """
    if analysis is None:
        return True
    if is_stale(analysis.created_at, now, policy.aso_ttl):
        return True
    if not analysis.competitor_count:
        return False
    return drift_percent(analysis.competitor_count, competitor_count) > policy.competitor_drift_pct
