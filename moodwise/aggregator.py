"""
aggregator.py - Mood time-series aggregation

Pure functions that turn stored mood samples (and journal sentiments) into
chart-ready structures. Nothing here touches storage or providers, so the same
input and the same `today` always produce the same output.

- build_daily_series: one point per calendar day of a trailing window, oldest
  first, with `average_mood=None` for days without samples (a missing day must
  render differently from a low mood).
- summarize_wellness: the compact summary fed to the insight generator.
"""

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pytz

from . import config
from .models import DailySeriesPoint, JournalEntry, MoodSample

SHORT_LABEL_MAX_DAYS = 7


def _local_date(moment: datetime, tz) -> date:
    """Calendar date of `moment` in `tz`; naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        moment = pytz.utc.localize(moment)
    return moment.astimezone(tz).date()


def _resolve_today(today: Optional[date], tz) -> date:
    if today is not None:
        return today
    return datetime.now(tz).date()


def _day_label(day: date, days: int) -> str:
    if days <= SHORT_LABEL_MAX_DAYS:
        return day.strftime("%a")
    return day.strftime("%b %d")


def build_daily_series(
    samples: Iterable[MoodSample],
    days: int = 7,
    today: Optional[date] = None,
    tz=None,
) -> List[DailySeriesPoint]:
    """
    Bucket mood samples into `days` daily points ending on `today`.

    Args:
        samples: mood samples in any order; samples outside the window are ignored.
        days: window length (the API uses 7 or 30).
        today: reference day; defaults to the current date in `tz`.
        tz: pytz timezone used to assign samples to calendar days.

    Returns:
        Exactly `days` DailySeriesPoint values in chronological order.
    """
    if days < 1:
        raise ValueError("days must be positive")
    tz = tz or config.LOCAL_TIMEZONE
    end = _resolve_today(today, tz)
    window = [end - timedelta(days=offset) for offset in range(days - 1, -1, -1)]

    buckets: Dict[date, List[int]] = defaultdict(list)
    for sample in samples:
        buckets[_local_date(sample.occurred_at, tz)].append(sample.mood_value)

    series = []
    for day in window:
        values = buckets.get(day, [])
        series.append(
            DailySeriesPoint(
                day_label=_day_label(day, days),
                date=day.isoformat(),
                average_mood=float(np.mean(values)) if values else None,
                sample_count=len(values),
            )
        )
    return series


def _trend(series: Sequence[DailySeriesPoint]) -> Optional[float]:
    """Mean of the later half minus mean of the earlier half (None if a half has no data)."""
    half = len(series) // 2
    earlier = [p.average_mood for p in series[:half] if p.average_mood is not None]
    later = [p.average_mood for p in series[half:] if p.average_mood is not None]
    if not earlier or not later:
        return None
    return round(float(np.mean(later) - np.mean(earlier)), 2)


def summarize_wellness(
    samples: Sequence[MoodSample],
    journal_entries: Sequence[JournalEntry],
    today: Optional[date] = None,
    tz=None,
) -> Dict[str, Any]:
    """
    Aggregate mood samples and journal sentiments into a summary for insights.

    Returns a dict with:
      - daily_series: 7-day series (list of dicts)
      - average_mood: mean over all given samples, or None
      - sample_count: number of mood samples
      - trend: later-half minus earlier-half mean of the series, or None
      - emotion_counts: dominant_emotion -> count over journal entries
      - average_journal_rating: mean sentiment rating, or None
    """
    series = build_daily_series(samples, days=7, today=today, tz=tz)
    moods = [s.mood_value for s in samples]
    ratings = [e.sentiment.rating for e in journal_entries if e.sentiment is not None]
    emotions = Counter(
        e.sentiment.dominant_emotion.lower()
        for e in journal_entries
        if e.sentiment is not None and e.sentiment.dominant_emotion
    )
    return {
        "daily_series": [p.model_dump() for p in series],
        "average_mood": round(float(np.mean(moods)), 2) if moods else None,
        "sample_count": len(moods),
        "trend": _trend(series),
        "emotion_counts": dict(emotions),
        "average_journal_rating": round(float(np.mean(ratings)), 2) if ratings else None,
    }
