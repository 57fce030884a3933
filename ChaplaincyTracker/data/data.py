"""Activity analytics over the local collections.

This module turns the four activity collections into a single pandas frame and
derives the listings and counts shown on the history and dashboard screens, as
well as the summary handed to the external insight generator.
"""
import logging
from typing import Callable, Optional

import pandas as pd

from ..core import database
from ..core import store
from ..core import auth
from ..core.database import Key
from ..core.models import RequestModule, User
from ..core.signals import signals
from ..status import status

FALLBACK_INSIGHT: str = (
    'Chaplaincy is a light in moments of pain. The work done in every sector makes a '
    'difference in the lives of patients and staff. Keep going in faith!'
)

FRAME_COLUMNS = [
    'id',
    'module',
    'date',
    'year',
    'month',
    'sector',
    'hospitalUnit',
    'chaplainId',
    'createdAt',
    'observations',
]

KIND_MODULES = {
    'study': RequestModule.STUDY.value,
    'class': RequestModule.CLASS.value,
    'group': RequestModule.PG.value,
    'visit': RequestModule.VISIT.value,
}


def _records(kind: str, user: Optional[User]):
    if user is None:
        return store.store.records(kind)
    return store.store.visible_records(kind, user)


def activity_frame(user: Optional[User] = None) -> pd.DataFrame:
    """Return one row per activity record across every collection.

    Args:
        user: Restrict to the records this user may see. None returns everything.

    Returns:
        pd.DataFrame: Wire-keyed columns plus ``module``. ``date`` and ``createdAt`` are
        parsed to datetimes; unparsable values become NaT.
    """
    rows = []
    for kind in store.ACTIVITY_KINDS:
        for record in _records(kind, user):
            row = record.to_dict()
            row['module'] = KIND_MODULES[kind]
            rows.append(row)

    if not rows:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    df = pd.DataFrame(rows)
    for column in FRAME_COLUMNS:
        if column not in df.columns:
            df[column] = pd.Series(dtype='object')

    df['date'] = pd.to_datetime(df['date'].astype(str).str[:10], format='%Y-%m-%d', errors='coerce')
    df['createdAt'] = pd.to_datetime(df['createdAt'], utc=True, errors='coerce', format='ISO8601')
    if df['date'].isna().any():
        logging.warning(f'{int(df["date"].isna().sum())} record(s) have an unreadable date.')

    extra = [c for c in df.columns if c not in FRAME_COLUMNS]
    return df[FRAME_COLUMNS + extra]


def history(user: User) -> pd.DataFrame:
    """Visible records for ``user``, newest ``createdAt`` first.

    Raises:
        status.NotAuthenticatedException: If ``user`` is None.
    """
    if user is None:
        raise status.NotAuthenticatedException
    df = activity_frame(user)
    if df.empty:
        return df
    return df.sort_values(['createdAt', 'date'], ascending=False, na_position='last').reset_index(drop=True)


def monthly_counts(year: int, month: int, user: Optional[User] = None) -> pd.Series:
    """Number of activities per module in a month, zero-filled for every module."""
    df = activity_frame(user)
    modules = list(KIND_MODULES.values())
    if df.empty:
        return pd.Series(0, index=modules, name='count', dtype='int64')
    period = df[(df['year'] == year) & (df['month'] == month)]
    counts = period['module'].value_counts().reindex(modules, fill_value=0)
    counts.name = 'count'
    return counts.astype('int64')


def unique_students(user: Optional[User] = None) -> int:
    """Distinct people reached by studies and classes, ignoring case and surrounding space."""
    names = set()
    for study in _records('study', user):
        if study.patient_name.strip():
            names.add(study.patient_name.strip().lower())
    for cls in _records('class', user):
        for student in cls.students:
            if student.strip():
                names.add(student.strip().lower())
    return len(names)


def pending_follow_ups(user: Optional[User] = None):
    """Staff visits flagged for a return visit."""
    return [v for v in _records('visit', user) if v.needs_follow_up]


def data_summary(user: Optional[User] = None) -> str:
    """Free-text summary passed to the insight generator."""
    total = len(activity_frame(user))
    return f'Individual activities: {total}, Individual students: {unique_students(user)}'


def get_insight(generator: Callable[[str], str], user: Optional[User] = None) -> str:
    """Return the dashboard insight text.

    An operator broadcast (``generalMessage``) always wins. Otherwise the last
    successful insight is reused; only when none is cached is ``generator`` called.
    Generator failures return :data:`FALLBACK_INSIGHT`, which is never cached.

    Args:
        generator: Callable taking the data summary and returning prose.
        user: Scope of the data summary.
    """
    config = auth.auth_manager.get_config()
    if config.general_message:
        return config.general_message

    cached = database.DatabaseAPI.read(Key.CachedInsight)
    if isinstance(cached, str) and cached.strip():
        return cached

    try:
        text = generator(data_summary(user))
    except Exception as ex:
        logging.warning(f'Insight generator failed, using the fallback text: {ex}')
        return FALLBACK_INSIGHT

    if not isinstance(text, str) or not text.strip():
        logging.warning('Insight generator returned no text, using the fallback text.')
        return FALLBACK_INSIGHT

    database.DatabaseAPI.write(Key.CachedInsight, text)
    signals.insightChanged.emit(text)
    return text


def clear_insight() -> None:
    """Forget the cached insight so the next call regenerates it."""
    database.DatabaseAPI.remove(Key.CachedInsight)
