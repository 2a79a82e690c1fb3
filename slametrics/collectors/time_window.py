"""
Resolucao de periodos e divisao de intervalos por turno.

Os limites de mes/dia sao calculados a meia-noite local do fuso configurado.
A divisao business/fora de horario percorre o intervalo em fatias de
`shift_step_minutes` e classifica cada fatia pelo minuto do dia (local) do
seu inicio; o erro fica limitado a uma fatia por cruzamento de fronteira.
"""

import datetime as dt
import re
import time
from typing import NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import InvalidPeriod

MONTH_NAMES = [
    'janeiro', 'fevereiro', 'marco', 'abril', 'maio', 'junho',
    'julho', 'agosto', 'setembro', 'outubro', 'novembro', 'dezembro',
]
WEEKDAY_NAMES = [
    'segunda-feira', 'terca-feira', 'quarta-feira', 'quinta-feira',
    'sexta-feira', 'sabado', 'domingo',
]

_MONTH_RE = re.compile(r'^(\d{4})-(\d{1,2})$')
_DAY_RE = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')


class Period(NamedTuple):
    start: int
    end: int
    label: str

    @property
    def seconds(self):
        return max(0, self.end - self.start)


class ShiftSplit(NamedTuple):
    business: float
    off: float

    @property
    def total(self):
        return self.business + self.off


class TimeWindowResolver:
    def __init__(self, config):
        self.config = config
        try:
            self.tz = ZoneInfo(config.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f'Fuso horario invalido: {config.timezone}') from exc

    # -------------------- Periodos --------------------
    def _now(self, now):
        if now is None:
            return int(time.time())
        if isinstance(now, dt.datetime):
            return int(now.timestamp())
        return int(now)

    def _local_midnight(self, year, month, day):
        return int(dt.datetime(year, month, day, tzinfo=self.tz).timestamp())

    def _clamp_to_now(self, start, end, now):
        now_ts = self._now(now)
        if start <= now_ts < end:
            end = now_ts
        if end <= start:
            end = start
        return end

    def resolve_period(self, token, now=None):
        """Periodo [start, end) de um mes (AAAA-MM) ou de um dia (AAAA-MM-DD)."""
        raw = str(token or '').strip()
        m_month = _MONTH_RE.match(raw)
        m_day = _DAY_RE.match(raw)
        try:
            if m_month:
                year, month = int(m_month.group(1)), int(m_month.group(2))
                start = self._local_midnight(year, month, 1)
                if month == 12:
                    end = self._local_midnight(year + 1, 1, 1)
                else:
                    end = self._local_midnight(year, month + 1, 1)
                label = f'{MONTH_NAMES[month - 1]} {year}'
            elif m_day:
                year, month, day = (int(m_day.group(i)) for i in (1, 2, 3))
                first = dt.date(year, month, day)
                nxt = first + dt.timedelta(days=1)
                start = self._local_midnight(first.year, first.month, first.day)
                end = self._local_midnight(nxt.year, nxt.month, nxt.day)
                label = first.strftime('%d/%m/%Y')
            else:
                raise InvalidPeriod(f"Periodo invalido '{raw}'. Use AAAA-MM ou AAAA-MM-DD.")
        except ValueError as exc:
            raise InvalidPeriod(f"Periodo invalido '{raw}'. Use AAAA-MM ou AAAA-MM-DD.") from exc
        return Period(start, self._clamp_to_now(start, end, now), label)

    def _to_epoch(self, value, end_of_day=False):
        if isinstance(value, dt.datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=self.tz)
            return int(value.timestamp())
        if isinstance(value, dt.date):
            day = value + dt.timedelta(days=1) if end_of_day else value
            return self._local_midnight(day.year, day.month, day.day)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
        raw = str(value or '').strip()
        m_day = _DAY_RE.match(raw)
        if m_day:
            try:
                day = dt.date(*(int(m_day.group(i)) for i in (1, 2, 3)))
            except ValueError as exc:
                raise InvalidPeriod(f"Data invalida '{raw}'.") from exc
            return self._to_epoch(day, end_of_day=end_of_day)
        if raw.isdigit():
            return int(raw)
        try:
            return self._to_epoch(dt.datetime.fromisoformat(raw))
        except ValueError as exc:
            raise InvalidPeriod(f"Data invalida '{raw}'. Use AAAA-MM-DD ou ISO 8601.") from exc

    def resolve_range(self, start, end, now=None):
        """Periodo explicito; datas AAAA-MM-DD no fim incluem o dia inteiro."""
        s = self._to_epoch(start)
        e = self._to_epoch(end, end_of_day=True)
        if e <= s:
            raise InvalidPeriod('Data final deve ser posterior a data inicial.')
        label = f'{self.format_local(s, "%d/%m/%Y")} - {self.format_local(e - 1, "%d/%m/%Y")}'
        return Period(s, self._clamp_to_now(s, e, now), label)

    def current_day(self, now=None):
        now_ts = self._now(now)
        local = dt.datetime.fromtimestamp(now_ts, tz=self.tz).date()
        return self.resolve_period(local.isoformat(), now=now_ts)

    # -------------------- Turnos --------------------
    def minutes_of_day(self, ts):
        local = dt.datetime.fromtimestamp(ts, tz=self.tz)
        return local.hour * 60 + local.minute

    def is_business_time(self, ts):
        minutes = self.minutes_of_day(ts)
        return self.config.business_start_minutes <= minutes < self.config.business_end_minutes

    def split_by_shift(self, start, end):
        if end <= start:
            return ShiftSplit(0.0, 0.0)
        step = self.config.shift_step_seconds
        business = 0.0
        off = 0.0
        cursor = start
        while cursor < end:
            nxt = min(cursor + step, end)
            if self.is_business_time(cursor):
                business += nxt - cursor
            else:
                off += nxt - cursor
            cursor = nxt
        return ShiftSplit(business, off)

    def split_intervals(self, intervals):
        business = 0.0
        off = 0.0
        for start, end in intervals:
            part = self.split_by_shift(start, end)
            business += part.business
            off += part.off
        return ShiftSplit(business, off)

    # -------------------- Rotulos --------------------
    def business_window_label(self, with_timezone=True):
        start_h = self.config.business_start_hour
        end_h = self.config.business_end_hour
        label = f'{start_h:g}h-' + ('23:59' if end_h >= 24 else f'{end_h:g}h')
        if with_timezone:
            return f'{label} ({self.config.timezone})'
        return label

    def local_datetime(self, ts):
        return dt.datetime.fromtimestamp(int(ts), tz=self.tz)

    def format_local(self, ts, fmt='%d/%m/%Y %H:%M:%S'):
        if ts is None:
            return ''
        try:
            return self.local_datetime(ts).strftime(fmt)
        except (TypeError, ValueError, OverflowError, OSError):
            return ''

    def weekday_name(self, ts):
        if ts is None:
            return ''
        return WEEKDAY_NAMES[self.local_datetime(ts).weekday()]


def to_iso(ts):
    """Epoch em ISO 8601 UTC (formato consumido pela camada de apresentacao)."""
    if ts is None:
        return None
    return dt.datetime.fromtimestamp(int(ts), tz=dt.timezone.utc).isoformat().replace('+00:00', 'Z')
