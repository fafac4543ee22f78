"""Access-log line formatting."""

from __future__ import annotations

from datetime import datetime, timedelta

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _rfc1123(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    zone = moment.tzname() or ""
    return (
        f"{_DAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} "
        f"{moment.year:04d} {moment.hour:02d}:{moment.minute:02d}:{moment.second:02d} {zone}"
    )


def _fraction(value: int, digits: int) -> str:
    text = f"{value:0{digits}d}".rstrip("0")
    return f".{text}" if text else ""


def _duration(latency: timedelta | float | int) -> str:
    if isinstance(latency, timedelta):
        nanos = (latency.days * 86_400 + latency.seconds) * 10**9 + latency.microseconds * 1_000
    else:
        nanos = round(latency * 10**9)
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)
    if nanos < 1_000:
        return f"{sign}{nanos}ns"
    if nanos < 1_000_000:
        return f"{sign}{nanos // 1_000}{_fraction(nanos % 1_000, 3)}µs"
    if nanos < 10**9:
        return f"{sign}{nanos // 1_000_000}{_fraction(nanos % 1_000_000, 6)}ms"
    whole, rest = divmod(nanos, 10**9)
    text = f"{whole % 60}{_fraction(rest, 9)}s"
    minutes = whole // 60
    if minutes:
        text = f"{minutes % 60}m{text}"
        hours = minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text


def format_access_log(
    client_ip: str,
    timestamp: datetime,
    path: str,
    method: str,
    status_code: int,
    latency: timedelta | float | int,
    user_agent: str,
    error_message: str,
) -> str:
    """Format one request as an access-log line.

    ``latency`` is a ``timedelta`` or a number of seconds.
    """
    return (
        f"{{{client_ip} - [{_rfc1123(timestamp)}] {path} {method} {status_code:d} "
        f"{_duration(latency)} |{user_agent}| {error_message}}}"
    )