"""
Key=value log line codec.
Each normalized record is written as one line:

    time="2024-05-01T10:00:00Z" level=info msg="Event ID: 131" provider=... ClientIP_IP=10.0.0.5

and read back into a LogEntry by parse_line.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping

from dateutil import parser as dateparser

logger = logging.getLogger('netsentry.codec')

SENTINEL_NA = 'NA'

# quoted pairs (with backslash escapes) or bare key=token pairs
RE_PAIR = re.compile(r'(\w+)="((?:[^"\\]|\\.)*)"|(\w+)=(\S*)')
RE_BARE_VALUE = re.compile(r'^[A-Za-z0-9\-._/@^+]+$')
RE_ESCAPE = re.compile(r'\\(.)')
RE_NON_WORD = re.compile(r'\W')

RESERVED_KEYS = ('time', 'level', 'msg')

_ESCAPES = {'"': '\\"', '\\': '\\\\', '\n': '\\n', '\t': '\\t', '\r': '\\r'}
_UNESCAPES = {'n': '\n', 't': '\t', 'r': '\r'}


class LineParseError(ValueError):
    """A log line could not be decoded and must be skipped."""


@dataclass(frozen=True)
class NormalizedRecord:
    time: datetime
    event_id: int
    fields: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, 'fields', MappingProxyType(dict(self.fields)))

    @property
    def provider(self):
        return self.fields.get('provider')


@dataclass
class LogEntry:
    time: datetime
    event_id: int = 0
    fields: Dict[str, str] = field(default_factory=dict)


def format_time(ts):
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    # fraction is written only when non-zero
    text = ts.isoformat()
    return text.replace('+00:00', 'Z')


def format_value(value):
    if isinstance(value, bool):
        text = 'true' if value else 'false'
    else:
        text = str(value)
    if RE_BARE_VALUE.match(text):
        return text
    return '"' + ''.join(_ESCAPES.get(c, c) for c in text) + '"'


def field_key(key):
    """Key as written on the line: word characters only, reserved names prefixed."""
    name = RE_NON_WORD.sub('_', str(key)) or '_'
    if name in RESERVED_KEYS:
        name = 'fields_' + name
    return name


def encode_record(record):
    parts = [
        'time=' + format_value(format_time(record.time)),
        'level=info',
        'msg=' + format_value('Event ID: %d' % record.event_id),
    ]
    written = set()
    for key in sorted(record.fields):
        value = record.fields[key]
        if value is None or value == SENTINEL_NA:
            continue
        name = field_key(key)
        if name in written:
            logger.debug('field %r collides with %r, dropped', key, name)
            continue
        written.add(name)
        parts.append('%s=%s' % (name, format_value(value)))
    return ' '.join(parts)


def parse_time(value):
    try:
        ts = dateparser.isoparse(value)
    except (ValueError, OverflowError) as e:
        raise LineParseError('could not parse time %r: %s' % (value, e))
    if ts.tzinfo is None:
        raise LineParseError('time %r has no UTC offset' % value)
    return ts


def parse_event_id(msg):
    parts = msg.split(None, 2)
    if len(parts) < 3:
        return 0
    try:
        return int(parts[2])
    except ValueError:
        raise LineParseError('could not parse event id from msg %r' % msg)


def _unescape(text):
    return RE_ESCAPE.sub(lambda m: _UNESCAPES.get(m.group(1), m.group(1)), text)


def parse_line(line):
    """Decode one log line into a LogEntry, raising LineParseError on failure."""
    ts = None
    event_id = 0
    fields = {}
    for m in RE_PAIR.finditer(line):
        if m.group(1) is not None:
            key, value = m.group(1), _unescape(m.group(2))
        else:
            key, value = m.group(3), m.group(4)

        if key == 'time':
            ts = parse_time(value)
        elif key == 'msg':
            event_id = parse_event_id(value)
        elif value != SENTINEL_NA:
            fields[key] = value

    if ts is None:
        logger.debug('line has no time field: %s', line)
    return LogEntry(time=ts, event_id=event_id, fields=fields)
