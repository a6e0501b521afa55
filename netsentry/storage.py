"""
Storage: per-provider key=value log files.
ProviderLogWriter appends normalized records, load_entries reads a time window back.
"""
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from netsentry.codec import LineParseError, encode_record, parse_line

logger = logging.getLogger('netsentry.storage')

DEFAULT_LOG_DIR = os.getenv('NETSENTRY_LOG_DIR', 'logs')

_MIN_TIME = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive [start, end]; a missing bound is open, no bounds means everything."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @classmethod
    def last(cls, delta, now=None):
        now = now or datetime.now(timezone.utc)
        return cls(now - delta, now)

    @property
    def unbounded(self):
        return self.start is None and self.end is None

    def contains(self, ts):
        if self.unbounded:
            return True
        if ts is None:
            return False
        if self.start is not None and ts < self.start:
            return False
        if self.end is not None and ts > self.end:
            return False
        return True


class ProviderLogWriter:
    """Routes each record to its provider's log file, stdout otherwise."""

    def __init__(self, log_dir, providers, stream=None):
        self.log_dir = log_dir
        self.stream = stream or sys.stdout
        self.writers = {}
        self.files = []
        os.makedirs(log_dir, exist_ok=True)
        for provider in providers:
            path = os.path.join(log_dir, provider.log_file)
            try:
                f = open(path, 'w', encoding='utf-8')
            except OSError as e:
                logger.warning('Failed to open %s, logging %s to stdout: %s', path, provider.id, e)
                self.writers[provider.id] = self.stream
                continue
            self.writers[provider.id] = f
            self.files.append(f)

    def write(self, record):
        target = self.writers.get(record.provider, self.stream)
        target.write(encode_record(record) + '\n')
        target.flush()

    def close(self):
        for f in self.files:
            try:
                f.close()
            except OSError as e:
                logger.error('failed to close file %s: %s', f.name, e)
        self.files = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def _read_file(path, window, entries):
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        for line in f:
            line = line.rstrip('\r\n')
            if not line:
                continue
            try:
                entry = parse_line(line)
            except LineParseError as e:
                logger.warning('could not process line: (%s) from logfile: %s: %s', line, path, e)
                continue
            if window.contains(entry.time):
                entries.append(entry)


def load_entries(file_names, window=None, log_dir=DEFAULT_LOG_DIR):
    """Load entries from ``file_names`` within ``window``, sorted by time.

    Unreadable files are skipped. The sort is stable so entries with equal
    timestamps keep file-then-line order.
    """
    window = window or TimeWindow()
    entries = []
    for name in file_names:
        path = os.path.join(log_dir, name)
        try:
            _read_file(path, window, entries)
        except OSError as e:
            logger.warning('error processing file: %s: %s', name, e)
    entries.sort(key=lambda e: e.time or _MIN_TIME)
    return entries


def search_recent(file_names, minutes=1, log_dir=DEFAULT_LOG_DIR, now=None):
    if not minutes:
        return load_entries(file_names, TimeWindow(), log_dir)
    return load_entries(file_names, TimeWindow.last(timedelta(minutes=minutes), now), log_dir)
