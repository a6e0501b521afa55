"""
Rule engine.
Every tick each enabled rule loads its recent log window and runs its detection algorithm:
- scan_detection: most distinct local ports touched by a single remote address in the last minute.
- rdp_brute_force: most RDP connection attempts (event 131) from a single client that end in a
  reason 14 disconnect (event 103) with the same activity id, in the last minute.
- rdp_session_hijack: reserved, never reports hits.
If the hit count reaches the rule's alert_threshold, an alert names the offending address.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List

from netsentry.alerting import AlertDeliveryError
from netsentry.storage import DEFAULT_LOG_DIR, TimeWindow, load_entries

logger = logging.getLogger('netsentry.analyzer')

RULE_INTERVAL = 30

EVENT_RDP_CONNECT_ATTEMPT = 131
EVENT_RDP_DISCONNECT = 103
REASON_CODE_FAILED_ATTEMPT = '14'


class MaxTracker:
    """Running maximum where the first key to reach the top count keeps it."""

    def __init__(self):
        self.count = 0
        self.key = ''

    def observe(self, key, count):
        if count > self.count:
            self.count = count
            self.key = key

    def result(self):
        return self.count, self.key


def scan_detection(entries):
    unique_ports = {}
    best = MaxTracker()
    for entry in entries:
        port = entry.fields.get('LocalSockAddr_PORT')
        ip = entry.fields.get('RemoteSockAddr_IP')
        if port is None or ip is None:
            continue
        ports = unique_ports.setdefault(ip, [])
        if port not in ports:
            ports.append(port)
            best.observe(ip, len(ports))
    return best.result()


@dataclass
class RDPInfo:
    activity_ids: List[str] = field(default_factory=list)
    count: int = 0


def rdp_brute_force(entries, match_policy='all'):
    """Count connection attempts per client that ended in a reason 14 disconnect.

    With match_policy 'all' an activity id pending under several clients
    increments every one of them; with 'first' only the client that saw it first.
    """
    terminated = {}
    best = MaxTracker()
    for entry in entries:
        activity_id = entry.fields.get('ActivityID')
        if activity_id is None:
            continue
        if entry.event_id == EVENT_RDP_CONNECT_ATTEMPT:
            ip = entry.fields.get('ClientIP_IP')
            if ip is None:
                continue
            terminated.setdefault(ip, RDPInfo()).activity_ids.append(activity_id)
        elif entry.event_id == EVENT_RDP_DISCONNECT:
            if entry.fields.get('ReasonCode') != REASON_CODE_FAILED_ATTEMPT:
                continue
            for ip, info in terminated.items():
                if activity_id in info.activity_ids:
                    info.count += 1
                    best.observe(ip, info.count)
                    if match_policy == 'first':
                        break
    return best.result()


def rdp_session_hijack(entries):
    # TODO: correlate session reconnects (event 25) from a different client than the session owner
    return 0, ''


@dataclass(frozen=True)
class Detection:
    window: timedelta
    message: str


DETECTIONS = {
    'scan_detection': Detection(timedelta(minutes=1), 'Host is currently being scanned by {}'),
    'rdp_brute_force': Detection(timedelta(minutes=1), 'Host is currently being RDP Brute Forced by {}'),
    'rdp_session_hijack': Detection(timedelta(minutes=30), 'Host is currently being RDP Session Hijacked by {}'),
}


@dataclass
class RuleResult:
    name: str
    hits: int = 0
    adversary: str = ''
    alerted: bool = False


class RuleEngine:
    def __init__(self, rules, alerting, log_dir=DEFAULT_LOG_DIR, interval=RULE_INTERVAL):
        self.rules = rules
        self.alerting = alerting
        self.log_dir = log_dir
        self.interval = interval

    def detect(self, rule, entries):
        if rule.name == 'scan_detection':
            return scan_detection(entries)
        if rule.name == 'rdp_brute_force':
            return rdp_brute_force(entries, rule.match_policy)
        if rule.name == 'rdp_session_hijack':
            return rdp_session_hijack(entries)
        raise KeyError(rule.name)

    def evaluate(self, rule, now=None):
        result = RuleResult(rule.name)
        detection = DETECTIONS.get(rule.name)
        if detection is None:
            logger.warning('Rule: %s does not have a matching detection algorithm, skipping...', rule.name)
            return result

        window = TimeWindow.last(detection.window, now)
        entries = load_entries(rule.files, window, self.log_dir)
        result.hits, result.adversary = self.detect(rule, entries)
        logger.debug('rule %s: %d entries, %d hits (%s)', rule.name, len(entries), result.hits, result.adversary)

        if result.hits > 0 and result.hits >= rule.alert_threshold:
            result.alerted = True
            try:
                self.alerting.send(detection.message.format(result.adversary))
            except AlertDeliveryError as e:
                logger.warning('unable to alert: %s', e)
        return result

    def run_rules(self, now=None):
        now = now or datetime.now(timezone.utc)
        results = []
        for rule in self.rules:
            if not rule.enabled:
                continue
            try:
                results.append(self.evaluate(rule, now))
            except Exception:
                logger.exception('problem running rule %s', rule.name)
        return results

    async def run(self, stop):
        """Run rules every ``interval`` seconds until ``stop`` is set.

        The first tick waits a full interval, since capture has not produced
        enough history yet.
        """
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass
            await asyncio.to_thread(self.run_rules)
