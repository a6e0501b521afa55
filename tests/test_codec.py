from datetime import datetime, timedelta, timezone

import pytest

from netsentry.codec import LineParseError, NormalizedRecord, encode_record, parse_line

T = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


def test_encode_line_layout():
    record = NormalizedRecord(T, 131, {'provider': 'RdpCoreTS', 'ClientIP_IP': '10.0.0.5', 'Note': 'two words'})
    line = encode_record(record)
    assert line == ('time="2024-05-01T10:00:00Z" level=info msg="Event ID: 131" '
                    'ClientIP_IP=10.0.0.5 Note="two words" provider=RdpCoreTS')


def test_round_trip():
    fields = {'provider': 'Microsoft-Windows-TCPIP', 'RemoteSockAddr_IP': '10.0.0.5',
              'Status': 0, 'Path': 'C:\\Windows\\"quoted"', 'Empty': '', 'Reason': 'NA'}
    record = NormalizedRecord(T, 1033, fields)
    entry = parse_line(encode_record(record))
    assert entry.time == T
    assert entry.event_id == 1033
    assert entry.fields == {
        'level': 'info',
        'provider': 'Microsoft-Windows-TCPIP',
        'RemoteSockAddr_IP': '10.0.0.5',
        'Status': '0',
        'Path': 'C:\\Windows\\"quoted"',
        'Empty': '',
    }


def test_record_is_read_only():
    record = NormalizedRecord(T, 1, {'provider': 'p'})
    with pytest.raises(TypeError):
        record.fields['x'] = 'y'
    assert record.provider == 'p'


def test_parse_drops_na_fields():
    entry = parse_line('time="2024-05-01T10:00:00Z" level=info msg="Event ID: 103" ReasonCode=NA ActivityID=abc')
    assert entry.fields == {'level': 'info', 'ActivityID': 'abc'}


def test_parse_offset_time():
    entry = parse_line('time="2024-05-01T12:00:00+02:00" msg="Event ID: 5"')
    assert entry.time == T
    assert entry.event_id == 5


@pytest.mark.parametrize('line', [
    'time="not a time" msg="Event ID: 131"',
    'time="2024-05-01T10:00:00" msg="Event ID: 131"',
    'time="2024-05-01T10:00:00Z" msg="Event ID: abc"',
    'time="2024-05-01T1',
])
def test_parse_failures(line):
    with pytest.raises(LineParseError):
        parse_line(line)


def test_short_msg_leaves_event_id_zero():
    entry = parse_line('time="2024-05-01T10:00:00Z" msg=hello')
    assert entry.event_id == 0


def test_missing_time_is_not_fatal():
    entry = parse_line('msg="Event ID: 7" foo=bar')
    assert entry.time is None
    assert entry.event_id == 7
    assert entry.fields == {'foo': 'bar'}


def test_fractional_seconds_are_accepted():
    entry = parse_line('time="2024-05-01T10:00:00.250Z" msg="Event ID: 1"')
    assert entry.time == T + timedelta(milliseconds=250)


def test_captured_reserved_and_spaced_keys_survive():
    fields = {'provider': 'p', 'msg': 'user logon failed', 'time': 'noon', 'level': 'high', 'Logon Type': '3'}
    entry = parse_line(encode_record(NormalizedRecord(T, 7001, fields)))
    assert entry.time == T
    assert entry.event_id == 7001
    assert entry.fields == {
        'level': 'info',
        'provider': 'p',
        'fields_msg': 'user logon failed',
        'fields_time': 'noon',
        'fields_level': 'high',
        'Logon_Type': '3',
    }


def test_sub_second_time_round_trip():
    ts = T + timedelta(microseconds=750000)
    entry = parse_line(encode_record(NormalizedRecord(ts, 1, {'provider': 'p'})))
    assert entry.time == ts
