import io
from datetime import datetime, timedelta, timezone

from netsentry.codec import NormalizedRecord, encode_record
from netsentry.config import Provider
from netsentry.storage import ProviderLogWriter, TimeWindow, load_entries, search_recent

T = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def line(ts, event_id=1033, **fields):
    fields.setdefault('provider', 'Microsoft-Windows-TCPIP')
    return encode_record(NormalizedRecord(ts, event_id, fields)) + '\n'


def write(path, *lines):
    path.write_text(''.join(lines), encoding='utf-8')


def test_window_filtering_sorted(tmp_path):
    write(tmp_path / 'tcpip.log',
          line(T, seq='now'),
          line(T - timedelta(minutes=2), seq='old'),
          line(T - timedelta(seconds=30), seq='recent'))
    entries = load_entries(['tcpip.log'], TimeWindow(T - timedelta(minutes=1), T), str(tmp_path))
    assert [e.fields['seq'] for e in entries] == ['recent', 'now']
    assert [e.time for e in entries] == [T - timedelta(seconds=30), T]


def test_window_bounds_are_inclusive():
    window = TimeWindow(T - timedelta(minutes=1), T)
    assert window.contains(T)
    assert window.contains(T - timedelta(minutes=1))
    assert not window.contains(T + timedelta(seconds=1))
    assert not window.contains(None)
    assert TimeWindow().contains(None)


def test_merge_is_stable_across_files(tmp_path):
    write(tmp_path / 'a.log', line(T, seq='a1'))
    write(tmp_path / 'b.log', line(T - timedelta(seconds=10), seq='b0'), line(T, seq='b1'))
    entries = load_entries(['a.log', 'b.log'], TimeWindow(), str(tmp_path))
    assert [e.fields['seq'] for e in entries] == ['b0', 'a1', 'b1']


def test_malformed_line_is_skipped(tmp_path):
    lines = [line(T - timedelta(seconds=i), seq=str(i)) for i in range(9)]
    lines.insert(4, 'time="yesterday-ish" level=info msg="Event ID: 1033" seq=bad\n')
    write(tmp_path / 'tcpip.log', *lines)
    entries = load_entries(['tcpip.log'], None, str(tmp_path))
    assert len(entries) == 9
    assert 'bad' not in [e.fields['seq'] for e in entries]


def test_torn_final_line_is_skipped(tmp_path):
    write(tmp_path / 'tcpip.log', line(T, seq='whole'), 'time="2024-05-01T1')
    entries = load_entries(['tcpip.log'], TimeWindow(), str(tmp_path))
    assert [e.fields['seq'] for e in entries] == ['whole']


def test_missing_file_is_skipped(tmp_path):
    write(tmp_path / 'good.log', line(T, seq='x'))
    entries = load_entries(['missing.log', 'good.log'], TimeWindow(), str(tmp_path))
    assert len(entries) == 1


def test_search_recent(tmp_path):
    write(tmp_path / 'tcpip.log', line(T - timedelta(minutes=5), seq='old'), line(T, seq='new'))
    assert len(search_recent(['tcpip.log'], minutes=0, log_dir=str(tmp_path))) == 2
    recent = search_recent(['tcpip.log'], minutes=1, log_dir=str(tmp_path), now=T)
    assert [e.fields['seq'] for e in recent] == ['new']


def test_writer_routes_by_provider(tmp_path):
    providers = [Provider(id='tcpip', log_file='tcpip.log'), Provider(id='rdp', log_file='rdp.log')]
    stdout = io.StringIO()
    with ProviderLogWriter(str(tmp_path), providers, stream=stdout) as writer:
        writer.write(NormalizedRecord(T, 1033, {'provider': 'tcpip', 'seq': '1'}))
        writer.write(NormalizedRecord(T, 131, {'provider': 'rdp', 'seq': '2'}))
        writer.write(NormalizedRecord(T, 7, {'provider': 'other', 'seq': '3'}))
        # flushed immediately, readable while the writer is open
        assert len(load_entries(['tcpip.log'], TimeWindow(), str(tmp_path))) == 1

    rdp = load_entries(['rdp.log'], TimeWindow(), str(tmp_path))
    assert [(e.event_id, e.fields['seq']) for e in rdp] == [(131, '2')]
    assert 'seq=3' in stdout.getvalue()
