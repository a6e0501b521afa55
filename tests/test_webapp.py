from datetime import datetime, timezone

from netsentry.codec import NormalizedRecord, encode_record
from webapp.app import create_app


def test_api_entries(tmp_path):
    rules = tmp_path / 'rules.yml'
    rules.write_text('rules:\n  scan_detection:\n    enabled: true\n    alert_threshold: 3\n    files: [tcpip.log]\n')
    record = NormalizedRecord(datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc), 1033,
                              {'provider': 'tcpip', 'RemoteSockAddr_IP': '10.0.0.66'})
    (tmp_path / 'tcpip.log').write_text(encode_record(record) + '\n')

    client = create_app(str(tmp_path), str(rules)).test_client()
    resp = client.get('/api/entries?minutes=0')
    assert resp.status_code == 200
    assert resp.get_json() == [{
        'time': '2024-05-01T10:00:00Z',
        'event_id': 1033,
        'fields': {'level': 'info', 'provider': 'tcpip', 'RemoteSockAddr_IP': '10.0.0.66'},
    }]

    page = client.get('/?file=tcpip.log&minutes=0')
    assert page.status_code == 200
    assert b'scan_detection' in page.data
    assert b'10.0.0.66' in page.data


def test_missing_rules_file(tmp_path):
    client = create_app(str(tmp_path), str(tmp_path / 'absent.yml')).test_client()
    assert client.get('/api/entries').get_json() == []


def test_only_rule_files_are_served(tmp_path):
    rules = tmp_path / 'rules.yml'
    rules.write_text('rules:\n  scan_detection:\n    enabled: true\n    alert_threshold: 3\n    files: [tcpip.log]\n')
    secret = tmp_path / 'elsewhere' / '.env'
    secret.parent.mkdir()
    secret.write_text('AWS_SECRET_ACCESS_KEY=hunter2\n')

    client = create_app(str(tmp_path), str(rules)).test_client()
    for name in (str(secret), '../elsewhere/.env', 'elsewhere/.env', 'rules.yml'):
        resp = client.get('/api/entries', query_string={'minutes': 0, 'file': name})
        assert resp.status_code == 404
        assert b'hunter2' not in resp.data
