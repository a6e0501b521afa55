import os

from flask import Flask, abort, render_template_string, request, jsonify

from netsentry.codec import format_time
from netsentry.config import ConfigError, load_rules
from netsentry.storage import DEFAULT_LOG_DIR, search_recent

INDEX_HTML = '''
<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <title>netsentry Dashboard</title>
  <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.0/dist/css/bootstrap.min.css" rel="stylesheet">
</head>
<body class="p-4">
<div class="container">
  <h1>netsentry Dashboard</h1>
  <h4>Rules</h4>
  <table class="table table-sm">
    <thead><tr><th>Rule</th><th>Enabled</th><th>Threshold</th><th>Files</th></tr></thead>
    <tbody>
    {% for r in rules %}
      <tr><td>{{r.name|e}}</td><td>{{r.enabled}}</td><td>{{r.alert_threshold}}</td><td>{{r.files|join(', ')|e}}</td></tr>
    {% endfor %}
    </tbody>
  </table>
  <form method="get" class="row g-2 mb-3">
    <div class="col-auto"><input class="form-control" name="file" placeholder="log file" value="{{file}}"></div>
    <div class="col-auto"><input class="form-control" name="minutes" placeholder="minutes" value="{{minutes}}"></div>
    <div class="col-auto"><input class="btn btn-primary" type="submit" value="Search"></div>
  </form>
  <h4>Recent Entries</h4>
  <table class="table table-sm">
    <thead><tr><th>Time</th><th>Event</th><th>Fields</th></tr></thead>
    <tbody>
    {% for e in entries %}
      <tr><td>{{e.time|e}}</td><td>{{e.event_id}}</td><td><code>{{e.fields|e}}</code></td></tr>
    {% endfor %}
    </tbody>
  </table>
</div>
</body>
</html>
'''


def entry_to_dict(entry):
    return {
        'time': format_time(entry.time) if entry.time else None,
        'event_id': entry.event_id,
        'fields': entry.fields,
    }


def create_app(log_dir=DEFAULT_LOG_DIR, rules_path='config/rules.yml'):
    app = Flask(__name__)
    try:
        rules = load_rules(rules_path)
    except ConfigError as e:
        app.logger.warning('Dashboard running without rules: %s', e)
        rules = []

    def query():
        default_files = sorted({f for r in rules for f in r.files})
        name = request.args.get('file')
        # only log files named by a rule are served
        if name and name not in default_files:
            abort(404)
        files = [name] if name else default_files
        minutes = request.args.get('minutes', 60, type=int)
        return name or '', minutes, search_recent(files, minutes=minutes, log_dir=log_dir)

    @app.route('/')
    def index():
        name, minutes, entries = query()
        return render_template_string(INDEX_HTML, rules=rules, entries=[entry_to_dict(e) for e in entries],
                                      file=name, minutes=minutes)

    @app.route('/api/entries')
    def api_entries():
        _, _, entries = query()
        return jsonify([entry_to_dict(e) for e in entries])

    return app


if __name__ == '__main__':
    create_app(os.getenv('NETSENTRY_LOG_DIR', DEFAULT_LOG_DIR),
               os.getenv('NETSENTRY_RULES', 'config/rules.yml')).run(host='0.0.0.0', port=5000, debug=False)
