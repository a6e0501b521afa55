"""
Alerting: desktop toast, Slack webhook & email. Configuration via env vars.
"""
import os
import platform
import smtplib
import logging
import subprocess
import requests
from email.message import EmailMessage

logger = logging.getLogger('netsentry.alerting')

ALERT_EMAIL_FROM = os.getenv('ALERT_EMAIL_FROM', 'alert@example.com')
ALERT_EMAIL_TO = os.getenv('ALERT_EMAIL_TO')
SMTP_HOST = os.getenv('SMTP_HOST', 'localhost')
SMTP_PORT = int(os.getenv('SMTP_PORT', '25'))
SLACK_WEBHOOK = os.getenv('SLACK_WEBHOOK')

TOAST_COMMAND = "New-BurntToastNotification -Text '{message}'"


def default_notify_command():
    command = os.getenv('ALERT_NOTIFY_COMMAND')
    if command is not None:
        return command or None
    if platform.system() == 'Windows':
        return 'powershell -Command "%s"' % TOAST_COMMAND
    return None


class AlertDeliveryError(Exception):
    """One or more alert channels failed."""

    def __init__(self, failures):
        self.failures = failures
        super().__init__('alert delivery failed: ' + ', '.join(failures))


class Alerting:
    def __init__(self, notify_command=None, slack_webhook=None, email_to=None,
                 email_from=ALERT_EMAIL_FROM, smtp_host=SMTP_HOST, smtp_port=SMTP_PORT):
        self.notify_command = notify_command if notify_command is not None else default_notify_command()
        self.slack_webhook = slack_webhook if slack_webhook is not None else SLACK_WEBHOOK
        self.email_to = email_to if email_to is not None else ALERT_EMAIL_TO
        self.email_from = email_from
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port

    def send(self, message):
        logger.warning('ALERT: %s', message)
        failures = []
        if self.notify_command:
            try:
                self._notify(message)
            except (OSError, subprocess.SubprocessError) as e:
                logger.error('Desktop notification failed: %s', e)
                failures.append('notify')
        if self.slack_webhook:
            try:
                resp = requests.post(self.slack_webhook, json={'text': '*netsentry*\n' + message}, timeout=10)
                resp.raise_for_status()
            except requests.RequestException as e:
                logger.error('Slack notify failed: %s', e)
                failures.append('slack')
        if self.email_to:
            try:
                self._send_email('netsentry alert', message)
            except (OSError, smtplib.SMTPException) as e:
                logger.error('Email alert failed: %s', e)
                failures.append('email')
        if failures:
            raise AlertDeliveryError(failures)

    def _notify(self, message):
        # single quotes would end the PowerShell string literal
        command = self.notify_command.replace('{message}', message.replace("'", "''"))
        subprocess.run(command, shell=True, check=True, timeout=30)

    def _send_email(self, subject, body):
        msg = EmailMessage()
        msg['From'] = self.email_from
        msg['To'] = self.email_to
        msg['Subject'] = subject
        msg.set_content(body)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as s:
            s.send_message(msg)
