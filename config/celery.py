"""
Celery configuration for async task processing.
"""
import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('splits')

# Load config from Django settings with CELERY_ prefix
app.config_from_object('django.conf:settings', namespace='CELERY')

app.autodiscover_tasks()


app.conf.beat_schedule = {
    # Resume interrupted account deletions and escalate stuck ones
    'resume-stalled-deletion-jobs': {
        'task': 'account_deletion.resume_stalled_jobs',
        'schedule': crontab(minute='*/10'),
    },
}
