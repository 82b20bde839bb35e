"""Celery application for background ride jobs."""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'campus_backend.settings.settings')

app = Celery('campus_backend')

# CELERY_* keys in Django settings configure the app (broker, beat schedule)
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
