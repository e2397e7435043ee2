# luster_lab/celery.py
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "luster_lab.settings")

app = Celery("luster_lab")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
