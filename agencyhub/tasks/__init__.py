"""
Background Tasks Package

Contains Celery tasks for async processing:
- provisioning_tasks: Reconciliation of interrupted agency provisioning
"""

from agencyhub.tasks.provisioning_tasks import *
