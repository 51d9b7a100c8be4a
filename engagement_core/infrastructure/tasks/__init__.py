"""Background tasks (Celery)"""
