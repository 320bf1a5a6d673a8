"""
Email notifications sent through a Celery worker and Amazon SES.
"""
