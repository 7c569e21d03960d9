"""Async tasks for notifications app."""

from django.core.mail import send_mail
from django.tasks import task


@task
def send_notification_email(
    subject: str,
    message: str,
    from_email: str,
    recipient_list: list[str],
):
    """Send a notification email in background."""
    return send_mail(
        subject=subject,
        message=message,
        from_email=from_email,
        recipient_list=recipient_list,
        fail_silently=False,
    )
