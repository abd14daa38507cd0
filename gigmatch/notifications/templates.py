"""Template rendering for notification emails using Jinja2.

Templates live in the gigmatch.notifications.email_templates package
directory. Only HTML templates are autoescaped; undefined variables raise
instead of rendering blank.
"""

import logging
from typing import Any, Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """Renders subject, HTML body and text body for one notification."""

    def __init__(
        self,
        template_dir: str = "email_templates",
        subject_template: str = "notification_subject.j2",
        html_template: str = "notification_body.html.j2",
        text_template: str = "notification_body.txt.j2",
    ):
        self.subject_template_name = subject_template
        self.html_template_name = html_template
        self.text_template_name = text_template

        self.env = Environment(
            loader=PackageLoader("gigmatch.notifications", template_dir),
            autoescape=select_autoescape(enabled_extensions=("html", "html.j2"), default=False),
            undefined=StrictUndefined,
        )

        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    def render(self, context: Dict[str, Any]) -> Dict[str, str]:
        """Render all email templates with the provided context.

        Returns:
            Dictionary with ``subject`` (single line), ``html_body`` and
            ``text_body``

        Raises:
            NotificationTemplateError: If template rendering fails
        """
        try:
            subject_template = self.env.get_template(self.subject_template_name)
            html_template = self.env.get_template(self.html_template_name)
            text_template = self.env.get_template(self.text_template_name)

            subject = subject_template.render(context).strip().replace("\n", " ")
            html_body = html_template.render(context)
            text_body = text_template.render(context)

            logger.debug(
                f"Rendered templates for notification: {context.get('notification_id', 'unknown')}"
            )

            return {
                "subject": subject,
                "html_body": html_body,
                "text_body": text_body,
            }

        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e
