"""Jinja2 rendering of notification e-mails.

Each template family ``<name>`` consists of three files in
``liftout/notifications/email_templates``: ``<name>_subject.j2``,
``<name>_body.html.j2`` and ``<name>_body.txt.j2``.
"""

import logging
from typing import Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """Renders subject, HTML and text bodies for a template family."""

    def __init__(self, template_dir: str = "email_templates"):
        self.env = Environment(
            loader=PackageLoader("liftout.notifications", template_dir),
            autoescape=True,
            undefined=StrictUndefined,
        )
        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    def render(self, template: str, context: Dict) -> Dict[str, str]:
        """Render one template family.

        Returns:
            Dict with ``subject`` (single line), ``html_body`` and ``text_body``

        Raises:
            NotificationTemplateError: If a file is missing or rendering fails
        """
        try:
            subject = self.env.get_template(f"{template}_subject.j2").render(context)
            html_body = self.env.get_template(f"{template}_body.html.j2").render(context)
            text_body = self.env.get_template(f"{template}_body.txt.j2").render(context)
        except TemplateError as e:
            error_msg = f"Template rendering failed for '{template}': {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e

        return {
            "subject": subject.strip().replace("\n", " "),
            "html_body": html_body,
            "text_body": text_body,
        }
