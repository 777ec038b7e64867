"""Template rendering for match notifications using Jinja2.

This module wraps Jinja2 template rendering with caching and strict
undefined checking to catch template errors early.
"""

import logging
from typing import Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from .models import NotificationTemplateError, RenderedNotification

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """Renders notification templates using Jinja2.

    Templates live in the listing_alerts.notifications.email_templates
    package directory. Only the HTML body is auto-escaped; the title and
    text body go out verbatim on email and webhook channels.
    """

    def __init__(
        self,
        template_dir: str = "email_templates",
        title_template: str = "alert_match_title.j2",
        html_template: str = "alert_match_body.html.j2",
        text_template: str = "alert_match_body.txt.j2",
    ):
        """Initialize template renderer with Jinja2 environment.

        Args:
            template_dir: Directory name within listing_alerts.notifications package
            title_template: Filename of the title template
            html_template: Filename of HTML body template
            text_template: Filename of plain text body template
        """
        self.title_template_name = title_template
        self.html_template_name = html_template
        self.text_template_name = text_template

        self.env = Environment(
            loader=PackageLoader("listing_alerts.notifications", template_dir),
            autoescape=select_autoescape(enabled_extensions=("html.j2",), default=False),
            undefined=StrictUndefined,
            keep_trailing_newline=False,
        )

        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    def render(self, context: Dict) -> RenderedNotification:
        """Render title and bodies with the provided context.

        Args:
            context: Dictionary of template variables (see build_notification_context)

        Returns:
            RenderedNotification with a single-line title

        Raises:
            NotificationTemplateError: If template rendering fails
        """
        try:
            title_template = self.env.get_template(self.title_template_name)
            html_template = self.env.get_template(self.html_template_name)
            text_template = self.env.get_template(self.text_template_name)

            title = title_template.render(context).strip().replace("\n", " ")
            html_body = html_template.render(context)
            text_body = text_template.render(context).strip()

            logger.debug(f"Rendered templates for alert: {context.get('alert_name', 'unknown')}")

            return RenderedNotification(
                title=title,
                text_body=text_body,
                html_body=html_body,
                link=context.get("link", ""),
            )

        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e
