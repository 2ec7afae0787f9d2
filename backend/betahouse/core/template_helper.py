from pathlib import Path

import jinja2
from core.logging import logger

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

_template_env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(searchpath=str(TEMPLATE_DIR)),
    autoescape=jinja2.select_autoescape(["html"]),
)


def render_template(template_name: str, /, **context) -> str:
    try:
        template = _template_env.get_template(template_name)
        rendered = template.render(**context)
        logger.debug("Rendered email template {}", template_name)
        return rendered
    except jinja2.TemplateError:
        logger.exception("Failed to render email template {}", template_name)
        raise
