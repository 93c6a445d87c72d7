import json
import base64
from typing import Any, Dict
from jinja2 import Environment, StrictUndefined, TemplateError

from natsreq.core.errors import InvalidInputError
from natsreq.core.logger import setup_logger

logger = setup_logger(__name__, include_location=True)


def is_template(value: Any) -> bool:
    """True when a string carries a Jinja2 expression or statement."""
    return isinstance(value, str) and (
        ('{{' in value and '}}' in value) or ('{%' in value and '%}' in value)
    )


def add_filters(env: Environment) -> Environment:
    """
    Add the b64encode and tojson filters to a Jinja2 environment.

    Args:
        env: The Jinja2 environment

    Returns:
        The Jinja2 environment with the filters added
    """
    if 'b64encode' not in env.filters:
        env.filters['b64encode'] = lambda s: base64.b64encode(str(s).encode('utf-8')).decode('utf-8')
    env.filters['tojson'] = _tojson_filter
    return env


def _tojson_filter(obj):
    return json.dumps(obj, default=str)


def create_environment() -> Environment:
    """Jinja2 environment used when the host does not pass one."""
    return add_filters(Environment(undefined=StrictUndefined, autoescape=False))


def render_string(env: Environment, template: str, context: Dict, strict_keys: bool = True) -> str:
    """
    Render a single string template and always return a string.

    Plain strings are returned unchanged. Undefined variables raise
    InvalidInputError when strict_keys is set.
    """
    if not is_template(template):
        logger.debug(f"render_string: Plain string (no template vars), returning as-is: {template}")
        return template

    env = add_filters(env)
    logger.debug(f"Render template: {template} | context_keys={list(context.keys())}")
    try:
        if strict_keys and env.undefined is not StrictUndefined:
            strict_env = env.overlay(undefined=StrictUndefined)
            template_obj = strict_env.from_string(template)
        else:
            template_obj = env.from_string(template)
        rendered = template_obj.render(**context)
    except TemplateError as e:
        logger.error(f"Template rendering error: {e}, template: {template}")
        raise InvalidInputError(f"Template rendering error: {e}", template=template) from e

    logger.debug(f"render_string: Successfully rendered: {rendered}")
    return rendered


def render_template(env: Environment, template: Any, context: Dict, strict_keys: bool = True) -> Any:
    """
    Render templates found anywhere inside a value.

    Strings are rendered with render_string, dicts and lists recursively,
    every other value is returned unchanged. Rendered strings are never
    coerced into other types.

    Args:
        env: The Jinja2 environment
        template: The value to render
        context: The context to use for rendering
        strict_keys: Whether undefined variables raise errors

    Returns:
        The rendered value
    """
    if isinstance(template, str):
        return render_string(env, template, context, strict_keys=strict_keys)
    elif isinstance(template, dict):
        return {k: render_template(env, v, context, strict_keys=strict_keys) for k, v in template.items()}
    elif isinstance(template, (list, tuple)):
        return type(template)(render_template(env, item, context, strict_keys=strict_keys) for item in template)
    return template
