"""Source URLs identifying indexed files on the remote service."""

from typing import Optional
from urllib.parse import quote, quote_plus, urlsplit

from corpus_agent.core.exceptions import ConfigurationError
from corpus_agent.platform.filesystem import clean_path

PATH_MARKER = "__PATH__"
ESCAPED_PATH_MARKER = "__ESCAPED_PATH__"

# Characters left as is in a URL path
_PATH_SAFE = "/~!$&'()*+,;=:@"


def validate_source_template(template: str) -> str:
    """Check a ``corpusSource`` template is a URL.

    Raises:
        ConfigurationError: If the template cannot be parsed
    """
    try:
        parts = urlsplit(template)
    except ValueError as e:
        raise ConfigurationError(f"could not parse source template '{template}': {e}") from e
    if not parts.scheme:
        raise ConfigurationError(f"source template '{template}' has no scheme")
    return template


def source_url(path: str, template: Optional[str] = None) -> str:
    """Build the source URL of a mount-relative path.

    Without a template the URL is ``file:///<path>``. With a template,
    ``__ESCAPED_PATH__`` is replaced by the query-escaped path and ``__PATH__``
    by the path itself.

    Args:
        path: Mount-relative path, e.g. ``watched/1.txt``
        template: Optional ``corpusSource`` template

    Returns:
        The source URL
    """
    cleaned = clean_path(path)
    escaped_path = quote(cleaned, safe=_PATH_SAFE)

    if template:
        # Longest marker first, __PATH__ is a suffix of __ESCAPED_PATH__
        source = template.replace(ESCAPED_PATH_MARKER, quote_plus(cleaned, safe=""))
        return source.replace(PATH_MARKER, escaped_path)

    return "file:///" + escaped_path.lstrip("/")
