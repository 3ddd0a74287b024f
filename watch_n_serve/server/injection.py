"""Reload-script template and HTML instrumentation."""

from .constants import ServerConstants


def build_reload_script(host: str, port: int) -> str:
    """Return the script tag that reloads the page on any pushed message."""
    url = f"ws://{host}:{port}{ServerConstants.RELOAD_EVENT_PATH}"
    return (
        f'<script>(new WebSocket("{url}")).addEventListener("message", '
        f'function (event) {{ window.location.reload(); }});</script>'
    )


def inject_reload_script(html: str, script: str) -> str:
    """
    Insert the script right before the last closing body tag.

    Documents without a closing body tag get the script appended.

    Args:
        html: Document text
        script: Script tag to insert

    Returns:
        Instrumented document text
    """
    index = html.rfind(ServerConstants.CLOSING_BODY_TAG)
    if index < 0:
        return html + script
    return html[:index] + script + html[index:]


def instrument_html(content: bytes, script: str) -> bytes:
    """
    Decode, instrument and re-encode an HTML document.

    Raises:
        UnicodeDecodeError: If content is not valid UTF-8
    """
    text = content.decode("utf-8")
    return inject_reload_script(text, script).encode("utf-8")
