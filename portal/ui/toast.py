"""Transient success / error notifications shown in the corner of the app."""

from __future__ import annotations

from textual.dom import DOMNode

DEFAULT_DURATION_MS: int = 3500


def show_toast(
    node: DOMNode,
    message: str,
    *,
    success: bool = True,
    duration_ms: int = DEFAULT_DURATION_MS,
) -> None:
    """Show *message* as an auto-dismissing notification.

    Must be called on the UI thread; background work goes through
    ``app.call_from_thread`` first.
    """
    node.app.notify(
        message,
        title="Success" if success else "Error",
        severity="information" if success else "error",
        timeout=duration_ms / 1000,
    )
