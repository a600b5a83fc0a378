"""CSS selectors for the knowledge service's chat page."""

from typing import Final, Tuple


class ChatSelectors:
    """Selectors used by the Playwright conversation driver."""

    RESPONSE_CONTAINER: Final[str] = ".to-user-container"
    RESPONSE_TEXT: Final[str] = ".message-text-content"
    CHAT_INPUTS: Final[Tuple[str, ...]] = (
        "textarea.query-box-input",
        'textarea[aria-label="Feld für Anfragen"]',
    )
    # URL fragments of the sign-in flow the service redirects to when logged out
    SIGN_IN_URL_MARKERS: Final[Tuple[str, ...]] = (
        "accounts.google.com",
        "/signin",
        "ServiceLogin",
    )
    SCROLL_SCRIPT: Final[str] = """
        () => {
            const containers = document.querySelectorAll(
                '.chat-scroll-container, .messages-container, [class*="scroll"]'
            );
            containers.forEach(c => { c.scrollTop = c.scrollHeight; });
            window.scrollTo(0, document.body.scrollHeight);
        }
    """
