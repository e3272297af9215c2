class BotError(Exception):
    """Base class for conditions the bot converts into a chat reply."""


class AuthorizationError(BotError):
    pass


class ValidationError(BotError):
    pass


class NavigationError(BotError):
    """The page could not be loaded within the navigation bound."""

    def __init__(self, url: str, reason: str = ""):
        super().__init__(f"failed to load {url}: {reason}" if reason else f"failed to load {url}")
        self.url = url
        self.reason = reason


class FetchError(BotError):
    """A single image could not be downloaded or decoded."""

    def __init__(self, source_ref: str, reason: str = ""):
        super().__init__(f"{source_ref}: {reason}" if reason else source_ref)
        self.source_ref = source_ref
        self.reason = reason


class DeliveryError(BotError):
    pass
