from .selectors import GmailSelectors

__all__ = ["GmailSelectors"]
