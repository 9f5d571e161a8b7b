# slatedesk/models/errors.py
class NotFoundError(Exception):
    """A game, slate or active framework the caller asked for does not exist."""
