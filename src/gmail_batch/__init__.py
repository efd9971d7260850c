"""Send batches of email through the Gmail API on behalf of a signed-in user."""

__version__ = "0.1.0"
