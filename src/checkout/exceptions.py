"""Errors raised by checkout operations that Protean does not already model.

Protean's ``ValidationError`` (bad input, refused transitions) and
``ObjectNotFoundError`` (unknown or foreign records) cover most failures.
"""


class IntegrityViolation(Exception):
    """Records that should agree with each other do not.

    Raised when a payment intent, transaction and order disagree about which
    order they belong to. Such requests are refused without writing anything.
    """

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.context = context
